import asyncio
import hmac
import itertools
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from constants import SESSION_EXPIRATION, SESSION_EXPIRATION_CHECK_FREQ, USERNAME_PATTERN
from exceptions import InvalidUsernameError, UsernameTakenError
from logging_config import get_logger
from tokens import TokenIssuer, unix_time

logger = get_logger(__name__)

_username_re = re.compile(USERNAME_PATTERN)


def is_valid_username(username) -> bool:
    """Allows 3 or more [0-9a-zA-Z._-] characters."""
    return isinstance(username, str) and _username_re.fullmatch(username) is not None


@dataclass
class Session:
    username: str
    token: str
    last_activity: int
    generation: int = 0
    expiry_task: Optional[asyncio.Task] = field(default=None, repr=False)


class SessionRegistry:
    """Maps username to session and revokes sessions that stop pinging.

    Every session owns one expiry task. The task wakes every ``check_freq``
    seconds and compares the idle time against ``session_expiration``. Each
    scheduled task captures the session's generation; a task that wakes up
    after its session was refreshed or removed sees a different generation
    (or no session) and does nothing.

    All methods except the expiry task itself are synchronous and must be
    called from the event loop thread.
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        on_expire: Optional[Callable[[str], Awaitable[None]]] = None,
        session_expiration: int = SESSION_EXPIRATION,
        check_freq: float = SESSION_EXPIRATION_CHECK_FREQ,
        clock: Callable[[], int] = unix_time,
    ):
        self._issuer = issuer
        self._on_expire = on_expire
        self.session_expiration = session_expiration
        self.check_freq = check_freq
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._generations = itertools.count(1)
        logger.info(
            f"Initializing SessionRegistry (expiration={session_expiration}s, check every {check_freq}s)"
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, username) -> bool:
        return username in self._sessions

    def get(self, username: str) -> Optional[Session]:
        return self._sessions.get(username)

    def try_create(self, username: str) -> str:
        """Starts a session for ``username`` and returns its token.

        Raises InvalidUsernameError or UsernameTakenError.
        """
        if not is_valid_username(username):
            raise InvalidUsernameError(username)
        if username in self._sessions:
            logger.info(f"Join rejected: username {username} already has a live session")
            raise UsernameTakenError(username)

        session = Session(
            username=username,
            token=self._issuer.issue(username),
            last_activity=self._clock(),
        )
        self._sessions[username] = session
        self._schedule_expiration(session)
        logger.info(f"Session created for {username} ({len(self._sessions)} online)")
        return session.token

    def authenticate(self, username, token) -> bool:
        if not token or not isinstance(token, str):
            return False
        session = self._sessions.get(username)
        if session is None:
            return False
        return hmac.compare_digest(session.token.encode("utf-8"), token.encode("utf-8"))

    def refresh(self, username: str) -> bool:
        """Keeps session alive and schedules the next expiration check."""
        session = self._sessions.get(username)
        if session is None:
            logger.debug(f"Ignoring refresh for unknown username {username}")
            return False
        session.last_activity = self._clock()
        self._schedule_expiration(session)
        logger.debug(f"Session refreshed for {username} at {session.last_activity}")
        return True

    def expire(self, username: str, generation: int) -> bool:
        """Removes the session if it is still the one scheduled as ``generation``."""
        session = self._sessions.get(username)
        if session is None or session.generation != generation:
            return False
        del self._sessions[username]
        if session.expiry_task is not None and session.expiry_task is not asyncio.current_task():
            session.expiry_task.cancel()
        logger.info(f"Session expired for {username} ({len(self._sessions)} online)")
        return True

    async def check_expiration(self, username: str, generation: int) -> bool:
        """Runs one poll tick. Returns whether the session should keep being polled."""
        session = self._sessions.get(username)
        if session is None:
            logger.debug(f"Expiration check for {username}: session already gone")
            return False
        if session.generation != generation:
            logger.debug(f"Expiration check for {username}: stale generation {generation}")
            return False

        idle = self._clock() - session.last_activity
        if idle <= self.session_expiration:
            return True

        if self.expire(username, generation) and self._on_expire is not None:
            await self._on_expire(username)
        return False

    async def close(self):
        """Cancels every pending expiry task and forgets all sessions."""
        logger.info(f"Closing SessionRegistry with {len(self._sessions)} sessions")
        tasks = [s.expiry_task for s in self._sessions.values() if s.expiry_task is not None]
        self._sessions.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _schedule_expiration(self, session: Session):
        previous = session.expiry_task
        if previous is not None and previous is not asyncio.current_task():
            previous.cancel()
        session.generation = next(self._generations)
        session.expiry_task = asyncio.create_task(
            self._watch(session.username, session.generation),
            name=f"session-expiry:{session.username}",
        )

    async def _watch(self, username: str, generation: int):
        try:
            while True:
                await asyncio.sleep(self.check_freq)
                if not await self.check_expiration(username, generation):
                    return
        except asyncio.CancelledError:
            logger.debug(f"Expiration check cancelled for {username} (generation {generation})")
            raise
        except Exception as e:
            logger.error(f"Error in expiration check for {username}: {e}", exc_info=True)
