from fastapi import WebSocket
from pydantic import ValidationError

from backend import SessionRegistry
from connections import ConnectionHub
from exceptions import ChatError
from logging_config import get_logger
from schemas.messages import InboundMessage, content_event, error_reply, join_event, token_reply

logger = get_logger(__name__)


class MessageRouter:
    """Handles one inbound frame: replies privately or broadcasts to the room.

    - ``join`` starts a session. The token goes back privately, then the join
      is broadcast. Failures are answered with a private ``error``.
    - Any other intent needs a valid ``token``. Unauthenticated messages are
      dropped without a reply so probes can't tell which usernames are live.
    - ``ping`` keeps the session alive and is never broadcast.
    - ``content`` is broadcast without the token.
    """

    def __init__(self, registry: SessionRegistry, hub: ConnectionHub):
        self._registry = registry
        self._hub = hub

    async def handle(self, websocket: WebSocket, data: str):
        try:
            message = InboundMessage.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Dropping malformed message: {e.error_count()} validation error(s)")
            return

        if message.join:
            if not await self._try_joining(websocket, message.username):
                return
            await self._hub.broadcast(join_event(message.username))
            return

        if not self._registry.authenticate(message.username, message.token):
            logger.debug(f"Dropping unauthenticated message claiming username {message.username}")
            return

        if message.ping:
            self._registry.refresh(message.username)
            return

        await self._hub.broadcast(content_event(message.username, message.content))

    async def _try_joining(self, websocket: WebSocket, username: str) -> bool:
        try:
            token = self._registry.try_create(username)
        except ChatError as e:
            logger.info(f"Join failed for {username!r}: {e.message}")
            await self._hub.send_private(websocket, error_reply(e.message))
            return False
        await self._hub.send_private(websocket, token_reply(username, token))
        logger.info(f"User {username} joined")
        return True
