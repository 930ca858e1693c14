import hashlib
import itertools
import time
from typing import Optional

from constants import TOKEN_PART_SEP


def unix_time() -> int:
    """Returns current time as UNIX timestamp."""
    return int(time.time())


class TokenIssuer:
    """Creates session tokens.

    Hashed value is global-sequential, username-exclusive and salted with the
    server secret so tokens are unique and opaque. The sequence starts at the
    process start time to stay unpredictable across restarts.
    """

    def __init__(self, secret: str, start: Optional[int] = None):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self._sequence = itertools.count(unix_time() if start is None else start)

    def issue(self, username: str) -> str:
        if TOKEN_PART_SEP in username:
            raise ValueError(f"Username may not contain {TOKEN_PART_SEP!r}")
        parts = [self._secret, username, str(next(self._sequence))]
        return hashlib.sha512(TOKEN_PART_SEP.join(parts).encode("utf-8")).hexdigest()
