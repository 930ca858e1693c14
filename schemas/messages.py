from pydantic import BaseModel, StrictBool, StrictStr, model_validator
from typing import Optional


class InboundMessage(BaseModel):
    """Envelope sent by clients.

    ``join``, ``ping`` and ``content`` are alternative intents. When a client
    sets more than one, join wins over ping and ping wins over content.
    """
    username: StrictStr
    token: Optional[StrictStr] = None
    join: Optional[StrictBool] = None
    ping: Optional[StrictBool] = None
    content: Optional[StrictStr] = None

    @model_validator(mode="after")
    def require_intent(self):
        if not self.join and not self.ping and self.content is None:
            raise ValueError("message must set one of join, ping or content")
        return self


# Outbound events. The server timestamp is added by ConnectionHub on send.

def join_event(username: str) -> dict:
    return {"username": username, "join": True}


def leave_event(username: str) -> dict:
    return {"username": username, "leave": True}


def content_event(username: str, content: str) -> dict:
    return {"username": username, "content": content}


def token_reply(username: str, token: str) -> dict:
    return {"username": username, "token": token}


def error_reply(error: str) -> dict:
    return {"error": error}
