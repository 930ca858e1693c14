from fastapi import APIRouter, Request
from schemas.room import RoomDetailsResponse
from logging_config import get_logger

logger = get_logger(__name__)

room_router = APIRouter(prefix="/room", tags=["room"])


@room_router.get("", response_model=RoomDetailsResponse)
async def get_room_details(request: Request):
    """
    Get details of the chat room.

    Only counts are exposed, never usernames, so unauthenticated callers
    cannot check whether a given username has a live session.

    Returns:
    - online_users_count: Number of live sessions
    - connections_count: Number of open WebSocket connections, joined or not
    - session_expiration: Seconds of silence before a session is revoked
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room details request from {client_host}")

    registry = request.app.state.session_registry
    hub = request.app.state.connection_hub

    return RoomDetailsResponse(
        online_users_count=len(registry),
        connections_count=len(hub),
        session_expiration=registry.session_expiration,
    )
