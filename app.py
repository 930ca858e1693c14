from contextlib import asynccontextmanager
import secrets
from typing import Callable, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import SessionRegistry
from connections import ConnectionHub
from constants import (
    CHAT_SECRET,
    CORS_ALLOW_ORIGINS,
    LOG_FILE,
    LOG_LEVEL,
    SESSION_EXPIRATION,
    SESSION_EXPIRATION_CHECK_FREQ,
)
from logging_config import get_logger, setup_logging
from message_router import MessageRouter
from routers.room import room_router
from schemas.messages import leave_event
from tokens import TokenIssuer, unix_time

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(
    secret: Optional[str] = CHAT_SECRET,
    session_expiration: int = SESSION_EXPIRATION,
    check_freq: float = SESSION_EXPIRATION_CHECK_FREQ,
    clock: Callable[[], int] = unix_time,
) -> FastAPI:
    """Build the chat application.

    Session registry and connection hub are created once per application
    lifespan and torn down (timers cancelled, sockets closed) on shutdown.
    """
    if not secret:
        logger.warning("CHAT_SECRET is not set, generating a random token secret for this process")
        secret = secrets.token_hex(32)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub = ConnectionHub(clock=clock)

        async def announce_leave(username: str):
            await hub.broadcast(leave_event(username))

        registry = SessionRegistry(
            TokenIssuer(secret),
            on_expire=announce_leave,
            session_expiration=session_expiration,
            check_freq=check_freq,
            clock=clock,
        )
        app.state.connection_hub = hub
        app.state.session_registry = registry
        app.state.message_router = MessageRouter(registry, hub)
        logger.info("Chat services started")

        yield

        await registry.close()
        await hub.close()
        logger.info("Chat services stopped")

    app = FastAPI(lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(room_router)
    app.add_api_websocket_route("/", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


async def websocket_endpoint(websocket: WebSocket):
    """Chat WebSocket endpoint. Every text or binary frame is one JSON envelope."""
    hub: ConnectionHub = websocket.app.state.connection_hub
    router: MessageRouter = websocket.app.state.message_router

    message_count = 0
    try:
        await hub.connect(websocket)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            message_count += 1
            logger.debug(f"Received message #{message_count} on connection {id(websocket):x}")
            try:
                data = message.get("text")
                if data is None:
                    # Binary frames carry the same JSON envelope.
                    data = (message.get("bytes") or b"").decode("utf-8")
                await router.handle(websocket, data)
            except UnicodeDecodeError:
                logger.warning(f"Dropping undecodable binary message #{message_count}")
            except Exception as e:
                logger.error(f"Error handling message #{message_count}: {e}", exc_info=True)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally after {message_count} messages")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        hub.disconnect(websocket)


app = create_app()
