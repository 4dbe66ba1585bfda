"""FastAPI WebSocket server for the Spiller card game."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import config
from handlers import ConnectionContext, dispatch
from logging_config import setup_logging
from room import RoomManager
from routers.health import router as health_router
from routers.health import set_health_dependencies

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


room_manager = RoomManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler: wire health checks, tear rooms down on exit."""
    set_health_dependencies(room_manager=room_manager)
    logger.info(f"Spiller server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await room_manager.close_all("Server shutting down")
    logger.info("Shutdown complete")


app = FastAPI(
    title="Spiller Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)
app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    try:
        while True:
            data = await websocket.receive_json()
            await dispatch(data, ctx, room_manager=room_manager)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
        room = ctx.current_room
        if room and not room.closed:
            async with room.game_lock:
                await room_manager.handle_player_leave(room, ctx.player_id)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Spiller server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
