import os
import uuid

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from connections import ConnectionManager
from constants import BUILD_DIR, ENVIRONMENT, FRONTEND_URL, LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from relay import RelayEngine
from routers.rooms import rooms_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


class SinglePageStaticFiles(StaticFiles):
    """Static files that fall back to index.html for unknown paths."""

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as e:
            if e.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


def mount_client_bundle(app: FastAPI, directory: str):
    """Serve the built client app at / . Must be called after all other routes."""
    app.mount("/", SinglePageStaticFiles(directory=directory, html=True), name="client")
    logger.info(f"Serving client bundle from {directory}")


app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_methods=["GET", "POST"],
)

app.include_router(rooms_router)

# Room, chat and presence state lives for the lifetime of the process
connection_manager = ConnectionManager()
relay_engine = RelayEngine(connection_manager)
app.state.connection_manager = connection_manager
app.state.relay_engine = relay_engine

logger.info("FastAPI application initialized")


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Relay connection: join-call, signal and chat-message frames in, room events out."""
    manager: ConnectionManager = websocket.app.state.connection_manager
    engine: RelayEngine = websocket.app.state.relay_engine

    await websocket.accept()
    connection_id = str(uuid.uuid4())
    logger.info(f"WebSocket connection accepted: {connection_id}")

    manager.register(connection_id, websocket)
    engine.on_connect(connection_id)

    try:
        while True:
            data = await websocket.receive_text()
            engine.dispatch(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"Error receiving from connection {connection_id}: {e}", exc_info=True)
    finally:
        await manager.unregister(connection_id)
        engine.on_disconnect(connection_id)


if ENVIRONMENT == "production":
    if os.path.isdir(BUILD_DIR):
        mount_client_bundle(app, BUILD_DIR)
    else:
        logger.warning(f"Production mode but client bundle directory {BUILD_DIR} does not exist")
