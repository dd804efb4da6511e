"""localchat server application.

A single-room chat server for a local network. Clients connect over a
WebSocket, pick a name, and share text, images, voice clips and files with
everyone else in the room. The last 100 events are replayed to newcomers.

Modules:
    - chat: WebSocket session handling, history cache and broadcasting
    - files: Blob upload and download
    - network: Address normalization and LAN address discovery
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from localchat.chat.manager import room
from localchat.chat.router import router as chat_router
from localchat.config import get_config
from localchat.files.router import router as files_router
from localchat.files.service import BlobStore
from localchat.network import get_local_ip

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "multipart",
    "python_multipart",
    "uvicorn.access",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def get_server_info() -> dict:
    """Addresses clients can use to reach this server."""
    config = get_config()
    port = config.server.port
    return {
        "localUrl": f"http://localhost:{port}",
        "networkUrl": f"http://{get_local_ip()}:{port}",
        "storageDir": str(BlobStore.get_instance().storage_dir),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in localchat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    room.reset(history_size=config.chat.history_size)
    BlobStore.get_instance()

    info = get_server_info()
    logger.info("=================================")
    logger.info(f"local addr: {info['localUrl']}")
    logger.info(f"local network: {info['networkUrl']}")
    logger.info(f"tmp file: {info['storageDir']}")
    logger.info("=================================")

    yield  # Application runs here

    # Shutdown
    logger.info(f"Application shutdown complete ({room.get_user_count()} users were connected)")


app = FastAPI(
    title="localchat",
    description="Real-time LAN chat server",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(chat_router)
app.include_router(files_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


@app.get("/server-info")
async def server_info() -> dict:
    """Local and LAN URLs plus the blob storage directory."""
    return get_server_info()


# Serve the browser client last so it never shadows the API routes
_static_dir = Path(get_config().server.static_dir)
if _static_dir.is_dir():
    app.mount("/", StaticFiles(directory=str(_static_dir), html=True), name="static")
else:
    logger.info(f"Static directory {_static_dir} not found; not serving a web client")


def run() -> None:
    """Start the server with uvicorn using the configured host and port."""
    config = get_config()
    uvicorn.run(
        "localchat.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
        ws_max_size=config.chat.max_payload_bytes,
    )


if __name__ == "__main__":
    run()
