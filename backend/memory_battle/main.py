"""
Memory Battle API и WebSocket.
"""
import logging

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .config import get_config
from .constants import VERSION
from .ws_handlers import GameServer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def create_app(server: GameServer | None = None) -> FastAPI:
    """Приложение со своим экземпляром GameServer (в тестах — изолированным)."""
    server = server or GameServer()
    config = server.config
    app = FastAPI(title="Memory Battle API", version=VERSION)
    app.state.game_server = server

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok", "version": VERSION, **server.stats()}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        logger.info("WS: connection attempt from %s", ws.client)
        await server.ws_loop(ws)

    return app


app = create_app()


def run() -> None:
    config = get_config()
    logger.info("Memory Battle server v%s on %s:%s", VERSION, config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_level="debug" if config.debug else "info")


if __name__ == "__main__":
    run()
