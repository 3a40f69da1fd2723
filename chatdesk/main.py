import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatdesk.api.routes_conversation import router as conversation_router
from chatdesk.api.routes_logs import log_handler, router as logs_router
from chatdesk.api.routes_notifications import router as notifications_router
from chatdesk.api.routes_settings import router as settings_router
from chatdesk.config import AppConfig, get_config
from chatdesk.conversation.gateway import PersistenceGateway
from chatdesk.conversation.http_gateway import HttpGateway
from chatdesk.conversation.manager import ConversationManager
from chatdesk.conversation.storage import JsonFileGateway
from chatdesk.notifications import NotificationCenter

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
if log_handler not in logging.getLogger().handlers:
    logging.getLogger().addHandler(log_handler)

logger = logging.getLogger(__name__)


def build_gateway(config: AppConfig) -> PersistenceGateway:
    storage = config.storage
    if storage.backend == "http":
        if not storage.base_url:
            logger.warning("storage.backend is 'http' but base_url is empty, using local file")
            return JsonFileGateway()
        return HttpGateway(
            storage.base_url,
            api_token=storage.api_token,
            timeout=storage.timeout_seconds,
        )
    return JsonFileGateway()


def create_app(
    gateway: Optional[PersistenceGateway] = None,
    config: Optional[AppConfig] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_config = config or get_config()
        store = gateway or build_gateway(app_config)
        manager = ConversationManager(
            store,
            notifications=NotificationCenter(),
            config=app_config.conversations,
        )
        await manager.initialize()
        app.state.manager = manager
        try:
            yield
        finally:
            await manager.aclose()
            await store.aclose()
            app.state.manager = None

    app = FastAPI(title="chatdesk", version=VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",     # Vite dev server
            "http://127.0.0.1:5173",
            "tauri://localhost",         # Desktop shell
            "null",                      # file:// origin
        ],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(conversation_router)
    app.include_router(notifications_router)
    app.include_router(logs_router)
    app.include_router(settings_router)

    @app.get("/api/health")
    async def health_check():
        manager = getattr(app.state, "manager", None)
        return {
            "status": "ok",
            "version": VERSION,
            "initialized": bool(manager and manager.initialized),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8765)
