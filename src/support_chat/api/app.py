"""
HTTP interface for Support Chat.

Routes (under ``server.route_prefix``, default ``/chat``):
- ``GET  /history/{session_id}`` -> ``{"messages": [...]}``
- ``POST /message``              -> ``{"reply": ..., "sessionId": ...}``

Errors are returned as ``{"error": ...}`` with 400 for invalid input and 500
for storage failures. Completion failures never surface here; they arrive as
the fallback reply.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config.settings import AppSettings, get_settings
from ..core.models import HistoryPayload
from ..database.store import StorageError
from ..orchestration.orchestrator import ConversationOrchestrator, build_orchestrator
from ..utils.logging import configure_logging
from ..utils.sanitization import ValidationError

logger = logging.getLogger(__name__)


class MessageRequest(BaseModel):
    """Body of ``POST /message``. Field checks happen in the orchestrator."""
    model_config = ConfigDict(populate_by_name=True)

    message: Any = Field(None, description="Customer message text")
    session_id: Any = Field(None, alias="sessionId", description="Existing session id")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


router = APIRouter()


@router.get("/history/{session_id}")
async def get_history(session_id: str, request: Request):
    orchestrator = get_orchestrator(request)
    try:
        result = await orchestrator.get_history(session_id)
    except ValidationError as e:
        return error_response(400, str(e))
    except StorageError as e:
        logger.error(f"History error for session {session_id}: {e}")
        return error_response(500, "Could not fetch history")

    payload = HistoryPayload(messages=result.messages)
    return payload.model_dump(mode="json", by_alias=True)


@router.post("/message")
async def post_message(body: MessageRequest, request: Request):
    orchestrator = get_orchestrator(request)
    try:
        result = await orchestrator.post_message(body.message, body.session_id)
    except ValidationError as e:
        return error_response(400, str(e))
    except StorageError as e:
        logger.error(f"Message handling failed: {e}")
        return error_response(500, "Internal Server Error")

    return {"reply": result.reply, "sessionId": result.session_id}


def create_app(
    settings: AppSettings | None = None,
    orchestrator: ConversationOrchestrator | None = None,
) -> FastAPI:
    """
    Build the ASGI application.

    Args:
        settings: Settings to use; the global settings if None
        orchestrator: Pre-built orchestrator owned by the caller. It is
            initialized on startup but not closed. When None, one is built
            from settings and closed on shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = orchestrator is None
        app.state.orchestrator = orchestrator or build_orchestrator(settings)
        await app.state.orchestrator.initialize()
        logger.info(f"{settings.app_name} ready (prefix={settings.server.route_prefix or '/'})")
        try:
            yield
        finally:
            if owned:
                await app.state.orchestrator.aclose()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    if settings.server.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.server.cors_origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Invalid request body")

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return f"{settings.app_name} backend is running"

    @app.get("/health")
    async def health(request: Request):
        cache = get_orchestrator(request).cache
        if not cache.enabled:
            cache_state = "disabled"
        else:
            cache_state = "up" if await cache.ping() else "down"
        return {"status": "ok", "cache": cache_state}

    app.include_router(router, prefix=settings.server.route_prefix)
    return app
