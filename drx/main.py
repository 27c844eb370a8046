import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .settings import Settings
from .db import Base, make_engine, make_session_factory
from . import models  # noqa: F401  registers tables on Base.metadata
from .orchestrator import prompts
from .orchestrator.prompts import build_messages
from .orchestrator.runner import Orchestrator
from .providers.base import ProviderId
from .schemas import ChatRequest
from .usage import LoggingUsageRecorder, SqlUsageRecorder, UsageRecorder

logger = logging.getLogger(__name__)

router = APIRouter()


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post("/api/ai/chat")
async def chat(
    body: ChatRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    if not body.message.strip():
        return JSONResponse({"success": False, "error": prompts.EMPTY_MESSAGE}, status_code=400)

    started = time.perf_counter()
    try:
        options = body.settings.to_options(default_provider=settings.default_provider)
        messages = build_messages(
            body.message,
            [h.model_dump() for h in body.history],
            enable_thinking=body.settings.enable_thinking,
            enable_search=body.settings.enable_search,
        )
        result = await orchestrator.generate_response(messages, options)
    except Exception as e:
        logger.exception("chat request failed")
        return JSONResponse(
            {"success": False, "error": prompts.REQUEST_FAILED_MESSAGE, "details": f"{type(e).__name__}: {e}"},
            status_code=500,
        )
    processing_time = int((time.perf_counter() - started) * 1000)

    if not result.success:
        if result.error_message == prompts.NO_PROVIDER_MESSAGE:
            return JSONResponse({"success": False, "error": prompts.NO_PROVIDER_MESSAGE}, status_code=503)
        return JSONResponse(
            {"success": False, "error": prompts.TEMPORARY_FAILURE_MESSAGE, "details": result.error_message},
            status_code=500,
        )

    meta = result.metadata
    return {
        "success": True,
        "content": result.text,
        "model": meta.model if meta else "",
        "provider": meta.provider.value if meta else "",
        "fallback": meta.fallback if meta else False,
        "tokens": meta.tokens_used if meta else 0,
        "processingTime": processing_time,
    }


@router.get("/api/ai/chat")
def chat_status(orchestrator: Orchestrator = Depends(get_orchestrator)):
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "models": {p.value: orchestrator.is_configured(p) for p in ProviderId},
    }


@router.get("/api/ai/health")
async def system_health(orchestrator: Orchestrator = Depends(get_orchestrator)):
    return await orchestrator.get_system_health()


@router.get("/health")
def health():
    return PlainTextResponse("ok")


def create_app(
    settings: Settings | None = None,
    orchestrator: Orchestrator | None = None,
    recorder: UsageRecorder | None = None,
) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(level=settings.log_level.upper())

    engine = None
    if recorder is None and orchestrator is None:
        if settings.database_url:
            engine = make_engine(settings.database_url)
            recorder = SqlUsageRecorder(make_session_factory(engine))
        else:
            logger.warning("DATABASE_URL is not set, usage records will only be logged")
            recorder = LoggingUsageRecorder()
    orchestrator = orchestrator or Orchestrator.from_settings(settings, recorder)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            Base.metadata.create_all(bind=engine)
        yield
        await orchestrator.drain()
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="drx gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.include_router(router)
    return app
