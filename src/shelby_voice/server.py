from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shelby_voice import __version__
from shelby_voice.config import get_settings
from shelby_voice.errors import ShelbyVoiceError, UpstreamProviderError
from shelby_voice.storage.backend import build_gateway
from shelby_voice.storage.gateway import StorageGateway
from shelby_voice.synthesis.dispatcher import SynthesisDispatcher, build_dispatcher
from shelby_voice.utils.log import logger, set_account, set_request_id
from shelby_voice.web.routes.storage import router as storage_router
from shelby_voice.web.routes.tts import router as tts_router
from shelby_voice.web.routes.voice import router as voice_router

# error kind -> HTTP status
STATUS_BY_KIND: dict[str, int] = {
    "bad_input": 400,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "unavailable": 503,
    "internal": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "gateway", None) is None:
        app.state.gateway = build_gateway()
    if getattr(app.state, "dispatcher", None) is None:
        app.state.dispatcher = build_dispatcher(app.state.gateway)
    logger.info(
        "server_start",
        version=__version__,
        store=app.state.gateway.store.name,
        **app.state.dispatcher.describe(),
    )
    try:
        yield
    finally:
        for obj in (app.state.gateway.store, *app.state.dispatcher.providers.values()):
            close = getattr(obj, "close", None)
            if callable(close):
                close()
        logger.info("server_stop")


async def shelby_error_handler(request: Request, exc: ShelbyVoiceError) -> JSONResponse:
    status = STATUS_BY_KIND.get(exc.kind, 500)
    fields: dict[str, Any] = {"path": request.url.path, "kind": exc.kind, "status": status}
    if isinstance(exc, UpstreamProviderError):
        fields["upstream_status"] = exc.status_code
        fields["detail"] = exc.detail[:500]
    if status >= 500:
        logger.error("request_failed", error=str(exc), error_type=type(exc).__name__, **fields)
    else:
        logger.info("request_rejected", error=str(exc), error_type=type(exc).__name__, **fields)
    return JSONResponse(
        status_code=status,
        content={"error": exc.kind, "message": exc.public_message},
    )


async def request_context_middleware(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex
    set_request_id(rid)
    set_account(None)
    t0 = time.perf_counter()
    status_code = 0
    try:
        resp = await call_next(request)
        status_code = resp.status_code
        resp.headers.setdefault("x-request-id", rid)
        return resp
    finally:
        logger.info(
            "http_done",
            method=request.method,
            path=request.url.path,
            status=status_code,
            duration_ms=round((time.perf_counter() - t0) * 1000.0, 2),
        )
        set_request_id(None)
        set_account(None)


def create_app(
    *,
    gateway: StorageGateway | None = None,
    dispatcher: SynthesisDispatcher | None = None,
) -> FastAPI:
    app = FastAPI(title="shelby-voice", version=__version__, lifespan=lifespan)
    app.state.gateway = gateway
    app.state.dispatcher = dispatcher

    s = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.cors_origin_list(),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Shelby-Uri", "X-Account", "X-Request-ID"],
        expose_headers=["X-Synthesis-Strategy", "X-Synthesis-Provider", "X-Synthesis-Fallback"],
    )
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(ShelbyVoiceError, shelby_error_handler)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    app.include_router(voice_router)
    app.include_router(storage_router)
    app.include_router(tts_router)
    return app


app = create_app()
