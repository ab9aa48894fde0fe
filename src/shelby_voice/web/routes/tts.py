from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from shelby_voice.synthesis.providers import ELEVENLABS
from shelby_voice.utils.log import set_account
from shelby_voice.web.routes.common import _get_dispatcher, _get_provider, json_body, require_fields

router = APIRouter(tags=["tts"])


@router.post("/api/tts/generate")
async def generate(request: Request) -> Response:
    body = await json_body(request)
    model_uri, text = require_fields(body, "modelUri", "text")
    requester = str(body.get("requesterAccount") or "").strip() or None
    if requester:
        set_account(requester)
    d = _get_dispatcher(request)
    res = await run_in_threadpool(d.synthesize, model_uri, text, requester)
    return Response(content=res.audio, media_type=res.content_type, headers=res.headers())


@router.get("/api/elevenlabs/voices")
async def voices(request: Request) -> dict[str, Any]:
    provider = _get_provider(request)
    items = await run_in_threadpool(provider.list_voices)
    return {"voices": items}


@router.post("/api/elevenlabs/speak")
async def speak(request: Request) -> Response:
    body = await json_body(request)
    voice_id, text = require_fields(body, "voiceId", "text")
    d = _get_dispatcher(request)
    res = await run_in_threadpool(d.synthesize_direct, ELEVENLABS, voice_id, text)
    return Response(content=res.audio, media_type=res.content_type, headers=res.headers())
