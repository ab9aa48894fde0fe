from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from shelby_voice.config import get_settings
from shelby_voice.errors import AccessDeniedError, ValidationError
from shelby_voice.security.access import require_owner, verify_access
from shelby_voice.uri import StorageURI
from shelby_voice.utils.log import logger, set_account
from shelby_voice.web.routes.common import (
    _get_gateway,
    _get_oracle,
    content_type_for,
    json_body,
    read_upload,
    require_fields,
)

router = APIRouter(prefix="/api/shelby", tags=["storage"])


@router.post("/upload")
async def upload(request: Request) -> dict[str, Any]:
    """
    Publish a set of parts under X-Shelby-Uri.

    Every multipart file field is stored under its filename; X-Account must own
    the URI.
    """
    uri_h = str(request.headers.get("x-shelby-uri") or "").strip()
    account = str(request.headers.get("x-account") or "").strip()
    if not uri_h or not account:
        raise ValidationError(
            "missing upload headers",
            public_message="Missing X-Shelby-Uri or X-Account header",
        )
    set_account(account)
    uri = require_owner(uri_h, account)

    form = await request.form()
    parts: dict[str, bytes] = {}
    for field_name, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue
        fname = str(value.filename or field_name)
        parts[fname] = await read_upload(value, label=fname)
    if not parts:
        raise ValidationError("no files in upload", public_message="No files provided")

    gw = _get_gateway(request)
    res = await run_in_threadpool(gw.put, uri.account, uri.namespace, uri.object_id, parts)
    return {"success": True, **res.to_dict()}


@router.post("/download")
async def download(request: Request) -> Response:
    body = await json_body(request)
    uri, filename, requester = require_fields(body, "uri", "filename", "requesterAccount")
    set_account(requester)
    # malformed URIs are a 400, not an access denial
    StorageURI.parse(uri)
    ok = await run_in_threadpool(verify_access, uri, requester, oracle=_get_oracle(request))
    if not ok:
        raise AccessDeniedError(
            f"{requester} may not read {uri}", public_message="Access denied. Purchase required."
        )
    gw = _get_gateway(request)
    data = await run_in_threadpool(gw.get, uri, filename)
    return Response(
        content=data,
        media_type=content_type_for(filename),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/delete")
async def delete(request: Request) -> dict[str, Any]:
    body = await json_body(request)
    uri, account = require_fields(body, "uri", "account")
    set_account(account)
    gw = _get_gateway(request)
    res = await run_in_threadpool(gw.delete, uri, account)
    return res.to_dict()


@router.get("/list/{account}")
async def list_objects(request: Request, account: str, namespace: str | None = None) -> dict[str, Any]:
    ns = str(namespace or get_settings().default_namespace)
    gw = _get_gateway(request)
    objects = await run_in_threadpool(gw.list_objects, account, ns)
    logger.info("storage_list", account=account, namespace=ns, count=len(objects))
    return {"account": account, "namespace": ns, "objects": objects}
