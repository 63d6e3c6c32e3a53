from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from autohub.domain.site_content import SiteContentError
from autohub.routers.deps import error_response, json_body, require_admin, state

router = APIRouter(prefix="/api/site", tags=["site"])


@router.get("/published")
async def get_published(request: Request):
    return {"content": await state(request, "site_store").get_published()}


@router.get("/draft", dependencies=[Depends(require_admin)])
async def get_draft(request: Request):
    return {"content": await state(request, "site_store").get_draft()}


@router.get("/meta")
async def get_meta(request: Request):
    return await state(request, "site_store").get_meta()


@router.put("/draft", dependencies=[Depends(require_admin)])
async def save_draft(request: Request):
    payload = (await json_body(request)).get("content")
    if not isinstance(payload, dict):
        return JSONResponse({"error": "content payload is required."}, status_code=400)
    try:
        content = await state(request, "site_store").save_draft(payload)
    except SiteContentError as exc:
        return error_response(exc)
    return {"content": content}


@router.post("/publish", dependencies=[Depends(require_admin)])
async def publish(request: Request):
    payload = (await json_body(request)).get("content")
    try:
        content = await state(request, "site_store").publish(payload)
    except SiteContentError as exc:
        return error_response(exc)
    return {"content": content}


@router.post("/reset", dependencies=[Depends(require_admin)])
async def reset(request: Request):
    record = await state(request, "site_store").reset()
    return {"published": record["published"], "draft": record["draft"]}
