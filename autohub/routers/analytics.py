from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from autohub.routers.deps import json_body, require_admin, state

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.post("/events")
async def track_event(request: Request):
    body = await json_body(request)
    event_name = body.get("eventName")
    event_name = event_name.strip() if isinstance(event_name, str) else ""
    payload = body.get("payload") if isinstance(body.get("payload"), dict) else {}
    if not event_name:
        return JSONResponse({"error": "eventName is required."}, status_code=400)
    created = await state(request, "analytics_store").add(event_name, payload)
    return JSONResponse({"item": created}, status_code=201)


@router.get("/summary", dependencies=[Depends(require_admin)])
async def summary(request: Request):
    return await state(request, "analytics_store").summary()
