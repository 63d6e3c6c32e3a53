from __future__ import annotations

import math

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from autohub.core.rate_limiter import client_ip, rate_limit_ip
from autohub.core.security import sha256_hex
from autohub.routers.deps import json_body, state

router = APIRouter(prefix="/api/cookies", tags=["cookies"])

CONSENT_ID_MIN = 10
CONSENT_ID_MAX = 120


def _version(value) -> int:
    if isinstance(value, bool):
        return 1
    try:
        number = float(1 if value is None else value)
    except (TypeError, ValueError):
        return 1
    return max(1, math.floor(number)) if math.isfinite(number) else 1


def _public(consent: dict) -> dict:
    return {
        "id": consent["id"],
        "version": consent["version"],
        "essential": True,
        "analytics": consent["analytics"],
        "marketing": consent["marketing"],
        "preferences": consent["preferences"],
        "updatedAt": consent["updatedAt"],
    }


@router.post("/consent")
async def save_consent(request: Request):
    rate_limit_ip(request, "cookies:consent", limit=60, window_seconds=60)
    payload = await json_body(request)
    consent_id = payload.get("consentId")
    consent_id = consent_id.strip().lower() if isinstance(consent_id, str) else ""
    if not CONSENT_ID_MIN <= len(consent_id) <= CONSENT_ID_MAX:
        return JSONResponse({"error": "A valid consentId is required."}, status_code=400)
    source = payload.get("source")
    source = source.strip() if isinstance(source, str) and source.strip() else "web"
    ip = client_ip(request)
    saved = await state(request, "cookie_store").upsert_consent(
        consent_id,
        version=_version(payload.get("version")),
        analytics=payload.get("analytics") is True,
        marketing=payload.get("marketing") is True,
        preferences=payload.get("preferences") is True,
        source=source,
        ip_hash=sha256_hex(ip) if ip.strip() else "",
        user_agent=(request.headers.get("user-agent") or "")[:320],
    )
    return {"ok": True, "consent": _public(saved)}


@router.get("/consent/{consent_id}")
async def get_consent(request: Request, consent_id: str):
    if not consent_id.strip():
        return JSONResponse({"error": "consent id is required."}, status_code=400)
    consent = await state(request, "cookie_store").get_by_id(consent_id)
    if not consent:
        return JSONResponse({"error": "Consent record not found."}, status_code=404)
    return {"consent": _public(consent)}
