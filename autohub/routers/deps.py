"""Shared request helpers: store lookup, JSON bodies, bearer auth and error rendering."""
from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from autohub.core.errors import AppError

UNAUTHORIZED_MESSAGE = "Unauthorized. Login required."


def state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} is not configured")
    return value


async def json_body(request: Request) -> dict:
    """Parsed JSON object body; anything else reads as an empty payload."""
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def error_response(err: AppError) -> JSONResponse:
    return JSONResponse(err.payload(), status_code=err.status_code)


def bearer_token(request: Request) -> str:
    header = request.headers.get("authorization") or ""
    if not header.lower().startswith("bearer "):
        return ""
    return header[7:].strip()


async def require_admin(request: Request) -> str:
    """Dependency guarding admin routes; returns the caller's session token."""
    token = bearer_token(request)
    if not await state(request, "auth_store").verify_session(token):
        raise HTTPException(401, UNAUTHORIZED_MESSAGE)
    return token
