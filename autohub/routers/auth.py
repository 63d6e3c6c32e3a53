from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from autohub.core.errors import AuthError
from autohub.core.rate_limiter import rate_limit_ip
from autohub.routers.deps import bearer_token, error_response, json_body, require_admin, state

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

START_LIMIT = 20
START_WINDOW_SECONDS = 60


def _text(payload: dict, key: str, default: str = "") -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else default


@router.get("/status")
async def auth_status(request: Request):
    return await state(request, "auth_store").get_status()


@router.post("/signup/start")
async def signup_start(request: Request):
    rate_limit_ip(request, "auth:signup", limit=START_LIMIT, window_seconds=START_WINDOW_SECONDS)
    payload = await json_body(request)
    try:
        session = await state(request, "auth_store").start_signup(_text(payload, "email"), _text(payload, "password"))
    except AuthError as exc:
        return error_response(exc)
    logger.info("owner account created for %s", session["ownerEmail"])
    return {"ok": True, "requiresOtp": False, "session": session}


@router.post("/signup/verify")
async def signup_verify(request: Request):
    payload = await json_body(request)
    try:
        session = await state(request, "auth_store").verify_signup(_text(payload, "email"), _text(payload, "otp"))
    except AuthError as exc:
        return error_response(exc)
    return {"ok": True, "session": session}


@router.post("/login/start")
async def login_start(request: Request):
    rate_limit_ip(request, "auth:login", limit=START_LIMIT, window_seconds=START_WINDOW_SECONDS)
    payload = await json_body(request)
    try:
        session = await state(request, "auth_store").start_login(_text(payload, "email"), _text(payload, "password"))
    except AuthError as exc:
        return error_response(exc)
    return {"ok": True, "requiresOtp": False, "session": session}


@router.post("/login/verify")
async def login_verify(request: Request):
    payload = await json_body(request)
    try:
        session = await state(request, "auth_store").verify_login(_text(payload, "email"), _text(payload, "otp"))
    except AuthError as exc:
        return error_response(exc)
    return {"ok": True, "session": session}


@router.get("/session")
async def session_status(request: Request):
    valid = await state(request, "auth_store").verify_session(bearer_token(request))
    return {"valid": valid}


@router.post("/logout")
async def logout(request: Request):
    token = bearer_token(request)
    if token:
        await state(request, "auth_store").logout(token)
    return {"ok": True}


@router.post("/logout-all")
async def logout_all(request: Request, token: str = Depends(require_admin)):
    payload = await json_body(request)
    keep_current = bool(payload.get("keepCurrent"))
    await state(request, "auth_store").logout_all(token if keep_current else None)
    return {"ok": True, "keepCurrent": keep_current}


@router.get("/account", dependencies=[Depends(require_admin)])
async def get_account(request: Request):
    try:
        return await state(request, "auth_store").get_account_settings()
    except AuthError as exc:
        return error_response(exc)


@router.put("/account", dependencies=[Depends(require_admin)])
async def update_account(request: Request):
    payload = await json_body(request)
    try:
        return await state(request, "auth_store").update_account_settings(
            _text(payload, "fullName"),
            _text(payload, "timezone", "UTC"),
            bool(payload.get("twoFactorEnabled")),
        )
    except AuthError as exc:
        return error_response(exc)


@router.put("/password", dependencies=[Depends(require_admin)])
async def change_password(request: Request):
    payload = await json_body(request)
    try:
        session = await state(request, "auth_store").change_password(
            _text(payload, "currentPassword"), _text(payload, "newPassword")
        )
    except AuthError as exc:
        return error_response(exc)
    return JSONResponse({"ok": True, "session": session})
