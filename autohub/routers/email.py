from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from autohub.core.config import get_settings
from autohub.core.errors import AppError, EmailDeliveryError
from autohub.core.mailer import resolve_smtp_secure
from autohub.core.rate_limiter import rate_limit_ip
from autohub.domain import schema
from autohub.routers.deps import error_response, json_body, require_admin, state
from autohub.services import email_rendering as rendering
from autohub.services.confirmation_sender import send_smtp_test_email
from autohub.services.subscription_service import SOURCE_ADMIN, SOURCE_SUBSCRIBE, is_valid_email

router = APIRouter(prefix="/api/email", tags=["email"])


def _number(value: Optional[str], default: int) -> int:
    try:
        number = float(value) if value is not None else float("nan")
    except ValueError:
        return default
    return int(number) if math.isfinite(number) else default


def _text(payload: dict, key: str, *, strip: bool = True) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip() if strip else value


# ------------------------------------------------------------------ subscribers


@router.post("/subscribe")
async def subscribe(request: Request, background: BackgroundTasks):
    rate_limit_ip(request, "email:subscribe", limit=10, window_seconds=60)
    payload = await json_body(request)
    service = state(request, "subscription_service")
    try:
        body, pending = await service.subscribe(
            _text(payload, "name"), _text(payload, "email"), _text(payload, "phone")
        )
    except AppError as exc:
        return error_response(exc)
    if pending is not None:
        background.add_task(service.deliver_in_background, pending, SOURCE_SUBSCRIBE)
    return JSONResponse(body, status_code=201)


@router.get("/subscribers", dependencies=[Depends(require_admin)])
async def list_subscribers(
    request: Request,
    status: Optional[str] = None,
    q: str = "",
    page: Optional[str] = None,
    pageSize: Optional[str] = None,
):
    status_value = (status or "").strip().lower()
    if status_value and status_value not in schema.SUBSCRIBER_STATUSES:
        return JSONResponse({"error": "status must be one of: pending, confirmed, unsubscribed."}, status_code=400)
    return await state(request, "email_store").list_subscribers(
        status=status_value or None, q=q, page=_number(page, 1), page_size=_number(pageSize, 25)
    )


@router.post("/subscribers/{subscriber_id}/resend-confirmation", dependencies=[Depends(require_admin)])
async def resend_confirmation(request: Request, subscriber_id: str, background: BackgroundTasks):
    service = state(request, "subscription_service")
    try:
        body, pending = await service.resend_confirmation(subscriber_id)
    except AppError as exc:
        return error_response(exc)
    if pending is not None:
        background.add_task(service.deliver_in_background, pending, SOURCE_ADMIN)
    return body


@router.delete("/subscribers/{subscriber_id}", dependencies=[Depends(require_admin)])
async def delete_subscriber(request: Request, subscriber_id: str):
    try:
        return await state(request, "subscription_service").delete_subscriber(subscriber_id)
    except AppError as exc:
        return error_response(exc)


@router.get("/confirm")
async def confirm(request: Request, token: str = ""):
    target = await state(request, "subscription_service").confirm(token)
    return RedirectResponse(target, status_code=303)


@router.get("/unsubscribe")
async def unsubscribe(request: Request, token: str = ""):
    target = await state(request, "subscription_service").unsubscribe(token)
    return RedirectResponse(target, status_code=303)


@router.post("/test-smtp", dependencies=[Depends(require_admin)])
async def test_smtp(request: Request):
    if get_settings().is_production:
        return JSONResponse({"error": "Not found."}, status_code=404)
    payload = await json_body(request)
    to_email = _text(payload, "to").lower()
    if not is_valid_email(to_email):
        return JSONResponse({"error": "A valid recipient email is required in field 'to'."}, status_code=400)
    sender = await state(request, "email_store").get_sender_profile()
    try:
        result = await send_smtp_test_email(to_email, sender)
    except EmailDeliveryError as exc:
        return JSONResponse(
            {"error": "SMTP_TEST_FAILED", "message": exc.message, "detailCode": exc.detail_code or exc.code},
            status_code=502,
        )
    return {
        "ok": True,
        "delivery": "sent",
        "provider": result.provider,
        "messageId": result.message_id,
        "accepted": result.accepted,
        "rejected": result.rejected,
    }


# ------------------------------------------------------------------ campaigns


@router.get("/campaigns", dependencies=[Depends(require_admin)])
async def list_campaigns(request: Request, page: Optional[str] = None, pageSize: Optional[str] = None):
    return await state(request, "email_store").list_campaigns(page=_number(page, 1), page_size=_number(pageSize, 25))


@router.post("/campaigns/draft", dependencies=[Depends(require_admin)])
async def save_campaign_draft(request: Request):
    try:
        campaign = await state(request, "campaign_service").save_draft(await json_body(request))
    except AppError as exc:
        return error_response(exc)
    return {"ok": True, "campaign": campaign}


@router.post("/campaigns/test", dependencies=[Depends(require_admin)])
async def test_campaign(request: Request):
    try:
        return await state(request, "campaign_service").record_test(await json_body(request))
    except AppError as exc:
        return error_response(exc)


@router.post("/campaigns/schedule", dependencies=[Depends(require_admin)])
async def schedule_campaign(request: Request):
    try:
        campaign = await state(request, "campaign_service").schedule(await json_body(request))
    except AppError as exc:
        return error_response(exc)
    return {"ok": True, "campaign": campaign}


@router.post("/campaigns/send", dependencies=[Depends(require_admin)])
async def send_campaign(request: Request):
    try:
        return await state(request, "campaign_service").send(await json_body(request))
    except AppError as exc:
        return error_response(exc)


# ------------------------------------------------------------------ settings


@router.get("/templates/confirmation", dependencies=[Depends(require_admin)])
async def get_confirmation_template(request: Request):
    return {"template": await state(request, "email_store").get_confirmation_template()}


@router.put("/templates/confirmation", dependencies=[Depends(require_admin)])
async def save_confirmation_template(request: Request):
    payload = await json_body(request)
    mode = payload.get("mode") if payload.get("mode") in schema.BODY_MODES else schema.BODY_MODE_RICH
    subject = _text(payload, "subject")
    body_rich = _text(payload, "bodyRich", strip=False)
    body_html = _text(payload, "bodyHtml", strip=False)
    if not subject:
        return JSONResponse({"error": "subject is required."}, status_code=400)
    if not body_rich.strip() and not body_html.strip():
        return JSONResponse({"error": "bodyRich or bodyHtml is required."}, status_code=400)
    if not rendering.contains_unsubscribe_tag(body_rich, body_html):
        return JSONResponse({"error": "unsubscribe link token is required in confirmation template."}, status_code=400)
    template = await state(request, "email_store").save_confirmation_template(
        mode, subject, _text(payload, "previewText", strip=False), body_rich, body_html
    )
    return {"template": template}


@router.get("/settings/sender-profile", dependencies=[Depends(require_admin)])
async def get_sender_profile(request: Request):
    return {"profile": await state(request, "email_store").get_sender_profile()}


def _port(value) -> int:
    if isinstance(value, bool):
        return 0
    try:
        number = float(0 if value is None else value)
    except (TypeError, ValueError):
        return 0
    return math.floor(number) if math.isfinite(number) else 0


@router.put("/settings/sender-profile", dependencies=[Depends(require_admin)])
async def save_sender_profile(request: Request):
    payload = await json_body(request)
    from_name = _text(payload, "fromName")
    from_email = _text(payload, "fromEmail").lower()
    reply_to = _text(payload, "replyTo").lower()
    smtp_host = _text(payload, "smtpHost")
    smtp_port = _port(payload.get("smtpPort"))
    smtp_user = _text(payload, "smtpUser")
    smtp_pass = _text(payload, "smtpPass", strip=False)
    raw_checks = payload.get("checks") if isinstance(payload.get("checks"), dict) else {}

    if not from_name:
        return JSONResponse({"error": "fromName is required."}, status_code=400)
    if not is_valid_email(from_email):
        return JSONResponse({"error": "fromEmail must be valid."}, status_code=400)
    if not is_valid_email(reply_to):
        return JSONResponse({"error": "replyTo must be valid."}, status_code=400)
    if not smtp_host:
        return JSONResponse({"error": "smtpHost is required."}, status_code=400)
    if not 1 <= smtp_port <= 65535:
        return JSONResponse({"error": "smtpPort must be between 1 and 65535."}, status_code=400)
    if not smtp_user:
        return JSONResponse({"error": "smtpUser is required."}, status_code=400)

    store = state(request, "email_store")
    if not smtp_pass.strip():
        smtp_pass = (await store.get_sender_profile())["smtpPass"]
    if not (smtp_pass or "").strip():
        return JSONResponse({"error": "smtpPass is required."}, status_code=400)

    profile = await store.save_sender_profile(
        {
            "fromName": from_name,
            "fromEmail": from_email,
            "replyTo": reply_to,
            "smtpHost": smtp_host,
            "smtpPort": smtp_port,
            "smtpUser": smtp_user,
            "smtpPass": smtp_pass,
            "smtpSecure": resolve_smtp_secure(smtp_port, payload.get("smtpSecure") is True),
            "includeUnsubscribeFooter": payload.get("includeUnsubscribeFooter") is not False,
            "checks": {
                "subjectSafe": raw_checks.get("subjectSafe") is not False,
                "addressIncluded": bool(raw_checks.get("addressIncluded")),
                "unsubscribeLink": raw_checks.get("unsubscribeLink") is not False,
            },
        }
    )
    return {"profile": profile}


@router.get("/analytics/summary", dependencies=[Depends(require_admin)])
async def analytics_summary(request: Request):
    return await state(request, "email_store").get_analytics_summary()
