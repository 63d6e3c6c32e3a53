"""Campaign drafting, scheduling and sending."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from autohub.core.errors import AppError, CampaignDeliveryError
from autohub.domain import schema
from autohub.repositories.email_store import EmailStore
from autohub.services import email_rendering as rendering
from autohub.services.campaign_sender import send_campaign_emails

logger = logging.getLogger(__name__)

MISSING_UNSUBSCRIBE = "unsubscribe link token is required in email content."


class CampaignError(AppError):
    def payload(self) -> dict:
        return {"error": self.code, "message": self.message}


def _text(value: Any, strip: bool = True) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip() if strip else value


def _choice(value: Any, allowed: frozenset, default: str) -> str:
    return value if value in allowed else default


def _recipients_estimate(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        number = float(value if value is not None else 0)
    except (TypeError, ValueError):
        return 0
    return max(0, math.floor(number)) if math.isfinite(number) else 0


def parse_campaign_input(body: Any) -> dict:
    payload = body if isinstance(body, dict) else {}

    def _list(key: str) -> list[str]:
        value = payload.get(key)
        if not isinstance(value, list):
            return []
        return [s for s in (str(item).strip() for item in value) if s]

    schedule_at = payload.get("scheduleAt")
    return {
        "id": _text(payload.get("id")),
        "name": _text(payload.get("name")),
        "subject": _text(payload.get("subject")),
        "previewText": _text(payload.get("previewText"), strip=False),
        "bodyMode": _choice(payload.get("bodyMode"), schema.BODY_MODES, schema.BODY_MODE_RICH),
        "bodyRich": _text(payload.get("bodyRich"), strip=False),
        "bodyHtml": _text(payload.get("bodyHtml"), strip=False),
        "audienceMode": _choice(payload.get("audienceMode"), schema.AUDIENCE_MODES, schema.AUDIENCE_MODE_ALL),
        "segments": _list("segments"),
        "exclusions": _list("exclusions"),
        "sendMode": _choice(payload.get("sendMode"), schema.SEND_MODES, schema.SEND_MODE_NOW),
        "scheduleAt": schedule_at if isinstance(schedule_at, str) else None,
        "timezone": _text(payload.get("timezone")) or "UTC",
        "estimatedRecipients": _recipients_estimate(payload.get("estimatedRecipients")),
    }


def parse_iso_datetime(value: str) -> Optional[datetime]:
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_basics(campaign: dict) -> None:
    if not campaign["name"]:
        raise AppError("name is required.")
    if not campaign["subject"]:
        raise AppError("subject is required.")


def _require_unsubscribe(campaign: dict) -> None:
    if not rendering.contains_unsubscribe_tag(campaign["bodyRich"], campaign["bodyHtml"]):
        raise AppError(MISSING_UNSUBSCRIBE)


class CampaignService:
    def __init__(self, store: EmailStore) -> None:
        self.store = store

    async def save_draft(self, body: Any) -> dict:
        campaign = parse_campaign_input(body)
        _require_basics(campaign)
        _require_unsubscribe(campaign)
        saved = await self.store.save_campaign({**campaign, "status": schema.CAMPAIGN_STATUS_DRAFT})
        await self.store.add_event(
            schema.EVENT_CAMPAIGN_SAVED,
            campaign_id=saved["id"],
            meta={"status": saved["status"], "subject": saved["subject"]},
        )
        return saved

    async def record_test(self, body: Any) -> dict:
        """Validate a test send and record it; no mail leaves the server."""
        payload = body if isinstance(body, dict) else {}
        email = _text(payload.get("email")).lower()
        subject = _text(payload.get("subject"))
        body_mode = _choice(payload.get("bodyMode"), schema.BODY_MODES, schema.BODY_MODE_RICH)
        body_rich = _text(payload.get("bodyRich"), strip=False)
        body_html = _text(payload.get("bodyHtml"), strip=False)
        if not email or not rendering.EMAIL_PATTERN.match(email):
            raise AppError("Valid email is required.")
        if not subject:
            raise AppError("subject is required.")
        if not body_rich.strip() and not body_html.strip():
            raise AppError("bodyRich or bodyHtml is required.")
        if not rendering.contains_unsubscribe_tag(body_rich, body_html):
            raise AppError(MISSING_UNSUBSCRIBE)
        await self.store.add_event(
            schema.EVENT_CAMPAIGN_TEST_SENT, meta={"to": email, "subject": subject, "bodyMode": body_mode}
        )
        return {"ok": True, "queuedTo": email}

    async def schedule(self, body: Any, now: Optional[datetime] = None) -> dict:
        campaign = parse_campaign_input(body)
        _require_basics(campaign)
        if not campaign["scheduleAt"]:
            raise AppError("scheduleAt is required for scheduled campaigns.")
        when = parse_iso_datetime(campaign["scheduleAt"])
        if when is None:
            raise AppError("scheduleAt must be a valid ISO datetime.")
        if when <= (now or datetime.now(timezone.utc)):
            raise AppError("scheduleAt must be in the future.")
        _require_unsubscribe(campaign)
        saved = await self.store.save_campaign(
            {**campaign, "sendMode": schema.SEND_MODE_SCHEDULE, "status": schema.CAMPAIGN_STATUS_SCHEDULED}
        )
        await self.store.add_event(
            schema.EVENT_CAMPAIGN_SCHEDULED,
            campaign_id=saved["id"],
            meta={"status": saved["status"], "scheduleAt": saved["scheduleAt"], "subject": saved["subject"]},
        )
        return saved

    async def send(self, body: Any) -> dict:
        campaign = parse_campaign_input(body)
        _require_basics(campaign)
        _require_unsubscribe(campaign)
        if campaign["estimatedRecipients"] <= 0:
            raise AppError("No confirmed recipients available for this campaign.")

        sender = await self.store.get_sender_profile()
        excluded = {item.strip().lower() for item in campaign["exclusions"] if item.strip()}
        recipients = [r for r in await self.store.list_campaign_recipients() if r["email"].lower() not in excluded]
        if not recipients:
            raise AppError("No confirmed recipients available for this campaign after exclusions.")

        try:
            report = await send_campaign_emails(campaign, recipients, sender)
        except CampaignDeliveryError as exc:
            raise CampaignError(exc.message, exc.code, 500) from exc

        saved = await self.store.save_campaign(
            {
                **campaign,
                "estimatedRecipients": report.delivered,
                "sendMode": schema.SEND_MODE_NOW,
                "scheduleAt": None,
                "status": schema.CAMPAIGN_STATUS_SENT,
            }
        )
        delivery = report.as_dict()
        await self.store.add_event(
            schema.EVENT_CAMPAIGN_SENT,
            campaign_id=saved["id"],
            meta={
                "status": saved["status"],
                "subject": saved["subject"],
                "recipients": saved["estimatedRecipients"],
                "attempted": delivery["attempted"],
                "delivered": delivery["delivered"],
                "failed": delivery["failed"],
            },
        )
        return {
            "ok": True,
            "campaign": saved,
            "delivery": {key: delivery[key] for key in ("attempted", "delivered", "failed")},
        }
