"""
Email subscribers, campaigns, confirmation template, sender profile and
event log, persisted together in ``email/state.json``.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Optional

from autohub.core.async_queue import AsyncQueue
from autohub.core.config import get_settings
from autohub.domain import schema
from autohub.repositories import json_storage as js

DEFAULT_TEMPLATE_SUBJECT = "Confirm your subscription, {{first_name}}"
DEFAULT_TEMPLATE_PREVIEW = "Please verify your email to receive updates."
DEFAULT_TEMPLATE_RICH = (
    "Hi {{first_name}},\n\nThanks for subscribing. Please confirm your subscription by clicking the link below:\n\n"
    "{{confirm_subscription_link}}\n\nIf this was not you, you can ignore this email.\n\nUnsubscribe: {{unsubscribe_link}}"
)
DEFAULT_TEMPLATE_HTML = (
    "<h2>Hi {{first_name}},</h2><p>Thanks for subscribing. Please confirm your subscription by clicking the link below:</p>"
    "<p><a href='{{confirm_subscription_link}}'>Confirm subscription</a></p>"
    "<p>If this was not you, you can ignore this email.</p>"
    "<p>Unsubscribe: <a href='{{unsubscribe_link}}'>{{unsubscribe_link}}</a></p>"
)

RECENT_CAMPAIGNS_LIMIT = 50
TIMELINE_LIMIT = 100
MAX_PAGE_SIZE = 200


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _choice(value: Any, allowed: frozenset, default: str) -> str:
    return value if value in allowed else default


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [s for s in (str(item).strip() for item in value) if s]


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, math.floor(number))


def normalize_subscriber(item: dict) -> dict:
    confirm = _text(item.get("confirmToken"))
    unsubscribe = _text(item.get("unsubscribeToken"))
    return {
        **item,
        "id": _text(item.get("id")) or js.new_id(),
        "name": _text(item.get("name")),
        "email": _text(item.get("email")).lower(),
        "phone": _text(item.get("phone")),
        "status": _choice(item.get("status"), schema.SUBSCRIBER_STATUSES, schema.SUBSCRIBER_STATUS_PENDING),
        "source": schema.SUBSCRIBER_SOURCE_QUICK_GRABS,
        "confirmToken": confirm or js.new_token(),
        "unsubscribeToken": unsubscribe or js.new_token(),
        "createdAt": js.as_text(item.get("createdAt")),
        "updatedAt": js.as_text(item.get("updatedAt")),
    }


def public_subscriber(item: dict) -> dict:
    """Subscriber view without confirm/unsubscribe tokens."""
    keys = ("id", "name", "email", "phone", "status", "source", "createdAt", "updatedAt")
    return {key: item.get(key) for key in keys}


def normalize_campaign(item: dict) -> dict:
    schedule_at = item.get("scheduleAt")
    return {
        "id": item.get("id"),
        "name": _text(item.get("name")),
        "subject": _text(item.get("subject")),
        "previewText": _text(item.get("previewText")),
        "bodyMode": _choice(item.get("bodyMode"), schema.BODY_MODES, schema.BODY_MODE_RICH),
        "bodyRich": js.as_text(item.get("bodyRich")),
        "bodyHtml": js.as_text(item.get("bodyHtml")),
        "audienceMode": _choice(item.get("audienceMode"), schema.AUDIENCE_MODES, schema.AUDIENCE_MODE_ALL),
        "segments": _string_list(item.get("segments")),
        "exclusions": _string_list(item.get("exclusions")),
        "sendMode": _choice(item.get("sendMode"), schema.SEND_MODES, schema.SEND_MODE_NOW),
        "scheduleAt": schedule_at if isinstance(schedule_at, str) and schedule_at else None,
        "timezone": _text(item.get("timezone")) or "UTC",
        "status": _choice(item.get("status"), schema.CAMPAIGN_STATUSES, schema.CAMPAIGN_STATUS_DRAFT),
        "estimatedRecipients": _non_negative_int(item.get("estimatedRecipients")),
        "createdAt": js.as_text(item.get("createdAt")),
        "updatedAt": js.as_text(item.get("updatedAt")),
    }


def normalize_template(item: Optional[dict]) -> dict:
    item = item if isinstance(item, dict) else {}
    subject = item.get("subject")
    return {
        "id": "default",
        "mode": _choice(item.get("mode"), schema.BODY_MODES, schema.BODY_MODE_RICH),
        "subject": subject.strip() if isinstance(subject, str) else DEFAULT_TEMPLATE_SUBJECT,
        "previewText": js.as_text(item.get("previewText")),
        "bodyRich": item["bodyRich"] if isinstance(item.get("bodyRich"), str) else DEFAULT_TEMPLATE_RICH,
        "bodyHtml": item["bodyHtml"] if isinstance(item.get("bodyHtml"), str) else DEFAULT_TEMPLATE_HTML,
        "updatedAt": js.as_text(item.get("updatedAt")) or js.utc_now_iso(),
    }


def _port(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return int(number) if math.isfinite(number) else default


def normalize_sender_profile(item: Optional[dict]) -> dict:
    item = item if isinstance(item, dict) else {}
    settings = get_settings()
    checks = item.get("checks") if isinstance(item.get("checks"), dict) else {}
    smtp_pass = item.get("smtpPass")
    smtp_secure = item.get("smtpSecure")
    return {
        "fromName": _text(item.get("fromName")) or "AutoHub Team",
        "fromEmail": _text(item.get("fromEmail")) or settings.smtp_from.strip() or "no-reply@example.com",
        "replyTo": _text(item.get("replyTo")) or "support@example.com",
        "smtpHost": _text(item.get("smtpHost")) or settings.smtp_host,
        "smtpPort": _port(item.get("smtpPort"), settings.smtp_port),
        "smtpUser": _text(item.get("smtpUser")) or settings.smtp_user,
        "smtpPass": smtp_pass if isinstance(smtp_pass, str) and smtp_pass.strip() else settings.smtp_password,
        "smtpSecure": smtp_secure if isinstance(smtp_secure, bool) else settings.smtp_port == 465,
        "includeUnsubscribeFooter": item.get("includeUnsubscribeFooter") is not False,
        "checks": {
            "subjectSafe": checks.get("subjectSafe") is not False,
            "addressIncluded": bool(checks.get("addressIncluded")),
            "unsubscribeLink": checks.get("unsubscribeLink") is not False,
        },
        "updatedAt": js.as_text(item.get("updatedAt")) or js.utc_now_iso(),
    }


def _page_window(page: Optional[int], page_size: Optional[int]) -> tuple[int, int]:
    page_value = max(1, int(page or 1))
    size_value = min(MAX_PAGE_SIZE, max(1, int(page_size or 25)))
    return page_value, size_value


class EmailStore:
    """Read/modify/write access to the email document, one mutation at a time."""

    def __init__(self, base_dir: Path) -> None:
        data_dir = js.ensure_dir(Path(base_dir) / "email")
        self.path = data_dir / "state.json"
        self._initial = {
            "subscribers": [],
            "campaigns": [],
            "template": normalize_template(
                {
                    "mode": schema.BODY_MODE_RICH,
                    "subject": DEFAULT_TEMPLATE_SUBJECT,
                    "previewText": DEFAULT_TEMPLATE_PREVIEW,
                    "bodyRich": DEFAULT_TEMPLATE_RICH,
                    "bodyHtml": DEFAULT_TEMPLATE_HTML,
                }
            ),
            "senderProfile": normalize_sender_profile(None),
            "events": [],
            "updatedAt": js.utc_now_iso(),
        }
        existing = js.load(self.path, self._initial)
        js.save(self.path, existing if isinstance(existing, dict) else self._initial)
        self._queue = AsyncQueue()

    # -------------------------------------- helpers --------------------------------------
    async def _read(self) -> dict:
        record = await js.read_json(self.path, self._initial)
        if not isinstance(record, dict):
            record = dict(self._initial)
        subscribers = record.get("subscribers")
        campaigns = record.get("campaigns")
        events = record.get("events")
        return {
            **record,
            "subscribers": [normalize_subscriber(s) for s in subscribers if isinstance(s, dict)]
            if isinstance(subscribers, list)
            else [],
            "campaigns": [normalize_campaign(c) for c in campaigns if isinstance(c, dict)] if isinstance(campaigns, list) else [],
            "template": normalize_template(record.get("template") or self._initial["template"]),
            "senderProfile": normalize_sender_profile(record.get("senderProfile")),
            "events": [e for e in events if isinstance(e, dict)] if isinstance(events, list) else [],
        }

    async def _save(self, record: dict) -> dict:
        nxt = js.stamp(record)
        await js.write_json(self.path, nxt)
        return nxt

    async def _replace_subscriber(self, match, changes: dict) -> Optional[dict]:
        async def task() -> Optional[dict]:
            record = await self._read()
            subscribers = list(record["subscribers"])
            for index, current in enumerate(subscribers):
                if match(current):
                    updated = {**current, **changes, "updatedAt": js.utc_now_iso()}
                    subscribers[index] = updated
                    await self._save({**record, "subscribers": subscribers})
                    return updated
            return None

        return await self._queue.run(task)

    # -------------------------------------- subscribers --------------------------------------
    async def upsert_pending_subscriber(self, name: str, email: str, phone: str = "") -> dict:
        async def task() -> dict:
            record = await self._read()
            normalized_email = (email or "").strip().lower()
            normalized_name = (name or "").strip()
            normalized_phone = (phone or "").strip()
            now = js.utc_now_iso()
            subscribers = list(record["subscribers"])
            for index, existing in enumerate(subscribers):
                if existing["email"] == normalized_email:
                    subscriber = {
                        **existing,
                        "name": normalized_name or existing["name"],
                        "phone": normalized_phone,
                        "status": schema.SUBSCRIBER_STATUS_PENDING,
                        "source": schema.SUBSCRIBER_SOURCE_QUICK_GRABS,
                        "confirmToken": js.new_token(),
                        "unsubscribeToken": existing["unsubscribeToken"] or js.new_token(),
                        "updatedAt": now,
                    }
                    subscribers[index] = subscriber
                    await self._save({**record, "subscribers": subscribers})
                    return subscriber
            subscriber = {
                "id": js.new_id(),
                "name": normalized_name,
                "email": normalized_email,
                "phone": normalized_phone,
                "status": schema.SUBSCRIBER_STATUS_PENDING,
                "source": schema.SUBSCRIBER_SOURCE_QUICK_GRABS,
                "confirmToken": js.new_token(),
                "unsubscribeToken": js.new_token(),
                "createdAt": now,
                "updatedAt": now,
            }
            await self._save({**record, "subscribers": [subscriber, *subscribers]})
            return subscriber

        return await self._queue.run(task)

    async def confirm_subscriber_by_token(self, token: str) -> Optional[dict]:
        value = (token or "").strip()
        if not value:
            return None
        return await self._replace_subscriber(
            lambda s: s["confirmToken"] == value, {"status": schema.SUBSCRIBER_STATUS_CONFIRMED}
        )

    async def unsubscribe_subscriber_by_token(self, token: str) -> Optional[dict]:
        value = (token or "").strip()
        if not value:
            return None
        return await self._replace_subscriber(
            lambda s: s["unsubscribeToken"] == value, {"status": schema.SUBSCRIBER_STATUS_UNSUBSCRIBED}
        )

    async def get_subscriber_by_id(self, subscriber_id: str) -> Optional[dict]:
        target = (subscriber_id or "").strip()
        if not target:
            return None
        record = await self._read()
        return next((s for s in record["subscribers"] if s["id"] == target), None)

    async def get_subscriber_by_email(self, email: str) -> Optional[dict]:
        target = (email or "").strip().lower()
        if not target:
            return None
        record = await self._read()
        return next((s for s in record["subscribers"] if s["email"] == target), None)

    async def delete_subscriber_by_id(self, subscriber_id: str) -> Optional[dict]:
        target = (subscriber_id or "").strip()
        if not target:
            return None

        async def task() -> Optional[dict]:
            record = await self._read()
            found = next((s for s in record["subscribers"] if s["id"] == target), None)
            if not found:
                return None
            remaining = [s for s in record["subscribers"] if s["id"] != target]
            await self._save({**record, "subscribers": remaining})
            return found

        return await self._queue.run(task)

    async def list_subscribers(
        self,
        status: Optional[str] = None,
        q: str = "",
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> dict:
        record = await self._read()
        page_value, size_value = _page_window(page, page_size)
        needle = (q or "").strip().lower()

        def matches(item: dict) -> bool:
            if status and item["status"] != status:
                return False
            if not needle:
                return True
            return any(needle in item[field].lower() for field in ("name", "email", "phone"))

        ordered = sorted((s for s in record["subscribers"] if matches(s)), key=lambda s: s["createdAt"], reverse=True)
        start = (page_value - 1) * size_value
        return {
            "items": [public_subscriber(s) for s in ordered[start : start + size_value]],
            "total": len(ordered),
            "page": page_value,
            "pageSize": size_value,
        }

    async def list_campaign_recipients(self) -> list[dict]:
        record = await self._read()
        return [
            {"id": s["id"], "name": s["name"], "email": s["email"], "unsubscribeToken": s["unsubscribeToken"]}
            for s in record["subscribers"]
            if s["status"] == schema.SUBSCRIBER_STATUS_CONFIRMED
        ]

    # -------------------------------------- events --------------------------------------
    async def add_event(
        self,
        event_type: str,
        *,
        subscriber_id: Optional[str] = None,
        campaign_id: Optional[str] = None,
        meta: Optional[dict] = None,
    ) -> dict:
        async def task() -> dict:
            record = await self._read()
            event = {
                "id": js.new_id(),
                "eventType": event_type,
                "subscriberId": subscriber_id,
                "campaignId": campaign_id,
                "meta": meta or {},
                "createdAt": js.utc_now_iso(),
            }
            await self._save({**record, "events": [event, *record["events"]]})
            return event

        return await self._queue.run(task)

    # -------------------------------------- campaigns --------------------------------------
    async def save_campaign(self, fields: dict) -> dict:
        """Insert or update a campaign; an existing id keeps its createdAt."""

        async def task() -> dict:
            record = await self._read()
            now = js.utc_now_iso()
            campaign_id = _text(fields.get("id")) or js.new_id()
            normalized = normalize_campaign({**fields, "id": campaign_id, "createdAt": now, "updatedAt": now})
            campaigns = list(record["campaigns"])
            for index, existing in enumerate(campaigns):
                if existing["id"] == campaign_id:
                    updated = {**normalized, "id": existing["id"], "createdAt": existing["createdAt"], "updatedAt": now}
                    campaigns[index] = updated
                    await self._save({**record, "campaigns": campaigns})
                    return updated
            await self._save({**record, "campaigns": [normalized, *campaigns]})
            return normalized

        return await self._queue.run(task)

    async def list_campaigns(self, page: Optional[int] = None, page_size: Optional[int] = None) -> dict:
        record = await self._read()
        page_value, size_value = _page_window(page, page_size)
        ordered = sorted(record["campaigns"], key=lambda c: c["updatedAt"], reverse=True)
        start = (page_value - 1) * size_value
        return {
            "items": ordered[start : start + size_value],
            "total": len(ordered),
            "page": page_value,
            "pageSize": size_value,
        }

    # -------------------------------------- template / sender --------------------------------------
    async def get_confirmation_template(self) -> dict:
        return (await self._read())["template"]

    async def save_confirmation_template(
        self, mode: str, subject: str, preview_text: str = "", body_rich: str = "", body_html: str = ""
    ) -> dict:
        async def task() -> dict:
            record = await self._read()
            template = normalize_template(
                {
                    "mode": mode,
                    "subject": subject,
                    "previewText": preview_text,
                    "bodyRich": body_rich,
                    "bodyHtml": body_html,
                    "updatedAt": js.utc_now_iso(),
                }
            )
            await self._save({**record, "template": template})
            return template

        return await self._queue.run(task)

    async def get_sender_profile(self) -> dict:
        return (await self._read())["senderProfile"]

    async def save_sender_profile(self, fields: dict) -> dict:
        """Replace the sender profile; a missing ``smtpPass`` keeps the stored one."""

        async def task() -> dict:
            record = await self._read()
            smtp_pass = fields.get("smtpPass")
            if not isinstance(smtp_pass, str):
                smtp_pass = record["senderProfile"]["smtpPass"]
            profile = normalize_sender_profile({**fields, "smtpPass": smtp_pass, "updatedAt": js.utc_now_iso()})
            await self._save({**record, "senderProfile": profile})
            return profile

        return await self._queue.run(task)

    # -------------------------------------- analytics --------------------------------------
    async def get_analytics_summary(self) -> dict:
        record = await self._read()
        subscribers = record["subscribers"]
        campaigns = record["campaigns"]

        def count(items: list[dict], status: str) -> int:
            return sum(1 for item in items if item["status"] == status)

        recent = sorted(campaigns, key=lambda c: c["updatedAt"], reverse=True)[:RECENT_CAMPAIGNS_LIMIT]
        timeline = sorted(record["events"], key=lambda e: js.as_text(e.get("createdAt")), reverse=True)[:TIMELINE_LIMIT]
        return {
            "totals": {
                "subscribers": len(subscribers),
                "pending": count(subscribers, schema.SUBSCRIBER_STATUS_PENDING),
                "confirmed": count(subscribers, schema.SUBSCRIBER_STATUS_CONFIRMED),
                "unsubscribed": count(subscribers, schema.SUBSCRIBER_STATUS_UNSUBSCRIBED),
                "campaignsDraft": count(campaigns, schema.CAMPAIGN_STATUS_DRAFT),
                "campaignsScheduled": count(campaigns, schema.CAMPAIGN_STATUS_SCHEDULED),
                "campaignsSent": count(campaigns, schema.CAMPAIGN_STATUS_SENT),
            },
            "recentCampaigns": [
                {
                    "id": c["id"],
                    "name": c["name"],
                    "status": c["status"],
                    "estimatedRecipients": c["estimatedRecipients"],
                    "updatedAt": c["updatedAt"],
                }
                for c in recent
            ],
            "timeline": [
                {
                    "id": e.get("id"),
                    "eventType": e.get("eventType"),
                    "campaignId": e.get("campaignId"),
                    "subscriberId": e.get("subscriberId"),
                    "meta": e.get("meta") or {},
                    "createdAt": e.get("createdAt"),
                }
                for e in timeline
            ],
        }
