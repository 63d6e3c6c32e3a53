"""Double opt-in subscription flow and subscriber administration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from autohub.core.config import Settings, get_settings
from autohub.core.errors import AppError, EmailDeliveryError
from autohub.domain import schema
from autohub.repositories import json_storage as js
from autohub.repositories.email_store import EmailStore
from autohub.services import email_rendering as rendering
from autohub.services.confirmation_sender import ConfirmationRequest, send_confirmation_email

logger = logging.getLogger(__name__)

SOURCE_SUBSCRIBE = "auto_subscription_flow"
SOURCE_ADMIN = "admin_email_analytics"


class SubscriptionError(AppError):
    """Error whose ``error`` field is a machine code and whose text goes in ``message``."""

    def payload(self) -> dict:
        body = {"error": self.code, "message": self.message}
        body.update({key: value for key, value in self.extra.items() if value is not None})
        return body


def confirmation_failure(exc: EmailDeliveryError) -> SubscriptionError:
    return SubscriptionError(
        exc.message, "CONFIRMATION_SEND_FAILED", 502, detailCode=exc.detail_code or exc.code
    )


def is_valid_email(value: str) -> bool:
    return bool(rendering.EMAIL_PATTERN.match(value or ""))


def sender_profile_missing_fields(profile: dict) -> list[str]:
    missing = []
    if not is_valid_email(profile.get("fromEmail", "")):
        missing.append("fromEmail")
    if not (profile.get("smtpHost") or "").strip():
        missing.append("smtpHost")
    port = profile.get("smtpPort")
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        missing.append("smtpPort")
    if not (profile.get("smtpUser") or "").strip():
        missing.append("smtpUser")
    if not (profile.get("smtpPass") or "").strip():
        missing.append("smtpPass")
    return missing


@dataclass
class ConfirmationLinks:
    confirm_url: str
    unsubscribe_url: str


class SubscriptionService:
    def __init__(self, store: EmailStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------ delivery
    def links_for(self, subscriber: dict) -> ConfirmationLinks:
        base = self.settings.api_public_base_url
        return ConfirmationLinks(
            rendering.confirm_url(subscriber["confirmToken"], base),
            rendering.unsubscribe_url(subscriber["unsubscribeToken"], base),
        )

    async def deliver_confirmation(self, subscriber: dict):
        logger.info("[email] confirmation send requested email=%s", subscriber["email"])
        template = await self.store.get_confirmation_template()
        sender = await self.store.get_sender_profile()
        links = self.links_for(subscriber)
        result = await send_confirmation_email(
            ConfirmationRequest(
                to_email=subscriber["email"],
                first_name=rendering.first_name(subscriber["name"]),
                confirm_url=links.confirm_url,
                unsubscribe_url=links.unsubscribe_url,
                template=template,
                sender=sender,
            )
        )
        logger.info(
            "[email] confirmation send result email=%s provider=%s messageId=%s",
            subscriber["email"],
            result.provider,
            result.message_id,
        )
        return result

    async def _record_sent(self, subscriber: dict, source: str, result) -> None:
        await self.store.add_event(
            schema.EVENT_LEAD_CONFIRMATION_RESENT,
            subscriber_id=subscriber["id"],
            meta={
                "source": source,
                "confirmationDispatch": {
                    "state": "sent",
                    "messageId": result.message_id,
                    "accepted": result.accepted,
                    "rejected": result.rejected,
                    "at": js.utc_now_iso(),
                },
            },
        )

    async def deliver_in_background(self, subscriber: dict, source: str) -> None:
        """Send a confirmation after the response went out and record the outcome as an event."""
        try:
            result = await self.deliver_confirmation(subscriber)
        except Exception as exc:
            detail = getattr(exc, "detail_code", None) or "UNKNOWN"
            message = getattr(exc, "message", None) or str(exc) or "Unknown confirmation delivery error."
            logger.error(
                "[email] confirmation async send failed source=%s email=%s code=%s message=%s",
                source,
                subscriber["email"],
                detail,
                message,
            )
            await self.store.add_event(
                schema.EVENT_LEAD_CONFIRMATION_RESENT,
                subscriber_id=subscriber["id"],
                meta={
                    "source": source,
                    "confirmationDispatch": {
                        "state": "failed",
                        "errorCode": detail,
                        "errorMessage": message,
                        "at": js.utc_now_iso(),
                    },
                },
            )
            return
        await self._record_sent(subscriber, source, result)

    @property
    def sync_mode(self) -> bool:
        return self.settings.email_confirm_mode == "sync"

    # ------------------------------------------------------------------ public flow
    async def subscribe(self, name: str, email: str, phone: str = "") -> tuple[dict, Optional[dict]]:
        """
        Register a pending subscriber.

        Returns the response body plus, in async confirmation mode, the
        subscriber whose confirmation still has to be delivered.
        """
        if not self.settings.email_subscriptions_enabled:
            raise SubscriptionError("Subscriptions are temporarily disabled.", "SUBSCRIPTIONS_DISABLED", 503)
        name = (name or "").strip()
        email = (email or "").strip().lower()
        phone = (phone or "").strip()
        if not name:
            raise AppError("name is required.")
        if not email:
            raise AppError("email is required.")
        if not is_valid_email(email):
            raise AppError("email must be valid.")

        missing = sender_profile_missing_fields(await self.store.get_sender_profile())
        if missing:
            raise SubscriptionError(
                "Email sender profile is incomplete. Configure SMTP settings before accepting subscriptions.",
                "SMTP_SETTINGS_REQUIRED",
                400,
                missingFields=missing,
            )
        existing = await self.store.get_subscriber_by_email(email)
        if existing:
            raise SubscriptionError(
                "This email already exists in the subscriber list.", "ALREADY_SUBSCRIBED", 409, status=existing["status"]
            )

        subscriber = await self.store.upsert_pending_subscriber(name, email, phone)
        await self.store.add_event(
            schema.EVENT_LEAD_SUBSCRIBED,
            subscriber_id=subscriber["id"],
            meta={
                "source": schema.SUBSCRIBER_SOURCE_QUICK_GRABS,
                "confirmationDispatch": {"state": "sending" if self.sync_mode else "queued", "at": js.utc_now_iso()},
            },
        )
        body = {"ok": True, "subscriberId": subscriber["id"], "status": subscriber["status"]}
        if not self.sync_mode:
            return {**body, "delivery": "queued"}, subscriber

        try:
            result = await self.deliver_confirmation(subscriber)
        except EmailDeliveryError as exc:
            raise confirmation_failure(exc) from exc
        await self._record_sent(subscriber, f"{SOURCE_SUBSCRIBE}_sync", result)
        links = self.links_for(subscriber)
        body.update(
            {
                "delivery": "sent",
                "messageId": result.message_id,
                "accepted": result.accepted,
                "rejected": result.rejected,
                "confirmUrl": links.confirm_url,
                "unsubscribeUrl": links.unsubscribe_url,
            }
        )
        return body, None

    async def resend_confirmation(self, subscriber_id: str) -> tuple[dict, Optional[dict]]:
        subscriber = await self.store.get_subscriber_by_id(subscriber_id)
        if not subscriber:
            raise AppError("Subscriber not found.", "not_found", 404)
        if subscriber["status"] != schema.SUBSCRIBER_STATUS_PENDING:
            raise AppError("Only pending subscribers can receive confirmation resend.")
        if self.sync_mode:
            try:
                result = await self.deliver_confirmation(subscriber)
            except EmailDeliveryError as exc:
                raise confirmation_failure(exc) from exc
            await self._record_sent(subscriber, f"{SOURCE_ADMIN}_sync", result)
            return {"ok": True, "delivery": "sent", "subscriberId": subscriber["id"], "messageId": result.message_id}, None
        await self.store.add_event(
            schema.EVENT_LEAD_CONFIRMATION_RESENT,
            subscriber_id=subscriber["id"],
            meta={"source": SOURCE_ADMIN, "confirmationDispatch": {"state": "queued", "at": js.utc_now_iso()}},
        )
        return {"ok": True, "delivery": "queued", "subscriberId": subscriber["id"]}, subscriber

    async def delete_subscriber(self, subscriber_id: str) -> dict:
        deleted = await self.store.delete_subscriber_by_id(subscriber_id)
        if not deleted:
            raise AppError("Subscriber not found.", "not_found", 404)
        await self.store.add_event(
            schema.EVENT_LEAD_DELETED,
            subscriber_id=deleted["id"],
            meta={"source": SOURCE_ADMIN, "email": deleted["email"]},
        )
        return {"ok": True, "deletedId": deleted["id"]}

    # ------------------------------------------------------------------ token links
    def _result_url(self, page: str, status: str, reason: Optional[str] = None) -> str:
        query = {"status": status}
        if reason:
            query["reason"] = reason
        return f"{self.settings.client_public_base_url}/{page}?{urlencode(query)}"

    async def _apply_token(self, page: str, token: str, action, event_type: str) -> str:
        if not (token or "").strip():
            return self._result_url(page, "error", "invalid")
        try:
            subscriber = await action(token)
            if not subscriber:
                return self._result_url(page, "error", "invalid")
            await self.store.add_event(
                event_type, subscriber_id=subscriber["id"], meta={"source": schema.SUBSCRIBER_SOURCE_QUICK_GRABS}
            )
        except Exception:
            logger.exception("[email] %s token could not be applied", page)
            return self._result_url(page, "error", "failed")
        return self._result_url(page, "success")

    async def confirm(self, token: str) -> str:
        """Confirm by token and return the client page to redirect to."""
        return await self._apply_token(
            "confirm", token, self.store.confirm_subscriber_by_token, schema.EVENT_LEAD_CONFIRMED
        )

    async def unsubscribe(self, token: str) -> str:
        return await self._apply_token(
            "unsubscribe", token, self.store.unsubscribe_subscriber_by_token, schema.EVENT_LEAD_UNSUBSCRIBED
        )
