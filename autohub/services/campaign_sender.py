"""Bulk campaign delivery to confirmed subscribers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from autohub.core import mailer
from autohub.core.config import get_settings
from autohub.core.errors import CampaignDeliveryError, EmailDeliveryError
from autohub.services import email_rendering as rendering

logger = logging.getLogger(__name__)


@dataclass
class CampaignSendReport:
    attempted: int
    delivered: int
    provider: str
    failures: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "delivered": self.delivered,
            "failed": len(self.failures),
            "failures": self.failures,
            "provider": self.provider,
        }


async def send_campaign_emails(campaign: dict, recipients: list[dict], sender: dict) -> CampaignSendReport:
    """
    Render and send ``campaign`` to each recipient in turn.

    Per-recipient problems are collected in ``failures``; the call raises
    only when configuration is missing or nothing at all was delivered.
    """
    settings = get_settings()
    if settings.smtp_disabled:
        logger.info("[email] smtp disabled; campaign %s simulated for %d recipients", campaign.get("id"), len(recipients))
        return CampaignSendReport(len(recipients), 0, "console")

    transport = mailer.transport_from_profile(sender)
    if not transport.ready:
        raise CampaignDeliveryError(mailer.SMTP_NOT_CONFIGURED, "SMTP is not configured for campaign email sending.")
    checks = sender["checks"]
    if checks["addressIncluded"] and not settings.mailing_address:
        raise CampaignDeliveryError(mailer.SMTP_SEND_FAILED, "MAILING_ADDRESS is required by compliance checks.")

    from_email = rendering.resolve_effective_from_email(sender["fromEmail"], sender["smtpUser"])
    if from_email != sender["fromEmail"]:
        logger.info("[email] campaign sender adjusted from=%s to=%s", sender["fromEmail"], from_email)
    reply_to = sender["replyTo"] or from_email

    delivered = 0
    failures: list[dict] = []
    for recipient in recipients:
        unsubscribe = rendering.unsubscribe_url(recipient["unsubscribeToken"], settings.api_public_base_url)
        context = {
            "first_name": rendering.first_name(recipient["name"]),
            "email": recipient["email"],
            "unsubscribe_link": unsubscribe,
        }
        rendered = rendering.render_email(
            subject=campaign["subject"],
            preview_text=campaign["previewText"],
            body_mode=campaign["bodyMode"],
            body_rich=campaign["bodyRich"],
            body_html=campaign["bodyHtml"],
            context=context,
            unsubscribe=unsubscribe,
            include_footer=sender["includeUnsubscribeFooter"],
        )
        if checks["subjectSafe"] and not rendering.is_subject_safe(rendered.subject):
            failures.append({"email": recipient["email"], "error": "Invalid campaign subject."})
            continue
        if checks["unsubscribeLink"] and not rendering.has_unsubscribe_link(rendered.text, rendered.html, unsubscribe):
            failures.append({"email": recipient["email"], "error": "Unsubscribe link is required in campaign email."})
            continue
        try:
            await mailer.send_email_async(
                transport,
                mailer.OutgoingEmail(
                    from_name=sender["fromName"],
                    from_email=from_email,
                    to_email=recipient["email"],
                    subject=rendered.subject,
                    text=rendered.text_with_preview(),
                    html=rendered.html_with_preview(),
                    reply_to=reply_to,
                    headers=rendering.list_unsubscribe_headers(unsubscribe, reply_to),
                ),
            )
        except EmailDeliveryError as exc:
            failures.append({"email": recipient["email"], "error": exc.message})
            continue
        delivered += 1

    if delivered == 0 and failures:
        raise CampaignDeliveryError(mailer.SMTP_SEND_FAILED, failures[0]["error"])
    logger.info("[email] campaign %s delivered=%d failed=%d", campaign.get("id"), delivered, len(failures))
    return CampaignSendReport(len(recipients), delivered, "smtp", failures)
