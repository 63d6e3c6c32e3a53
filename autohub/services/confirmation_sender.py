"""Double opt-in confirmation and SMTP test emails."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from autohub.core import mailer
from autohub.core.config import get_settings
from autohub.core.errors import EmailDeliveryError
from autohub.services import email_rendering as rendering

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationRequest:
    to_email: str
    first_name: str
    confirm_url: str
    unsubscribe_url: str
    template: dict
    sender: dict


def _context(request: ConfirmationRequest) -> dict:
    return {
        "first_name": request.first_name,
        "email": request.to_email,
        "confirm_subscription_link": request.confirm_url,
        "unsubscribe_link": request.unsubscribe_url,
    }


async def send_confirmation_email(request: ConfirmationRequest) -> mailer.DeliveryResult:
    template, sender = request.template, request.sender
    rendered = rendering.render_email(
        subject=template["subject"],
        preview_text=template["previewText"],
        body_mode=template["mode"],
        body_rich=template["bodyRich"],
        body_html=template["bodyHtml"],
        context=_context(request),
        unsubscribe=request.unsubscribe_url,
        include_footer=sender["includeUnsubscribeFooter"],
    )
    settings = get_settings()
    if settings.smtp_disabled:
        logger.info("[email] smtp disabled; confirmation for %s simulated", request.to_email)
        return mailer.simulated_result(request.to_email)

    transport = mailer.transport_from_profile(sender)
    if not transport.ready:
        raise EmailDeliveryError(mailer.SMTP_NOT_CONFIGURED, "SMTP is not configured for confirmation email sending.")
    checks = sender["checks"]
    if checks["subjectSafe"] and not rendering.is_subject_safe(rendered.subject):
        raise EmailDeliveryError(mailer.SMTP_SEND_FAILED, "Subject is invalid for safe delivery.")
    if checks["unsubscribeLink"] and not rendering.has_unsubscribe_link(rendered.text, rendered.html, request.unsubscribe_url):
        raise EmailDeliveryError(mailer.SMTP_SEND_FAILED, "Unsubscribe link is required in confirmation email.")
    if checks["addressIncluded"] and not settings.mailing_address:
        raise EmailDeliveryError(mailer.SMTP_SEND_FAILED, "MAILING_ADDRESS is required by compliance checks.")

    from_email = rendering.resolve_effective_from_email(sender["fromEmail"], sender["smtpUser"])
    if from_email != sender["fromEmail"]:
        logger.info("[email] sender adjusted from=%s to=%s for smtpUser=%s", sender["fromEmail"], from_email, sender["smtpUser"])
    reply_to = sender["replyTo"] or from_email
    result = await mailer.send_email_async(
        transport,
        mailer.OutgoingEmail(
            from_name=sender["fromName"],
            from_email=from_email,
            to_email=request.to_email,
            subject=rendered.subject,
            text=rendered.text_with_preview(),
            html=rendered.html_with_preview(),
            reply_to=reply_to,
            headers=rendering.list_unsubscribe_headers(request.unsubscribe_url, reply_to),
        ),
    )
    logger.info(
        "[email] CONFIRMATION_SENT messageId=%s to=%s accepted=%s rejected=%s",
        result.message_id,
        request.to_email,
        ";".join(result.accepted) or "(none)",
        ";".join(result.rejected) or "(none)",
    )
    return result


async def send_smtp_test_email(to_email: str, sender: dict) -> mailer.DeliveryResult:
    if get_settings().smtp_disabled:
        return mailer.simulated_result(to_email)
    transport = mailer.transport_from_profile(sender)
    if not transport.ready:
        raise EmailDeliveryError(mailer.SMTP_NOT_CONFIGURED, "SMTP is not configured for test email sending.")
    from_email = rendering.resolve_effective_from_email(sender["fromEmail"], sender["smtpUser"])
    result = await mailer.send_email_async(
        transport,
        mailer.OutgoingEmail(
            from_name=sender["fromName"] or "AutoHub",
            from_email=from_email,
            to_email=to_email,
            subject="SMTP test from AutoHub",
            text="SMTP test successful.",
            html="<p>SMTP test successful.</p>",
            reply_to=sender["replyTo"] or from_email,
        ),
    )
    logger.info("[email] SMTP_TEST_SENT messageId=%s to=%s", result.message_id, to_email)
    return result
