"""
SMTP adapter for the AutoHub backend.

Connection details come from the sender profile stored with the email
state (itself defaulting to the SMTP_* settings). Sends are blocking and
run in a worker thread; failures surface as EmailDeliveryError.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

from .config import get_settings
from .errors import EmailDeliveryError

logger = logging.getLogger(__name__)

SMTP_NOT_CONFIGURED = "SMTP_NOT_CONFIGURED"
SMTP_SEND_FAILED = "SMTP_SEND_FAILED"


@dataclass
class SmtpTransport:
    host: str
    port: int
    user: str
    password: str
    secure: bool

    @property
    def ready(self) -> bool:
        return bool(self.host and self.port and self.user and self.password)


@dataclass
class OutgoingEmail:
    from_name: str
    from_email: str
    to_email: str
    subject: str
    text: str
    html: Optional[str] = None
    reply_to: str = ""
    headers: dict = field(default_factory=dict)


@dataclass
class DeliveryResult:
    provider: str
    message_id: str
    accepted: list[str]
    rejected: list[str]

    def as_dict(self) -> dict:
        return {
            "ok": True,
            "delivered": True,
            "provider": self.provider,
            "messageId": self.message_id,
            "accepted": self.accepted,
            "rejected": self.rejected,
        }


def resolve_smtp_secure(port: int, secure: bool) -> bool:
    """Port 465 is implicit TLS and 587 is STARTTLS; other ports keep the stored flag."""
    if port == 465:
        return True
    if port == 587:
        return False
    return secure


def transport_from_profile(profile: dict) -> SmtpTransport:
    port = int(profile.get("smtpPort") or 0)
    return SmtpTransport(
        host=profile.get("smtpHost") or "",
        port=port,
        user=profile.get("smtpUser") or "",
        password=profile.get("smtpPass") or "",
        secure=resolve_smtp_secure(port, bool(profile.get("smtpSecure"))),
    )


def simulated_result(to_email: str) -> DeliveryResult:
    return DeliveryResult("console", "test-message-id", [to_email], [])


def _tls_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not get_settings().smtp_tls_reject_unauthorized:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _detail_code(exc: Exception) -> str:
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return "EAUTH"
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return "EENVELOPE"
    if isinstance(exc, smtplib.SMTPResponseException):
        return str(exc.smtp_code)
    if isinstance(exc, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected, OSError)):
        return "ECONNECTION"
    return "UNKNOWN"


def _build_message(email: OutgoingEmail, message_id: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = email.subject
    msg["From"] = formataddr((email.from_name, email.from_email))
    msg["To"] = email.to_email
    msg["Message-ID"] = message_id
    if email.reply_to:
        msg["Reply-To"] = email.reply_to
    for name, value in email.headers.items():
        msg[name] = value
    msg.attach(MIMEText(email.text, "plain", "utf-8"))
    if email.html is not None:
        msg.attach(MIMEText(email.html, "html", "utf-8"))
    return msg


def _open(transport: SmtpTransport) -> smtplib.SMTP:
    context = _tls_context()
    if transport.secure:
        return smtplib.SMTP_SSL(transport.host, transport.port, context=context, timeout=30)
    server = smtplib.SMTP(transport.host, transport.port, timeout=30)
    server.ehlo()
    if server.has_extn("starttls"):
        server.starttls(context=context)
        server.ehlo()
    return server


def send_email(transport: SmtpTransport, email: OutgoingEmail) -> DeliveryResult:
    """Send one message over SMTP, raising EmailDeliveryError on any transport failure."""
    if not transport.ready:
        raise EmailDeliveryError(SMTP_NOT_CONFIGURED, "SMTP is not configured for email sending.")
    message_id = make_msgid(domain=email.from_email.rpartition("@")[2] or None)
    msg = _build_message(email, message_id)
    logger.info(
        "[email] smtp transport host=%s port=%s secure=%s tlsRejectUnauthorized=%s",
        transport.host,
        transport.port,
        transport.secure,
        get_settings().smtp_tls_reject_unauthorized,
    )
    try:
        with _open(transport) as server:
            server.login(transport.user, transport.password)
            refused = server.sendmail(email.from_email, [email.to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        code = _detail_code(exc)
        logger.error("[email] EMAIL_FAILED name=%s code=%s message=%s", type(exc).__name__, code, exc)
        raise EmailDeliveryError(SMTP_SEND_FAILED, str(exc) or "SMTP send failed.", code) from exc
    rejected = sorted(refused)
    accepted = [email.to_email] if email.to_email not in refused else []
    return DeliveryResult("smtp", message_id, accepted, rejected)


async def send_email_async(transport: SmtpTransport, email: OutgoingEmail) -> DeliveryResult:
    return await asyncio.to_thread(send_email, transport, email)
