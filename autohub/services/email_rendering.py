"""
Rendering helpers shared by confirmation and campaign emails.

Merge tags use the ``{{tag}}`` syntax. Only tags named in the render context
are substituted; anything else between braces is written back byte for byte
so stray placeholders stay visible to the sender.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import quote

from autohub.core.config import get_settings
from autohub.domain import schema

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ANGLE_ADDRESS = re.compile(r"<([^<>]+)>")
_MERGE_TAG = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_TAG = re.compile(r"<[^>]*>")
_SPACE = re.compile(r"\s+")

RICH_WRAPPER = '<div style="font-family:Arial,sans-serif;line-height:1.6">{}</div>'
PREVIEW_WRAPPER = '<div style="display:none;max-height:0;overflow:hidden;mso-hide:all">{}</div>'


def render_merge_tags(value: str, context: Mapping[str, str], *, escape: bool = False) -> str:
    if not value or "{{" not in value:
        return value or ""

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in context:
            return match.group(0)
        text = str(context[name])
        return html.escape(text, quote=True) if escape else text

    return _MERGE_TAG.sub(replace, value)


def first_name(full_name: str) -> str:
    parts = (full_name or "").strip().split()
    return parts[0] if parts else "there"


def rich_to_html(value: str) -> str:
    return html.escape(value, quote=True).replace("&#x27;", "&#39;").replace("\n", "<br/>")


def strip_html(value: str) -> str:
    return _SPACE.sub(" ", _TAG.sub(" ", value)).strip()


def extract_email(value: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed:
        return ""
    match = _ANGLE_ADDRESS.search(trimmed)
    candidate = (match.group(1) if match else trimmed).strip().lower()
    return candidate if EMAIL_PATTERN.match(candidate) else ""


def resolve_effective_from_email(from_email: str, smtp_user: str) -> str:
    """Mail providers reject a From that differs from the authenticated user, so the SMTP user wins."""
    preferred = extract_email(from_email)
    auth = extract_email(smtp_user)
    if not auth:
        return preferred or from_email
    if not preferred or preferred != auth:
        return auth
    return preferred


def is_subject_safe(subject: str) -> bool:
    if "\r" in subject or "\n" in subject:
        return False
    return bool(subject.strip())


def has_unsubscribe_link(text: str, html_body: str, unsubscribe_url: str) -> bool:
    return unsubscribe_url in text or unsubscribe_url in html_body


def contains_unsubscribe_tag(*bodies: str) -> bool:
    return any(schema.UNSUBSCRIBE_TAG in (body or "") for body in bodies)


def unsubscribe_url(token: str, api_base_url: str | None = None) -> str:
    base = api_base_url or get_settings().api_public_base_url
    return f"{base}/api/email/unsubscribe?token={quote(token, safe='')}"


def confirm_url(token: str, api_base_url: str | None = None) -> str:
    base = api_base_url or get_settings().api_public_base_url
    return f"{base}/api/email/confirm?token={quote(token, safe='')}"


def compliance_footer(unsubscribe: str) -> tuple[str, str]:
    address = get_settings().mailing_address
    address_line = f"Mailing address: {address}" if address else ""
    text_footer = "\n".join(line for line in (address_line, f"Unsubscribe: {unsubscribe}") if line)
    html_footer = (
        '<hr style="margin:24px 0;border:none;border-top:1px solid #e2e8f0;" />'
        '<p style="font-size:12px;color:#64748b;line-height:1.5;">'
        f"{f'Mailing address: {address}<br/>' if address else ''}"
        f'Unsubscribe: <a href="{unsubscribe}">{unsubscribe}</a></p>'
    )
    return text_footer, html_footer


@dataclass
class RenderedEmail:
    subject: str
    preview: str
    text: str
    html: str

    def text_with_preview(self) -> str:
        return f"{self.preview}\n\n{self.text}" if self.preview else self.text

    def html_with_preview(self) -> str:
        return PREVIEW_WRAPPER.format(self.preview) + self.html if self.preview else self.html


def render_email(
    *,
    subject: str,
    preview_text: str,
    body_mode: str,
    body_rich: str,
    body_html: str,
    context: Mapping[str, str],
    unsubscribe: str,
    include_footer: bool,
) -> RenderedEmail:
    rendered_subject = render_merge_tags(subject, context)
    rendered_preview = render_merge_tags(preview_text, context)
    if body_mode == schema.BODY_MODE_HTML:
        html_body = render_merge_tags(body_html, context, escape=True)
        text_body = strip_html(html_body)
    else:
        text_body = render_merge_tags(body_rich, context)
        html_body = RICH_WRAPPER.format(rich_to_html(text_body))
    if include_footer:
        text_footer, html_footer = compliance_footer(unsubscribe)
        text_body = f"{text_body}\n\n{text_footer}".strip()
        html_body = f"{html_body}{html_footer}"
    return RenderedEmail(rendered_subject, rendered_preview, text_body, html_body)


def list_unsubscribe_headers(unsubscribe: str, reply_to: str) -> dict:
    return {
        "List-Unsubscribe": f"<{unsubscribe}>, <mailto:{reply_to}?subject=unsubscribe>",
        "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
    }
