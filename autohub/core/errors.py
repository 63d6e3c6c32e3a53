"""Domain exceptions carried up to the routers and rendered as ``{"error": ...}``."""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    def __init__(self, message: str, code: str = "invalid", status_code: int = 400, **extra: Any):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.extra = extra

    def payload(self) -> dict:
        body = {"error": self.message}
        body.update({key: value for key, value in self.extra.items() if value is not None})
        return body


class AuthError(AppError):
    pass


class AuthRateLimitError(AuthError):
    def __init__(self, retry_after_sec: int):
        super().__init__("Too many attempts. Try again later.", "rate_limited", 429, retryAfterSec=retry_after_sec)
        self.retry_after_sec = retry_after_sec


class EmailDeliveryError(AppError):
    """SMTP failure; ``code`` is SMTP_NOT_CONFIGURED or SMTP_SEND_FAILED, ``detail_code`` the transport's."""

    def __init__(self, code: str, message: str, detail_code: Optional[str] = None):
        super().__init__(message, code, 502)
        self.detail_code = detail_code


class CampaignDeliveryError(AppError):
    def __init__(self, code: str, message: str):
        super().__init__(message, code, 502)
