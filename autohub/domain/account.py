"""Account form validation and auth flow step resolution."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

STEP_CREDENTIALS = "credentials"
STEP_OTP = "otp"
STEP_DONE = "done"

OTP_SENT_MESSAGE = "OTP sent to your email."
LOGIN_SUCCESS_MESSAGE = "Login successful."


@dataclass(frozen=True)
class FlowResolution:
    step: str
    info: str


def validate_password_change_input(current_password: str, new_password: str, confirm_password: str) -> str:
    """Return the first problem with a password change form, or ``""`` when it is valid."""
    if not current_password or not new_password or not confirm_password:
        return "All password fields are required."
    if len(new_password) < 8:
        return "New password must be at least 8 characters."
    if new_password != confirm_password:
        return "New password and confirmation do not match."
    return ""


def _with_dev_otp(message: str, dev_otp: Optional[str]) -> str:
    return f"{message} Dev OTP: {dev_otp}" if dev_otp else message


def resolve_signup_start(dev_otp: Optional[str] = None) -> FlowResolution:
    return FlowResolution(STEP_OTP, _with_dev_otp(OTP_SENT_MESSAGE, dev_otp))


def resolve_login_start(payload: Mapping[str, Any]) -> FlowResolution:
    if payload.get("requiresOtp"):
        return FlowResolution(STEP_OTP, _with_dev_otp(OTP_SENT_MESSAGE, payload.get("devOtp")))
    return FlowResolution(STEP_DONE, LOGIN_SUCCESS_MESSAGE)
