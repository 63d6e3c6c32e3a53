from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.domain.account import (  # noqa: E402
    LOGIN_SUCCESS_MESSAGE,
    STEP_DONE,
    STEP_OTP,
    resolve_login_start,
    resolve_signup_start,
    validate_password_change_input,
)


@pytest.mark.parametrize(
    "current, new, confirm, expected",
    [
        ("", "longenough", "longenough", "All password fields are required."),
        ("old-pass", "short", "short", "New password must be at least 8 characters."),
        ("old-pass", "longenough", "different", "New password and confirmation do not match."),
        ("old-pass", "longenough", "longenough", ""),
    ],
)
def test_validate_password_change_input(current, new, confirm, expected):
    assert validate_password_change_input(current, new, confirm) == expected


def test_signup_start_always_moves_to_otp_step():
    plain = resolve_signup_start()
    with_dev = resolve_signup_start("123456")

    assert plain.step == STEP_OTP
    assert plain.info == "OTP sent to your email."
    assert with_dev.info == "OTP sent to your email. Dev OTP: 123456"


def test_login_start_depends_on_requires_otp():
    direct = resolve_login_start({"requiresOtp": False})
    otp = resolve_login_start({"requiresOtp": True, "devOtp": "999"})

    assert (direct.step, direct.info) == (STEP_DONE, LOGIN_SUCCESS_MESSAGE)
    assert otp.step == STEP_OTP
    assert otp.info.endswith("Dev OTP: 999")
