"""
Single-owner admin authentication persisted in ``auth/state.json``.

The document holds the owner account, live bearer sessions and the
per-scope failed-attempt counters used to throttle credential guessing.
OTP delivery is disabled: signup and login complete on the start step.
"""

from __future__ import annotations

import math
import time
from pathlib import Path
from typing import Any, Optional

from autohub.core import security
from autohub.core.async_queue import AsyncQueue
from autohub.core.errors import AuthError, AuthRateLimitError
from autohub.repositories import json_storage as js

SESSION_TTL_MS = 10 * 24 * 60 * 60 * 1000
ATTEMPT_WINDOW_MS = 10 * 60 * 1000
ATTEMPT_BLOCK_MS = 15 * 60 * 1000
MAX_START_ATTEMPTS = 5

SCOPE_SIGNUP_START = "signup:start"
SCOPE_LOGIN_START = "login:start"

OTP_DISABLED_MESSAGE = "OTP verification is disabled. Use email and password login."
NO_OWNER_MESSAGE = "Owner account not created yet."


def now_ms() -> int:
    return int(time.time() * 1000)


def attempt_key(scope: str, email: str) -> str:
    return f"{scope}:{email or 'unknown'}"


def _int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return int(value)


def normalize_owner(owner: Any) -> Optional[dict]:
    if not isinstance(owner, dict):
        return None
    return {
        **owner,
        "email": js.as_text(owner.get("email")).strip().lower(),
        "fullName": js.as_text(owner.get("fullName")) or "Boss Admin",
        "role": js.as_text(owner.get("role")) or "Owner",
        "timezone": js.as_text(owner.get("timezone")) or "UTC",
        "twoFactorEnabled": bool(owner.get("twoFactorEnabled")),
        "passwordHash": js.as_text(owner.get("passwordHash")),
        "passwordSalt": js.as_text(owner.get("passwordSalt")),
    }


def account_view(owner: dict) -> dict:
    return {
        "fullName": owner["fullName"],
        "email": owner["email"],
        "role": owner["role"],
        "timezone": owner["timezone"],
        "twoFactorEnabled": owner["twoFactorEnabled"],
    }


def register_failed_attempt(record: dict, key: str, max_attempts: int, timestamp: int) -> dict:
    current = record["attemptState"].get(key)
    if not current or timestamp - current["windowStart"] > ATTEMPT_WINDOW_MS:
        nxt = {"count": 1, "windowStart": timestamp, "blockedUntil": 0}
    else:
        count = current["count"] + 1
        nxt = {
            "count": count,
            "windowStart": current["windowStart"],
            "blockedUntil": timestamp + ATTEMPT_BLOCK_MS if count >= max_attempts else 0,
        }
    return {**record, "attemptState": {**record["attemptState"], key: nxt}}


def clear_attempt(record: dict, key: str) -> dict:
    if key not in record["attemptState"]:
        return record
    state = {k: v for k, v in record["attemptState"].items() if k != key}
    return {**record, "attemptState": state}


class AuthStore:
    def __init__(self, base_dir: Path) -> None:
        data_dir = js.ensure_dir(Path(base_dir) / "auth")
        self.path = data_dir / "state.json"
        self._initial = {
            "owner": None,
            "pendingSignup": None,
            "pendingOtp": None,
            "sessions": [],
            "attemptState": {},
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
        timestamp = now_ms()
        sessions = record.get("sessions") if isinstance(record.get("sessions"), list) else []
        active_sessions = [
            s
            for s in sessions
            if isinstance(s, dict) and isinstance(s.get("token"), str) and _int(s.get("expiresAt")) > timestamp
        ]
        attempts = record.get("attemptState") if isinstance(record.get("attemptState"), dict) else {}
        active_attempts = {}
        for key, value in attempts.items():
            if not isinstance(value, dict):
                continue
            state = {
                "count": _int(value.get("count")),
                "windowStart": _int(value.get("windowStart")),
                "blockedUntil": _int(value.get("blockedUntil")),
            }
            if state["blockedUntil"] > timestamp or timestamp - state["windowStart"] <= ATTEMPT_WINDOW_MS:
                active_attempts[key] = state
        return {
            **record,
            "owner": normalize_owner(record.get("owner")),
            "sessions": active_sessions,
            "attemptState": active_attempts,
        }

    async def _save(self, record: dict) -> dict:
        nxt = js.stamp(record)
        await js.write_json(self.path, nxt)
        return nxt

    @staticmethod
    def _assert_not_blocked(record: dict, key: str) -> None:
        state = record["attemptState"].get(key)
        if not state:
            return
        remaining = state["blockedUntil"] - now_ms()
        if remaining > 0:
            raise AuthRateLimitError(math.ceil(remaining / 1000))

    @staticmethod
    def _new_session() -> dict:
        return {"token": security.new_session_token(), "createdAt": js.utc_now_iso(), "expiresAt": now_ms() + SESSION_TTL_MS}

    @staticmethod
    def _session_payload(session: dict, owner_email: str) -> dict:
        return {"token": session["token"], "expiresAt": session["expiresAt"], "ownerEmail": owner_email}

    @staticmethod
    def _require_owner(record: dict) -> dict:
        owner = record["owner"]
        if not owner:
            raise AuthError(NO_OWNER_MESSAGE, "no_owner")
        return owner

    # -------------------------------------- operations --------------------------------------
    async def get_status(self) -> dict:
        record = await self._read()
        return {"hasOwner": bool(record["owner"])}

    async def start_signup(self, email: str, password: str) -> dict:
        async def task() -> dict:
            normalized_email = (email or "").strip().lower()
            record = await self._read()
            key = attempt_key(SCOPE_SIGNUP_START, normalized_email)
            self._assert_not_blocked(record, key)
            if "@" not in normalized_email:
                await self._save(register_failed_attempt(record, key, MAX_START_ATTEMPTS, now_ms()))
                raise AuthError("Valid email is required.", "invalid_email")
            if len(password or "") < 8:
                await self._save(register_failed_attempt(record, key, MAX_START_ATTEMPTS, now_ms()))
                raise AuthError("Password must be at least 8 characters.", "weak_password")
            if record["owner"]:
                raise AuthError("Owner account already exists. Signup is disabled.", "owner_exists")
            owner = {
                "email": normalized_email,
                "fullName": "Boss Admin",
                "role": "Owner",
                "timezone": "UTC",
                "twoFactorEnabled": False,
                "passwordHash": security.hash_password(password),
                "passwordSalt": "",
                "createdAt": js.utc_now_iso(),
            }
            session = self._new_session()
            nxt = {**record, "owner": owner, "pendingSignup": None, "pendingOtp": None, "sessions": [session]}
            await self._save(clear_attempt(nxt, key))
            return self._session_payload(session, normalized_email)

        return await self._queue.run(task)

    async def verify_signup(self, email: str, otp: str) -> dict:
        async def task() -> dict:
            raise AuthError(OTP_DISABLED_MESSAGE, "otp_disabled")

        return await self._queue.run(task)

    async def start_login(self, email: str, password: str) -> dict:
        async def task() -> dict:
            normalized_email = (email or "").strip().lower()
            record = await self._read()
            key = attempt_key(SCOPE_LOGIN_START, normalized_email)
            self._assert_not_blocked(record, key)
            owner = record["owner"]
            valid = (
                owner is not None
                and owner["email"] == normalized_email
                and security.verify_password(password or "", owner["passwordHash"], owner["passwordSalt"])
            )
            if not valid:
                await self._save(register_failed_attempt(record, key, MAX_START_ATTEMPTS, now_ms()))
                raise AuthError("Invalid credentials.", "invalid_credentials")
            if security.is_legacy_hash(owner["passwordHash"]):
                owner = {**owner, "passwordHash": security.hash_password(password), "passwordSalt": ""}
            session = self._new_session()
            nxt = {**record, "owner": owner, "pendingOtp": None, "sessions": [*record["sessions"], session]}
            await self._save(clear_attempt(nxt, key))
            return self._session_payload(session, normalized_email)

        return await self._queue.run(task)

    async def verify_login(self, email: str, otp: str) -> dict:
        async def task() -> dict:
            raise AuthError(OTP_DISABLED_MESSAGE, "otp_disabled")

        return await self._queue.run(task)

    async def verify_session(self, token: str) -> bool:
        if not token:
            return False
        record = await self._read()
        timestamp = now_ms()
        return any(s["token"] == token and s["expiresAt"] > timestamp for s in record["sessions"])

    async def logout(self, token: str) -> None:
        async def task() -> None:
            record = await self._read()
            sessions = [s for s in record["sessions"] if s["token"] != token]
            await self._save({**record, "sessions": sessions})

        await self._queue.run(task)

    async def logout_all(self, keep_token: Optional[str] = None) -> None:
        """Drop every session, except ``keep_token`` when it is still live."""

        async def task() -> None:
            record = await self._read()
            kept = [s for s in record["sessions"] if keep_token and s["token"] == keep_token]
            await self._save({**record, "sessions": kept[:1]})

        await self._queue.run(task)

    async def get_account_settings(self) -> dict:
        record = await self._read()
        return account_view(self._require_owner(record))

    async def update_account_settings(self, full_name: str, timezone: str, two_factor_enabled: bool = False) -> dict:
        async def task() -> dict:
            record = await self._read()
            owner = self._require_owner(record)
            # Email and role are fixed after signup; 2FA stays off while OTP is disabled.
            nxt_owner = {
                **owner,
                "fullName": (full_name or "").strip() or "Boss Admin",
                "timezone": (timezone or "").strip() or "UTC",
                "twoFactorEnabled": False,
            }
            await self._save({**record, "owner": nxt_owner})
            return account_view(nxt_owner)

        return await self._queue.run(task)

    async def change_password(self, current_password: str, new_password: str) -> dict:
        """Replace the password and rotate every session into one fresh session."""

        async def task() -> dict:
            record = await self._read()
            owner = self._require_owner(record)
            if not current_password or not new_password:
                raise AuthError("Current and new password are required.", "missing_password")
            if not security.verify_password(current_password, owner["passwordHash"], owner["passwordSalt"]):
                raise AuthError("Current password is incorrect.", "invalid_credentials")
            if len(new_password) < 8:
                raise AuthError("New password must be at least 8 characters.", "weak_password")
            nxt_owner = {**owner, "passwordHash": security.hash_password(new_password), "passwordSalt": ""}
            session = self._new_session()
            await self._save({**record, "owner": nxt_owner, "pendingOtp": None, "sessions": [session]})
            return self._session_payload(session, nxt_owner["email"])

        return await self._queue.run(task)
