"""Security helpers (hashing, verification and opaque tokens)."""

from __future__ import annotations

import hashlib
import secrets
import uuid

from argon2 import PasswordHasher, exceptions as argon_exc

_ph = PasswordHasher()
_PREFIX = "argon2$"


def hash_password(password: str) -> str:
    """Create a modern Argon2 hash with a prefix for detection."""
    hashed = _ph.hash(password)
    return f"{_PREFIX}{hashed}"


def _legacy_hash(password: str, salt: str) -> str:
    # Old deployments stored scrypt(N=16384, r=8, p=1, 64 bytes) with the hex salt used as text.
    return hashlib.scrypt(password.encode(), salt=salt.encode(), n=2**14, r=8, p=1, dklen=64).hex()


def is_legacy_hash(stored_hash: str | None) -> bool:
    return not (stored_hash or "").startswith(_PREFIX)


def verify_password(password: str, stored_hash: str | None, legacy_salt: str | None = None) -> bool:
    stored = stored_hash or ""
    if not stored:
        return False
    if stored.startswith(_PREFIX):
        hashed = stored[len(_PREFIX) :]
        try:
            return _ph.verify(hashed, password)
        except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
            return False
    if not legacy_salt:
        return False
    legacy = _legacy_hash(password, legacy_salt)
    return secrets.compare_digest(legacy, stored.lower())


def new_session_token() -> str:
    return str(uuid.uuid4())


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
