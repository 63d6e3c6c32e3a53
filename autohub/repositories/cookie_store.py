"""Cookie consent records persisted in ``cookies/consents.json``."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Optional

from autohub.core.async_queue import AsyncQueue
from autohub.repositories import json_storage as js


def normalize_consent_id(value: str) -> str:
    return (value or "").strip().lower()


def _version(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number):
        return 1
    return max(1, math.floor(number))


def normalize_consent(item: dict) -> dict:
    now = js.utc_now_iso()
    raw_id = item.get("id")
    return {
        "id": normalize_consent_id(raw_id) if isinstance(raw_id, str) and raw_id.strip() else js.new_id(),
        "version": _version(item.get("version")),
        "essential": True,
        "analytics": bool(item.get("analytics")),
        "marketing": bool(item.get("marketing")),
        "preferences": bool(item.get("preferences")),
        "source": item["source"][:80] if isinstance(item.get("source"), str) else "web",
        "ipHash": item["ipHash"][:160] if isinstance(item.get("ipHash"), str) else "",
        "userAgent": item["userAgent"][:320] if isinstance(item.get("userAgent"), str) else "",
        "createdAt": item.get("createdAt") if isinstance(item.get("createdAt"), str) and item.get("createdAt") else now,
        "updatedAt": item.get("updatedAt") if isinstance(item.get("updatedAt"), str) and item.get("updatedAt") else now,
    }


class CookieConsentStore:
    """Upsert/lookup of consent choices keyed by the client-generated consent id."""

    def __init__(self, base_dir: Path) -> None:
        data_dir = js.ensure_dir(Path(base_dir) / "cookies")
        self.path = data_dir / "consents.json"
        initial = {"consents": [], "updatedAt": js.utc_now_iso()}
        existing = js.load(self.path, initial)
        if not isinstance(existing, dict):
            existing = initial
        consents = existing.get("consents")
        updated_at = existing.get("updatedAt")
        self._fallback = {
            "consents": [normalize_consent(c) for c in consents if isinstance(c, dict)] if isinstance(consents, list) else [],
            "updatedAt": updated_at if isinstance(updated_at, str) and updated_at else js.utc_now_iso(),
        }
        js.save(self.path, self._fallback)
        self._queue = AsyncQueue()

    async def _read(self) -> dict:
        record = await js.read_json(self.path, self._fallback)
        if not isinstance(record, dict):
            record = dict(self._fallback)
        consents = record.get("consents")
        record["consents"] = [normalize_consent(c) for c in consents if isinstance(c, dict)] if isinstance(consents, list) else []
        return record

    async def _save(self, record: dict) -> dict:
        nxt = js.stamp(record)
        await js.write_json(self.path, nxt)
        return nxt

    async def upsert_consent(
        self,
        consent_id: str,
        *,
        version: int,
        analytics: bool,
        marketing: bool,
        preferences: bool,
        source: str,
        ip_hash: str,
        user_agent: str,
    ) -> dict:
        async def task() -> dict:
            record = await self._read()
            target_id = normalize_consent_id(consent_id)
            now = js.utc_now_iso()
            changes = {
                "version": version,
                "analytics": analytics,
                "marketing": marketing,
                "preferences": preferences,
                "source": source,
                "ipHash": ip_hash,
                "userAgent": user_agent,
                "updatedAt": now,
            }
            consents = list(record["consents"])
            for index, current in enumerate(consents):
                if current["id"] == target_id:
                    updated = normalize_consent({**current, **changes})
                    consents[index] = updated
                    await self._save({**record, "consents": consents})
                    return updated
            created = normalize_consent({"id": target_id, **changes, "createdAt": now})
            await self._save({**record, "consents": [created, *consents]})
            return created

        return await self._queue.run(task)

    async def get_by_id(self, consent_id: str) -> Optional[dict]:
        target_id = normalize_consent_id(consent_id)
        if not target_id:
            return None
        record = await self._read()
        return next((c for c in record["consents"] if c["id"] == target_id), None)
