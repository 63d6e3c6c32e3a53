"""Published and draft storefront content in ``site/content.json``."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from autohub.core.async_queue import AsyncQueue
from autohub.domain.site_content import default_published_content, is_legacy_empty, validate_site_content
from autohub.repositories import json_storage as js


class SiteStore:
    def __init__(self, base_dir: Path) -> None:
        data_dir = js.ensure_dir(Path(base_dir) / "site")
        self.path = data_dir / "content.json"
        self._initial = {"published": default_published_content(), "draft": None, "updatedAt": js.utc_now_iso()}
        existing = js.load(self.path, self._initial)
        if not isinstance(existing, dict):
            existing = self._initial
        if existing.get("draft") is None and is_legacy_empty(existing.get("published")):
            existing = {**existing, "published": default_published_content(), "draft": None, "updatedAt": js.utc_now_iso()}
        js.save(self.path, existing)
        self._queue = AsyncQueue()

    async def _read(self) -> dict:
        record = await js.read_json(self.path, self._initial)
        if not isinstance(record, dict):
            return dict(self._initial)
        return record

    async def _save(self, record: dict) -> dict:
        nxt = js.stamp(record)
        await js.write_json(self.path, nxt)
        return nxt

    async def get_published(self) -> dict:
        return (await self._read()).get("published")

    async def get_draft(self) -> Optional[dict]:
        return (await self._read()).get("draft")

    async def get_meta(self) -> dict:
        record = await self._read()
        return {"updatedAt": record.get("updatedAt"), "hasDraft": bool(record.get("draft"))}

    async def save_draft(self, draft: dict) -> dict:
        content = validate_site_content(draft)

        async def task() -> dict:
            record = await self._read()
            await self._save({**record, "draft": content})
            return content

        return await self._queue.run(task)

    async def publish(self, payload: Optional[dict] = None) -> dict:
        """Publish ``payload``, else the draft, else re-validate the current published content."""

        async def task() -> dict:
            record = await self._read()
            candidate = payload if payload is not None else record.get("draft") or record.get("published")
            content = validate_site_content(candidate)
            nxt = await self._save({**record, "published": content, "draft": None})
            return nxt["published"]

        return await self._queue.run(task)

    async def reset(self) -> dict:
        async def task() -> dict:
            nxt = {"published": default_published_content(), "draft": None, "updatedAt": js.utc_now_iso()}
            await js.write_json(self.path, nxt)
            return nxt

        return await self._queue.run(task)
