"""Uploaded media files and their metadata list (``media.json``)."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from autohub.core.async_queue import AsyncQueue
from autohub.repositories import json_storage as js


def _items(value) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _unlink_quietly(path: Path) -> None:
    path.unlink(missing_ok=True)


class MediaStore:
    def __init__(self, base_dir: Path) -> None:
        self.base_dir = js.ensure_dir(Path(base_dir))
        self.uploads_dir = js.ensure_dir(self.base_dir / "uploads")
        self.metadata_path = self.base_dir / "media.json"
        js.save(self.metadata_path, _items(js.load(self.metadata_path, [])))
        self._queue = AsyncQueue()

    async def _read(self) -> list[dict]:
        return _items(await js.read_json(self.metadata_path, []))

    async def list(self) -> list[dict]:
        items = await self._read()
        return sorted(items, key=lambda item: js.as_text(item.get("createdAt")), reverse=True)

    async def add(self, *, name: str, file_name: str, url: str, mime: str, size_bytes: int) -> dict:
        async def task() -> dict:
            item = {
                "name": name,
                "fileName": file_name,
                "url": url,
                "mime": mime,
                "sizeBytes": size_bytes,
                "id": js.new_id(),
                "createdAt": js.utc_now_iso(),
            }
            items = await self._read()
            await js.write_json(self.metadata_path, [item, *items])
            return item

        return await self._queue.run(task)

    async def remove(self, media_id: str) -> Optional[dict]:
        """Drop the metadata entry and its file; an already missing file is fine."""

        async def task() -> Optional[dict]:
            items = await self._read()
            target = next((item for item in items if item.get("id") == media_id), None)
            if target is None:
                return None
            await js.write_json(self.metadata_path, [item for item in items if item.get("id") != media_id])
            file_name = Path(js.as_text(target.get("fileName"))).name
            if file_name:
                await asyncio.to_thread(_unlink_quietly, self.uploads_dir / file_name)
            return target

        return await self._queue.run(task)
