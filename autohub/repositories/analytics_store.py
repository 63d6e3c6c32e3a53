"""Storefront analytics events appended to ``analytics/events.json``."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Any

from autohub.core.async_queue import AsyncQueue
from autohub.repositories import json_storage as js

PRODUCT_CLICK_EVENT = "product_link_click"


class AnalyticsStore:
    def __init__(self, base_dir: Path) -> None:
        data_dir = js.ensure_dir(Path(base_dir) / "analytics")
        self.path = data_dir / "events.json"
        existing = js.load(self.path, [])
        js.save(self.path, existing if isinstance(existing, list) else [])
        self._queue = AsyncQueue()

    async def list(self) -> list[dict]:
        events = await js.read_json(self.path, [])
        if not isinstance(events, list):
            return []
        return [event for event in events if isinstance(event, dict)]

    async def add(self, event_name: str, payload: dict[str, Any]) -> dict:
        async def task() -> dict:
            event = {"id": js.new_id(), "eventName": event_name, "payload": payload, "createdAt": js.utc_now_iso()}
            events = await self.list()
            events.append(event)
            await js.write_json(self.path, events)
            return event

        return await self._queue.run(task)

    async def summary(self) -> dict:
        events = await self.list()
        clicks = Counter()
        for event in events:
            if event.get("eventName") != PRODUCT_CLICK_EVENT:
                continue
            payload = event.get("payload") if isinstance(event.get("payload"), dict) else {}
            product_id = payload.get("productId")
            clicks[str(product_id) if product_id is not None else "unknown"] += 1
        return {
            "totalEvents": len(events),
            "byEvent": dict(Counter(js.as_text(e.get("eventName")) for e in events)),
            "byDay": dict(Counter(js.as_text(e.get("createdAt"))[:10] for e in events)),
            "productClicks": dict(clicks),
        }
