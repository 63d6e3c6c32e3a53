from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.repositories.analytics_store import AnalyticsStore  # noqa: E402
from autohub.repositories.media_store import MediaStore  # noqa: E402


def test_media_add_list_and_remove_file(tmp_path):
    async def scenario():
        store = MediaStore(tmp_path)
        (store.uploads_dir / "a.png").write_bytes(b"png")
        first = await store.add(name="a.png", file_name="a.png", url="/uploads/a.png", mime="image/png", size_bytes=3)
        await asyncio.sleep(0.01)
        second = await store.add(name="b.png", file_name="b.png", url="/uploads/b.png", mime="image/png", size_bytes=0)
        listed = await store.list()
        removed = await store.remove(first["id"])
        missing_file = await store.remove(second["id"])
        return store, listed, removed, missing_file, await store.list(), await store.remove("nope")

    store, listed, removed, missing_file, remaining, unknown = asyncio.run(scenario())

    assert [item["name"] for item in listed] == ["b.png", "a.png"]
    assert removed["fileName"] == "a.png"
    assert not (store.uploads_dir / "a.png").exists()
    assert missing_file["fileName"] == "b.png"
    assert remaining == []
    assert unknown is None


def test_media_metadata_recovers_from_bad_file(tmp_path):
    (tmp_path / "media.json").write_text('{"not": "a list"}', encoding="utf-8")

    store = MediaStore(tmp_path)

    assert asyncio.run(store.list()) == []


def test_analytics_summary_groups_events(tmp_path):
    async def scenario():
        store = AnalyticsStore(tmp_path)
        await store.add("page_view", {"path": "/"})
        await store.add("product_link_click", {"productId": "p1"})
        await store.add("product_link_click", {"productId": "p1"})
        await store.add("product_link_click", {})
        return await store.list(), await store.summary()

    events, summary = asyncio.run(scenario())

    assert [e["eventName"] for e in events][0] == "page_view"
    assert summary["totalEvents"] == 4
    assert summary["byEvent"] == {"page_view": 1, "product_link_click": 3}
    assert summary["productClicks"] == {"p1": 2, "unknown": 1}
    assert sum(summary["byDay"].values()) == 4


def test_concurrent_media_adds_are_all_persisted(tmp_path):
    async def scenario():
        store = MediaStore(tmp_path)
        created = await asyncio.gather(
            *(
                store.add(
                    name=f"{index}.png",
                    file_name=f"{index}.png",
                    url=f"/uploads/{index}.png",
                    mime="image/png",
                    size_bytes=index,
                )
                for index in range(30)
            )
        )
        await asyncio.gather(*(store.remove(item["id"]) for item in created[:10]))
        return await store.list()

    remaining = asyncio.run(scenario())

    assert len(remaining) == 20
    assert {item["name"] for item in remaining} == {f"{index}.png" for index in range(10, 30)}
