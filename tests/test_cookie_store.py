from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.repositories.cookie_store import CookieConsentStore, normalize_consent  # noqa: E402


def _upsert(store: CookieConsentStore, consent_id: str, **overrides):
    values = {
        "version": 1,
        "analytics": False,
        "marketing": False,
        "preferences": False,
        "source": "web",
        "ip_hash": "abc",
        "user_agent": "pytest",
    }
    values.update(overrides)
    return store.upsert_consent(consent_id, **values)


def test_upsert_creates_then_updates_in_place(tmp_path):
    async def scenario():
        store = CookieConsentStore(tmp_path)
        created = await _upsert(store, "Consent-ABC-123", analytics=True)
        await _upsert(store, "another-consent-1")
        updated = await _upsert(store, "consent-abc-123", marketing=True, version=2)
        return created, updated, await store.get_by_id("CONSENT-ABC-123")

    created, updated, fetched = asyncio.run(scenario())

    assert created["id"] == "consent-abc-123"
    assert created["essential"] is True
    assert updated["createdAt"] == created["createdAt"]
    assert updated["version"] == 2
    assert updated["marketing"] is True
    assert updated["analytics"] is False
    assert fetched == updated

    document = json.loads((tmp_path / "cookies" / "consents.json").read_text(encoding="utf-8"))
    ids = [c["id"] for c in document["consents"]]
    assert ids == ["another-consent-1", "consent-abc-123"]


def test_malformed_file_is_replaced_with_default_document(tmp_path):
    target = tmp_path / "cookies" / "consents.json"
    target.parent.mkdir(parents=True)
    target.write_text("{not json", encoding="utf-8")

    store = CookieConsentStore(tmp_path)

    document = json.loads(target.read_text(encoding="utf-8"))
    assert document["consents"] == []
    assert asyncio.run(store.get_by_id("missing-consent")) is None


def test_existing_records_are_normalized_on_open(tmp_path):
    target = tmp_path / "cookies" / "consents.json"
    target.parent.mkdir(parents=True)
    raw = {"consents": [{"id": " MiXeD-Case-Id ", "version": "0", "essential": False, "source": "x" * 200}]}
    target.write_text(json.dumps(raw), encoding="utf-8")

    CookieConsentStore(tmp_path)

    record = json.loads(target.read_text(encoding="utf-8"))["consents"][0]
    assert record["id"] == "mixed-case-id"
    assert record["version"] == 1
    assert record["essential"] is True
    assert len(record["source"]) == 80


def test_normalize_consent_defaults():
    record = normalize_consent({"version": 3.7, "userAgent": "u" * 400})

    assert record["version"] == 3
    assert record["source"] == "web"
    assert record["ipHash"] == ""
    assert len(record["userAgent"]) == 320
    assert record["id"]


def test_concurrent_upserts_are_all_persisted(tmp_path):
    async def scenario():
        store = CookieConsentStore(tmp_path)
        await asyncio.gather(*(_upsert(store, f"consent-{index:04d}") for index in range(40)))
        await asyncio.gather(*(_upsert(store, f"consent-{index:04d}", analytics=True) for index in range(0, 40, 2)))

    asyncio.run(scenario())

    document = json.loads((tmp_path / "cookies" / "consents.json").read_text(encoding="utf-8"))
    assert len(document["consents"]) == 40
    assert sum(1 for consent in document["consents"] if consent["analytics"]) == 20
