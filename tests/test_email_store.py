from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.core import config as core_config  # noqa: E402
from autohub.repositories.email_store import EmailStore, normalize_campaign  # noqa: E402


@pytest.fixture
def store(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "465")
    monkeypatch.setenv("SMTP_USER", "mailer@example.com")
    monkeypatch.setenv("SMTP_PASS", "env-secret")
    core_config.get_settings.cache_clear()
    yield EmailStore(tmp_path)
    core_config.get_settings.cache_clear()


def test_resubscribing_reuses_record_and_rotates_confirm_token(store):
    async def scenario():
        first = await store.upsert_pending_subscriber(" Ana ", "Ana@Example.com", "555")
        confirmed = await store.confirm_subscriber_by_token(first["confirmToken"])
        again = await store.upsert_pending_subscriber("", "ana@example.com")
        return first, confirmed, again

    first, confirmed, again = asyncio.run(scenario())

    assert first["email"] == "ana@example.com"
    assert first["name"] == "Ana"
    assert first["status"] == "pending"
    assert len(first["confirmToken"]) == 32
    assert confirmed["status"] == "confirmed"
    assert again["id"] == first["id"]
    assert again["name"] == "Ana"
    assert again["phone"] == ""
    assert again["status"] == "pending"
    assert again["confirmToken"] != first["confirmToken"]
    assert again["unsubscribeToken"] == first["unsubscribeToken"]


def test_token_lookups_ignore_blank_and_unknown_tokens(store):
    async def scenario():
        sub = await store.upsert_pending_subscriber("Bo", "bo@example.com")
        blank = await store.confirm_subscriber_by_token("   ")
        unknown = await store.unsubscribe_subscriber_by_token("nope")
        gone = await store.unsubscribe_subscriber_by_token(sub["unsubscribeToken"])
        return blank, unknown, gone

    blank, unknown, gone = asyncio.run(scenario())

    assert blank is None
    assert unknown is None
    assert gone["status"] == "unsubscribed"


def test_list_subscribers_filters_and_clamps_paging(store):
    async def scenario():
        await store.upsert_pending_subscriber("Carla", "carla@example.com", "111")
        dan = await store.upsert_pending_subscriber("Dan", "dan@example.com", "222")
        await store.confirm_subscriber_by_token(dan["confirmToken"])
        everyone = await store.list_subscribers(page=0, page_size=500)
        confirmed = await store.list_subscribers(status="confirmed")
        by_phone = await store.list_subscribers(q="111")
        recipients = await store.list_campaign_recipients()
        return everyone, confirmed, by_phone, recipients

    everyone, confirmed, by_phone, recipients = asyncio.run(scenario())

    assert everyone["page"] == 1
    assert everyone["pageSize"] == 200
    assert everyone["total"] == 2
    assert all("confirmToken" not in item for item in everyone["items"])
    assert [s["email"] for s in confirmed["items"]] == ["dan@example.com"]
    assert [s["name"] for s in by_phone["items"]] == ["Carla"]
    assert len(recipients) == 1
    assert set(recipients[0]) == {"id", "name", "email", "unsubscribeToken"}


def test_delete_subscriber_returns_removed_record(store):
    async def scenario():
        sub = await store.upsert_pending_subscriber("Eve", "eve@example.com")
        removed = await store.delete_subscriber_by_id(sub["id"])
        missing = await store.delete_subscriber_by_id(sub["id"])
        return sub, removed, missing, await store.get_subscriber_by_email("eve@example.com")

    sub, removed, missing, lookup = asyncio.run(scenario())

    assert removed["id"] == sub["id"]
    assert missing is None
    assert lookup is None


def test_save_campaign_updates_existing_id_and_keeps_created_at(store):
    async def scenario():
        created = await store.save_campaign({"name": "Launch", "subject": "Hello", "status": "draft"})
        await asyncio.sleep(0.01)
        updated = await store.save_campaign({"id": created["id"], "name": "Launch v2", "status": "scheduled"})
        listing = await store.list_campaigns()
        return created, updated, listing

    created, updated, listing = asyncio.run(scenario())

    assert updated["id"] == created["id"]
    assert updated["createdAt"] == created["createdAt"]
    assert updated["name"] == "Launch v2"
    assert updated["status"] == "scheduled"
    assert listing["total"] == 1


def test_sender_profile_defaults_from_environment_and_keeps_password(store):
    async def scenario():
        initial = await store.get_sender_profile()
        saved = await store.save_sender_profile(
            {"fromName": "Shop", "fromEmail": "shop@example.com", "smtpHost": "mx.example.com", "smtpPass": "stored"}
        )
        kept = await store.save_sender_profile({"fromName": "Shop 2", "fromEmail": "shop@example.com"})
        return initial, saved, kept

    initial, saved, kept = asyncio.run(scenario())

    assert initial["smtpHost"] == "smtp.example.com"
    assert initial["smtpPort"] == 465
    assert initial["smtpSecure"] is True
    assert initial["smtpPass"] == "env-secret"
    assert initial["fromName"] == "AutoHub Team"
    assert saved["smtpPass"] == "stored"
    assert kept["smtpPass"] == "stored"
    assert kept["fromName"] == "Shop 2"


def test_analytics_summary_counts_and_timeline(store, tmp_path):
    async def scenario():
        sub = await store.upsert_pending_subscriber("Fay", "fay@example.com")
        await store.upsert_pending_subscriber("Gus", "gus@example.com")
        await store.confirm_subscriber_by_token(sub["confirmToken"])
        await store.save_campaign({"name": "Promo", "status": "sent", "estimatedRecipients": 1})
        await store.add_event("lead_confirmed", subscriber_id=sub["id"])
        return await store.get_analytics_summary()

    summary = asyncio.run(scenario())

    assert summary["totals"]["subscribers"] == 2
    assert summary["totals"]["pending"] == 1
    assert summary["totals"]["confirmed"] == 1
    assert summary["totals"]["campaignsSent"] == 1
    assert summary["recentCampaigns"][0]["estimatedRecipients"] == 1
    assert summary["timeline"][0]["eventType"] == "lead_confirmed"

    document = json.loads((tmp_path / "email" / "state.json").read_text(encoding="utf-8"))
    assert len(document["events"]) == 1


def test_normalize_campaign_falls_back_to_safe_values():
    campaign = normalize_campaign(
        {"id": "c1", "bodyMode": "weird", "segments": ["vip", " ", 7], "estimatedRecipients": -3, "timezone": ""}
    )

    assert campaign["bodyMode"] == "rich"
    assert campaign["segments"] == ["vip", "7"]
    assert campaign["estimatedRecipients"] == 0
    assert campaign["timezone"] == "UTC"
    assert campaign["scheduleAt"] is None
    assert campaign["status"] == "draft"


def test_concurrent_writes_are_all_persisted(store, tmp_path):
    async def scenario():
        subscribers = await asyncio.gather(
            *(store.upsert_pending_subscriber(f"Lead {index}", f"lead{index}@example.com") for index in range(25))
        )
        await asyncio.gather(
            *(store.add_event("lead_subscribed", subscriber_id=sub["id"]) for sub in subscribers),
            *(store.confirm_subscriber_by_token(sub["confirmToken"]) for sub in subscribers[:10]),
        )
        return await store.list_subscribers(status="confirmed")

    confirmed = asyncio.run(scenario())

    document = json.loads((tmp_path / "email" / "state.json").read_text(encoding="utf-8"))
    assert len(document["subscribers"]) == 25
    assert len({sub["id"] for sub in document["subscribers"]}) == 25
    assert len(document["events"]) == 25
    assert confirmed["total"] == 10
