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

from autohub.domain.site_content import (  # noqa: E402
    SiteContentError,
    default_published_content,
    is_http_url,
    is_legacy_empty,
    validate_site_content,
)
from autohub.repositories.site_store import SiteStore  # noqa: E402


def _product(**overrides) -> dict:
    product = {
        "id": "p1",
        "title": "Signal Bot",
        "shortDescription": "Fast signals.",
        "longDescription": "Signals with execution hints.",
        "features": ["Alerts"],
        "rating": 4.5,
        "isNew": True,
        "category": "Forex",
        "checkoutLink": "https://shop.example.com/p1",
    }
    product.update(overrides)
    return product


def _content_with(**changes) -> dict:
    content = default_published_content()
    content.update(changes)
    return content


def test_default_content_is_valid_and_dated():
    content = default_published_content()

    assert validate_site_content(content) is content
    assert content["footer"]["copyright"].startswith("©")
    assert not is_legacy_empty(content)


def test_default_content_is_a_fresh_copy():
    first = default_published_content()
    first["industries"].clear()

    assert default_published_content()["industries"]


@pytest.mark.parametrize(
    "content, message",
    [
        ([], "Invalid site content payload."),
        (_content_with(branding={"logoText": " "}), "branding.logoText is required."),
        (
            _content_with(branding={"logoText": "X", "defaultTheme": "neon"}),
            "branding.defaultTheme must be one of system/light/dark.",
        ),
        (
            _content_with(socials={"facebookUrl": "ftp://x", "whatsappUrl": "https://wa.me/"}),
            "socials.facebookUrl must be a valid http(s) URL.",
        ),
        (_content_with(testimonials={}), "testimonials must be an array."),
        (
            _content_with(products={"forex": [_product(rating=6)], "betting": [], "software": [], "social": []}),
            "Forex product #1: rating must be between 1 and 5.",
        ),
        (
            _content_with(products={"forex": [], "betting": [_product(category="Crypto")], "software": [], "social": []}),
            "Betting product #1: category is invalid.",
        ),
        (
            _content_with(products={"forex": [], "betting": [], "software": [], "social": None}),
            "products.social must be an array.",
        ),
        (_content_with(industries=[{"id": "i", "label": "L"}]), "industries #1: provide icon or imageUrl."),
        (_content_with(footer={"note": "n"}), "footer.copyright is required."),
    ],
)
def test_validation_reports_first_failing_field(content, message):
    with pytest.raises(SiteContentError) as exc:
        validate_site_content(content)

    assert exc.value.message == message
    assert exc.value.status_code == 400


def test_valid_products_pass():
    content = _content_with(products={"forex": [_product()], "betting": [], "software": [], "social": []})

    assert validate_site_content(content)["products"]["forex"][0]["id"] == "p1"


def test_is_http_url():
    assert is_http_url("https://example.com/x")
    assert is_http_url(" http://example.com ")
    assert not is_http_url("example.com")
    assert not is_http_url("mailto:a@b.c")
    assert not is_http_url(None)


def test_legacy_empty_document_is_reseeded(tmp_path):
    target = tmp_path / "site" / "content.json"
    target.parent.mkdir(parents=True)
    legacy = {"published": {"products": {"forex": []}, "industries": []}, "draft": None, "updatedAt": "x"}
    target.write_text(json.dumps(legacy), encoding="utf-8")

    store = SiteStore(tmp_path)

    published = asyncio.run(store.get_published())
    assert published["industries"]
    assert published["branding"]["logoText"] == "AutoHub"


def test_draft_then_publish_flow(tmp_path):
    async def scenario():
        store = SiteStore(tmp_path)
        draft = _content_with(branding={"logoText": "Draft Shop"})
        await store.save_draft(draft)
        meta_before = await store.get_meta()
        published = await store.publish()
        return meta_before, published, await store.get_draft(), await store.get_meta()

    meta_before, published, draft_after, meta_after = asyncio.run(scenario())

    assert meta_before["hasDraft"] is True
    assert published["branding"]["logoText"] == "Draft Shop"
    assert draft_after is None
    assert meta_after["hasDraft"] is False


def test_invalid_draft_leaves_document_untouched(tmp_path):
    async def scenario():
        store = SiteStore(tmp_path)
        with pytest.raises(SiteContentError):
            await store.save_draft({"branding": {}})
        return await store.get_draft()

    assert asyncio.run(scenario()) is None


def test_publish_payload_and_reset(tmp_path):
    async def scenario():
        store = SiteStore(tmp_path)
        published = await store.publish(_content_with(footer={"note": "n", "copyright": "c"}))
        republished = await store.publish()
        reset = await store.reset()
        return published, republished, reset

    published, republished, reset = asyncio.run(scenario())

    assert published["footer"] == {"note": "n", "copyright": "c"}
    assert republished["footer"] == {"note": "n", "copyright": "c"}
    assert reset["draft"] is None
    assert reset["published"]["footer"]["note"].startswith("Premium")
