"""Storefront content validation and the default published document."""
from __future__ import annotations

import copy
import math
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from autohub.core.errors import AppError

PRODUCT_GROUPS = (
    ("forex", "Forex"),
    ("betting", "Betting"),
    ("software", "Software"),
    ("social", "Social"),
)
PRODUCT_CATEGORIES = {label for _key, label in PRODUCT_GROUPS}
THEMES = {"system", "light", "dark"}


class SiteContentError(AppError):
    def __init__(self, message: str):
        super().__init__(message, "invalid_content", 400)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_rating(value: Any) -> bool:
    return _is_number(value) and 1 <= value <= 5


def is_http_url(value: Any) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not _text(value):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _optional_string(value: Any) -> bool:
    return value is None or isinstance(value, str)


def _product_error(product: Any, group: str, index: int) -> str:
    prefix = f"{group} product #{index + 1}:"
    if not isinstance(product, dict):
        return f"{prefix} invalid product object."
    for field in ("id", "title", "shortDescription", "longDescription"):
        if not _text(product.get(field)):
            return f"{prefix} {field} is required."
    position = product.get("position")
    if position is not None and not (_is_number(position) and position >= 1):
        return f"{prefix} position must be a number >= 1 when provided."
    features = product.get("features")
    if not isinstance(features, list):
        return f"{prefix} features must be an array."
    if not any(_text(feature) for feature in features):
        return f"{prefix} at least one feature is required."
    if not _is_rating(product.get("rating")):
        return f"{prefix} rating must be between 1 and 5."
    if not isinstance(product.get("isNew"), bool):
        return f"{prefix} isNew must be boolean."
    if product.get("category") not in PRODUCT_CATEGORIES:
        return f"{prefix} category is invalid."
    if not is_http_url(product.get("checkoutLink")):
        return f"{prefix} checkoutLink must be a valid http(s) URL."
    if not _optional_string(product.get("imageUrl")):
        return f"{prefix} imageUrl must be a string when provided."
    return ""


def _branding_error(branding: Any) -> str:
    if not isinstance(branding, dict):
        return "branding is required."
    if not _text(branding.get("logoText")):
        return "branding.logoText is required."
    if not _optional_string(branding.get("accentColor")):
        return "branding.accentColor must be a string when provided."
    theme = branding.get("defaultTheme")
    if theme is not None and theme not in THEMES:
        return "branding.defaultTheme must be one of system/light/dark."
    return ""


def _socials_error(socials: Any) -> str:
    if not isinstance(socials, dict):
        return "socials is required."
    if not is_http_url(socials.get("facebookUrl")):
        return "socials.facebookUrl must be a valid http(s) URL."
    if not is_http_url(socials.get("whatsappUrl")):
        return "socials.whatsappUrl must be a valid http(s) URL."
    if "other" in socials:
        others = socials["other"]
        if not isinstance(others, list):
            return "socials.other must be an array when provided."
        for i, item in enumerate(others, start=1):
            if not isinstance(item, dict):
                return f"socials.other #{i}: invalid object."
            if not _text(item.get("name")):
                return f"socials.other #{i}: name is required."
            if not is_http_url(item.get("url")):
                return f"socials.other #{i}: url must be a valid http(s) URL."
    return ""


def _cta_ok(cta: Any) -> bool:
    return isinstance(cta, dict) and bool(_text(cta.get("label"))) and bool(_text(cta.get("target")))


def _hero_error(hero: Any) -> str:
    if not isinstance(hero, dict):
        return "hero is required."
    if not _text(hero.get("headline")):
        return "hero.headline is required."
    if not _text(hero.get("subtext")):
        return "hero.subtext is required."
    if not _cta_ok(hero.get("ctaPrimary")):
        return "hero.ctaPrimary requires label and target."
    if not _cta_ok(hero.get("ctaSecondary")):
        return "hero.ctaSecondary requires label and target."
    stats = hero.get("stats")
    if not isinstance(stats, list):
        return "hero.stats must be an array."
    for i, stat in enumerate(stats, start=1):
        if not isinstance(stat, dict) or not _text(stat.get("label")) or not _text(stat.get("value")):
            return f"hero.stats #{i}: label and value are required."
    return ""


def _testimonials_error(testimonials: Any) -> str:
    if not isinstance(testimonials, list):
        return "testimonials must be an array."
    for i, item in enumerate(testimonials, start=1):
        if not isinstance(item, dict):
            return f"testimonials #{i}: invalid object."
        for field in ("id", "name", "role", "quote"):
            if not _text(item.get(field)):
                return f"testimonials #{i}: {field} is required."
        if not _is_rating(item.get("rating")):
            return f"testimonials #{i}: rating must be between 1 and 5."
        if not _optional_string(item.get("avatarUrl")):
            return f"testimonials #{i}: avatarUrl must be a string when provided."
    return ""


def _products_error(products: Any) -> str:
    if not isinstance(products, dict):
        return "products is required."
    for key, label in PRODUCT_GROUPS:
        entries = products.get(key)
        if not isinstance(entries, list):
            return f"products.{key} must be an array."
        for index, entry in enumerate(entries):
            error = _product_error(entry, label, index)
            if error:
                return error
    return ""


def _industries_error(industries: Any) -> str:
    if not isinstance(industries, list):
        return "industries must be an array."
    for i, item in enumerate(industries, start=1):
        if not isinstance(item, dict):
            return f"industries #{i}: invalid object."
        if not _text(item.get("id")):
            return f"industries #{i}: id is required."
        if not _text(item.get("label")):
            return f"industries #{i}: label is required."
        if not _text(item.get("icon")) and not _text(item.get("imageUrl")):
            return f"industries #{i}: provide icon or imageUrl."
        link = item.get("link")
        if link is not None and not is_http_url(link):
            return f"industries #{i}: link must be a valid http(s) URL when provided."
    return ""


def _footer_error(footer: Any) -> str:
    if not isinstance(footer, dict):
        return "footer is required."
    if not _text(footer.get("note")):
        return "footer.note is required."
    if not _text(footer.get("copyright")):
        return "footer.copyright is required."
    return ""


def validate_site_content(value: Any) -> dict:
    """Return ``value`` unchanged when valid, otherwise raise with the first failing field."""
    if not isinstance(value, dict):
        raise SiteContentError("Invalid site content payload.")
    checks = (
        (_branding_error, "branding"),
        (_socials_error, "socials"),
        (_hero_error, "hero"),
        (_testimonials_error, "testimonials"),
        (_products_error, "products"),
        (_industries_error, "industries"),
        (_footer_error, "footer"),
    )
    for check, key in checks:
        error = check(value.get(key))
        if error:
            raise SiteContentError(error)
    return value


def is_legacy_empty(content: Any) -> bool:
    """Published documents written before seeding had no products and no industries."""
    if not isinstance(content, dict):
        return True
    products = content.get("products") if isinstance(content.get("products"), dict) else {}
    no_products = all(not products.get(key) for key, _label in PRODUCT_GROUPS)
    return no_products and not content.get("industries")


def _adsection(title: str, price: int, overlay_title: str, overlay_text: str, button: str, target: str) -> dict:
    return {
        "sectionTitle": title,
        "price": price,
        "priceBadge": f"${price}",
        "imageUrl": "/logo.png",
        "badgePrimary": "New",
        "badgeSecondary": "Coming Soon",
        "overlayTitle": overlay_title,
        "overlayText": overlay_text,
        "buttonLabel": button,
        "buttonTarget": target,
        "scrollHint": "Scroll",
    }


_DEFAULT_CONTENT = {
    "branding": {"logoText": "AutoHub", "accentColor": "#2563eb", "defaultTheme": "system", "eventTheme": "none"},
    "socials": {"facebookUrl": "https://facebook.com", "whatsappUrl": "https://wa.me/", "other": []},
    "hero": {
        "headline": "Discover next-gen tools for Forex, Betting, and Social growth.",
        "subtext": "Curated products with fast onboarding and trusted workflows.",
        "ctaPrimary": {"label": "Explore Forex Tools", "target": "forex"},
        "ctaSecondary": {"label": "See New Releases", "target": "betting"},
        "stats": [
            {"label": "Active users", "value": "12.4k"},
            {"label": "Avg. rating", "value": "4.8"},
            {"label": "Live tools", "value": "24"},
        ],
    },
    "homeUi": {
        "heroEyebrow": "Smart automation for modern operators",
        "heroQuickGrabsLabel": "Quick Grabs",
        "performanceSnapshotTitle": "Performance Snapshot",
        "performanceSnapshotSubtext": "Products tuned for speed, confidence, and measurable outcomes.",
        "adsectionMan": {
            "gadgets": _adsection(
                "Newer Gadgets", 79, "Gadget Drop", "Tap in early for fresh utility tools.", "Check Fresh Drop", "forex"
            ),
            "ai": _adsection(
                "New AI Tools", 99, "AI Update", "Discover the next wave of smart tools.", "Check Fresh AI", "software"
            ),
        },
        "industriesHeading": "Industries We Work With",
        "industriesEmptyMessage": "No industries published yet. Add industries from Admin to show them here.",
        "productCardNewBadgeLabel": "NEW",
        "productCardNewReleaseLabel": "New release",
        "productCardKeyFeaturesSuffix": "key features",
        "productCardCheckoutLabel": "Proceed to Checkout",
        "productCardMoreInfoLabel": "Get More Info",
        "productCardAffiliateDisclosure": (
            "Affiliate disclosure: we may earn a commission if you buy through this link, at no extra cost to you."
        ),
    },
    "testimonials": [],
    "products": {"forex": [], "betting": [], "software": [], "social": []},
    "productSections": {
        "forex": {
            "title": "Forex New Items",
            "description": "Freshly released forex tools with strong ratings and practical execution workflows.",
        },
        "betting": {"title": "Betting System Products", "description": "High-performing betting tools and systems."},
        "software": {"title": "New Released Software", "description": "Browse newly released software products."},
        "social": {
            "title": "Social Media Automation",
            "description": "Automation-focused social products for scheduling, response workflows, and campaign optimization.",
        },
    },
    "industries": [{"id": "ind-1", "label": "Finance", "icon": "$"}],
    "footer": {"note": "Premium product discovery for automation-first digital operators."},
}


def default_published_content() -> dict:
    content = copy.deepcopy(_DEFAULT_CONTENT)
    year = datetime.now(timezone.utc).year
    content["footer"]["copyright"] = f"© {year} AutoHub. All rights reserved."
    return content
