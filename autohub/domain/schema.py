"""Enumerations shared by the email store, services and routers."""

from __future__ import annotations

SUBSCRIBER_STATUS_PENDING = "pending"
SUBSCRIBER_STATUS_CONFIRMED = "confirmed"
SUBSCRIBER_STATUS_UNSUBSCRIBED = "unsubscribed"
SUBSCRIBER_STATUSES = frozenset(
    {SUBSCRIBER_STATUS_PENDING, SUBSCRIBER_STATUS_CONFIRMED, SUBSCRIBER_STATUS_UNSUBSCRIBED}
)

SUBSCRIBER_SOURCE_QUICK_GRABS = "quick_grabs"

BODY_MODE_RICH = "rich"
BODY_MODE_HTML = "html"
BODY_MODES = frozenset({BODY_MODE_RICH, BODY_MODE_HTML})

AUDIENCE_MODE_ALL = "all"
AUDIENCE_MODE_SEGMENTS = "segments"
AUDIENCE_MODES = frozenset({AUDIENCE_MODE_ALL, AUDIENCE_MODE_SEGMENTS})

SEND_MODE_NOW = "now"
SEND_MODE_SCHEDULE = "schedule"
SEND_MODES = frozenset({SEND_MODE_NOW, SEND_MODE_SCHEDULE})

CAMPAIGN_STATUS_DRAFT = "draft"
CAMPAIGN_STATUS_SCHEDULED = "scheduled"
CAMPAIGN_STATUS_SENT = "sent"
CAMPAIGN_STATUSES = frozenset({CAMPAIGN_STATUS_DRAFT, CAMPAIGN_STATUS_SCHEDULED, CAMPAIGN_STATUS_SENT})

EVENT_LEAD_SUBSCRIBED = "lead_subscribed"
EVENT_LEAD_CONFIRMED = "lead_confirmed"
EVENT_LEAD_UNSUBSCRIBED = "lead_unsubscribed"
EVENT_LEAD_CONFIRMATION_RESENT = "lead_confirmation_resent"
EVENT_LEAD_DELETED = "lead_deleted"
EVENT_CAMPAIGN_SAVED = "campaign_saved"
EVENT_CAMPAIGN_TEST_SENT = "campaign_test_sent"
EVENT_CAMPAIGN_SCHEDULED = "campaign_scheduled"
EVENT_CAMPAIGN_SENT = "campaign_sent"

UNSUBSCRIBE_TAG = "{{unsubscribe_link}}"
