from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.core import config as core_config  # noqa: E402
from autohub.services import email_rendering as rendering  # noqa: E402


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("API_PUBLIC_BASE_URL", "https://api.example.com/")
    monkeypatch.setenv("MAILING_ADDRESS", "1 Market St, Springfield")
    core_config.get_settings.cache_clear()
    yield
    core_config.get_settings.cache_clear()


def test_merge_tags_replace_known_and_keep_unknown():
    rendered = rendering.render_merge_tags(
        "Hi {{first_name}}, see {{ offer_link }} or {{unknown_tag}}.",
        {"first_name": "Ana", "offer_link": "https://x.example.com"},
    )

    assert rendered == "Hi Ana, see https://x.example.com or {{unknown_tag}}."


def test_merge_tags_escape_values_in_html():
    rendered = rendering.render_merge_tags("<p>{{first_name}}</p>", {"first_name": "<b>Bo</b>"}, escape=True)

    assert rendered == "<p>&lt;b&gt;Bo&lt;/b&gt;</p>"


def test_merge_tags_never_evaluate_expressions():
    rendered = rendering.render_merge_tags(
        "Hi {{first_name}} {{ FNAME }} save {{ 7*7 }}% {{ 'a'*10**9 }} {{unsubscribe_link}}",
        {"first_name": "Ana", "unsubscribe_link": "http://u"},
    )

    assert rendered == "Hi Ana {{ FNAME }} save {{ 7*7 }}% {{ 'a'*10**9 }} http://u"


def test_merge_tags_escape_every_known_value_and_keep_unknown_html_tags():
    rendered = rendering.render_merge_tags(
        '<a href="{{unsubscribe_link}}">{{first_name}}</a> {{ broken {{x}}',
        {"first_name": "O'Neil & <Co>", "unsubscribe_link": 'http://u?a=1&b="2"'},
        escape=True,
    )

    assert rendered == (
        '<a href="http://u?a=1&amp;b=&quot;2&quot;">O&#x27;Neil &amp; &lt;Co&gt;</a> {{ broken {{x}}'
    )


def test_merge_tags_leave_block_syntax_alone():
    rendered = rendering.render_merge_tags("50% {% off %} for {{first_name}} {# vip #}", {"first_name": "Cy"})

    assert rendered == "50% {% off %} for Cy {# vip #}"


def test_first_name_and_text_helpers():
    assert rendering.first_name("  Maria  Silva ") == "Maria"
    assert rendering.first_name("") == "there"
    assert rendering.rich_to_html("a < b\n'c'") == "a &lt; b<br/>&#39;c&#39;"
    assert rendering.strip_html("<p>Hello</p>\n<b>world</b>") == "Hello world"


@pytest.mark.parametrize(
    "from_email, smtp_user, expected",
    [
        ("shop@example.com", "shop@example.com", "shop@example.com"),
        ("Shop <SHOP@example.com>", "shop@example.com", "shop@example.com"),
        ("shop@example.com", "mailer@example.com", "mailer@example.com"),
        ("shop@example.com", "apikey", "shop@example.com"),
        ("not-an-address", "", "not-an-address"),
    ],
)
def test_effective_from_prefers_authenticated_user(from_email, smtp_user, expected):
    assert rendering.resolve_effective_from_email(from_email, smtp_user) == expected


def test_subject_safety_and_unsubscribe_checks():
    assert rendering.is_subject_safe("Hello")
    assert not rendering.is_subject_safe("Hello\r\nBcc: x@example.com")
    assert not rendering.is_subject_safe("   ")
    assert rendering.contains_unsubscribe_tag("", "<a href='{{unsubscribe_link}}'>x</a>")
    assert not rendering.contains_unsubscribe_tag("no tag", None)


def test_links_use_public_api_base():
    assert rendering.confirm_url("abc") == "https://api.example.com/api/email/confirm?token=abc"
    assert rendering.unsubscribe_url("a b", "http://h") == "http://h/api/email/unsubscribe?token=a%20b"


def test_render_rich_email_with_footer():
    email = rendering.render_email(
        subject="Welcome {{first_name}}",
        preview_text="Hi {{first_name}}",
        body_mode="rich",
        body_rich="Hello {{first_name}}\nBye",
        body_html="",
        context={"first_name": "Ana"},
        unsubscribe="https://u.example.com/x",
        include_footer=True,
    )

    assert email.subject == "Welcome Ana"
    assert email.text.startswith("Hello Ana\nBye")
    assert "Mailing address: 1 Market St, Springfield" in email.text
    assert email.text.endswith("Unsubscribe: https://u.example.com/x")
    assert "Hello Ana<br/>Bye" in email.html
    assert '<a href="https://u.example.com/x">' in email.html
    assert email.text_with_preview().startswith("Hi Ana\n\n")
    assert email.html_with_preview().startswith('<div style="display:none')


def test_render_html_email_derives_text_body():
    email = rendering.render_email(
        subject="s",
        preview_text="",
        body_mode="html",
        body_rich="ignored",
        body_html="<h1>Hi {{first_name}}</h1><p>Body</p>",
        context={"first_name": "Bo"},
        unsubscribe="https://u",
        include_footer=False,
    )

    assert email.text == "Hi Bo Body"
    assert email.html == "<h1>Hi Bo</h1><p>Body</p>"
    assert email.html_with_preview() == email.html


def test_list_unsubscribe_headers():
    headers = rendering.list_unsubscribe_headers("https://u", "help@example.com")

    assert headers["List-Unsubscribe"] == "<https://u>, <mailto:help@example.com?subject=unsubscribe>"
    assert headers["List-Unsubscribe-Post"] == "List-Unsubscribe=One-Click"
