from datetime import date

import pytest
from pydantic import ValidationError

from codable_bff.ai_models import CodeAnalysisResult
from codable_bff.config import Settings
from codable_bff.errors import (
    CodableError,
    HostedServiceError,
    InvalidCredentials,
    MalformedAIResponse,
    PasswordMismatch,
    RateLimited,
    UnconfirmedEmail,
    classify_auth_error,
)
from codable_bff.events import EventBus, THEME_CHANGED
from codable_bff.json_extract import extract_json_object
from codable_bff.local_storage import LocalStorage
from codable_bff.preferences import DEFAULT_THEME, ThemePreference
from codable_bff.prompts import chat_intent, chat_prompt
from codable_bff.stats import current_streak, estimate_time_spent


def test_extract_json_skips_prose_and_fences():
    text = 'Sure! Here it is:\n```json\n{"score": 90, "nested": {"a": 1}}\n```\nAnything else?'
    assert extract_json_object(text) == {"score": 90, "nested": {"a": 1}}


def test_extract_json_skips_unparseable_braces():
    assert extract_json_object('set {x} then {"ok": true}') == {"ok": True}


@pytest.mark.parametrize("text", ["", "no json here", "Sure! ```{not json}```", "[1, 2, 3]"])
def test_extract_json_raises_when_nothing_parses(text):
    with pytest.raises(MalformedAIResponse):
        extract_json_object(text)


@pytest.mark.parametrize("text", [
    '{"score": 88, "suggestions": [{"type": "info", "title": "Types"}], "complexity": {"time": "O(1)"',
    '```json\n{"score": 88, "complexity": {"time": "O(1)"}\n```',
])
def test_extract_json_rejects_cut_off_object(text):
    with pytest.raises(MalformedAIResponse):
        extract_json_object(text)


def test_extract_json_never_returns_a_nested_fragment():
    text = '{"score": oops, "complexity": {"time": "O(1)"}} and later {"ok": true}'
    assert extract_json_object(text) == {"ok": True}


def test_extract_json_ignores_braces_inside_strings():
    text = 'Result: {"score": 70, "summary": "uses a { brace"}'
    assert extract_json_object(text) == {"score": 70, "summary": "uses a { brace"}


@pytest.mark.parametrize("raw, expected", [(None, 75), (0, 75), ("abc", 75), (150, 100), (-3, 0), ("82", 82)])
def test_analysis_score_is_clamped(raw, expected):
    assert CodeAnalysisResult(score=raw).score == expected


def test_streak_counts_consecutive_days_ending_today():
    today = date(2024, 5, 10)
    days = ["2024-05-10T08:00:00Z", "2024-05-10T20:00:00Z", "2024-05-09T10:00:00+00:00", "2024-05-08T00:00:00Z",
            "2024-05-06T00:00:00Z"]
    assert current_streak(days, today=today) == 3


def test_streak_may_end_yesterday():
    assert current_streak([date(2024, 5, 9), date(2024, 5, 8)], today=date(2024, 5, 10)) == 2


def test_streak_is_broken_by_a_missed_day():
    assert current_streak([date(2024, 5, 8)], today=date(2024, 5, 10)) == 0
    assert current_streak([], today=date(2024, 5, 10)) == 0


def test_estimate_time_spent():
    assert estimate_time_spent(2, 1, 3) == round(2 * 4 + 12 + 3 * 2.5)


def test_local_storage_drops_unreadable_json():
    storage = LocalStorage({"broken": "{oops"})
    assert storage.get_json("broken") is None
    assert "broken" not in storage.keys()


async def test_event_bus_isolates_failing_subscribers():
    bus = EventBus()
    seen = []

    def broken(*payload):
        raise RuntimeError("boom")

    async def recorder(*payload):
        seen.append(payload)

    bus.subscribe(THEME_CHANGED, broken)
    unsubscribe = bus.subscribe(THEME_CHANGED, recorder)
    await bus.publish(THEME_CHANGED, "light")
    unsubscribe()
    await bus.publish(THEME_CHANGED, "dark")
    assert seen == [("light",)]


async def test_theme_preference_persists_and_validates():
    storage, bus = LocalStorage(), EventBus()
    theme = ThemePreference(storage, bus)
    assert theme.get_theme() == DEFAULT_THEME
    await theme.set_theme("light")
    assert ThemePreference(storage, bus).get_theme() == "light"
    with pytest.raises(ValueError):
        await theme.set_theme("neon")


@pytest.mark.parametrize("error, expected", [
    (HostedServiceError(400, "Email not confirmed"), UnconfirmedEmail),
    (HostedServiceError(400, "Invalid login credentials"), InvalidCredentials),
    (HostedServiceError(429, "slow down"), RateLimited),
    ("Passwords do not match", PasswordMismatch),
    (RuntimeError("For security purposes, you can only request this after 60 seconds."), RateLimited),
])
def test_classify_auth_error(error, expected):
    assert type(classify_auth_error(error)) is expected


def test_classify_unknown_error_is_generic():
    result = classify_auth_error(HostedServiceError(500, "kaboom"))
    assert type(result) is CodableError
    assert result.detail == "kaboom"


def test_settings_reject_unknown_provider():
    with pytest.raises(ValidationError):
        Settings(AI_PROVIDERS="gemini,bard")


def test_settings_require_default_among_enabled():
    with pytest.raises(ValidationError):
        Settings(AI_PROVIDERS="copilotkit", DEFAULT_AI_PROVIDER="gemini")


def test_settings_parse_provider_list():
    configured = Settings(AI_PROVIDERS=" Gemini , copilotkit ", DEFAULT_AI_PROVIDER="COPILOTKIT")
    assert configured.AI_PROVIDERS == ["gemini", "copilotkit"]
    assert configured.DEFAULT_AI_PROVIDER == "copilotkit"
    assert configured.AUTH_URL == "https://supabase.test/auth/v1"


@pytest.mark.parametrize("message, intent", [
    ("Write a function that reverses a list", "code"),
    ("Explain how `yield` works", "explanation"),
    ("Can you review this for a bug?", "review"),
    ("Hi there", "general"),
])
def test_chat_intent(message, intent):
    assert chat_intent(message) == intent


def test_chat_prompt_includes_context():
    prompt = chat_prompt("Hi there", context="Working on a Flask app")
    assert "User request: Hi there" in prompt
    assert "Context: Working on a Flask app" in prompt
