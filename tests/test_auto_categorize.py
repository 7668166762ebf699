import pytest

import config
from budgetview.services import auto_categorize

CATEGORIES = ["Food", "Transport", "Salary"]


@pytest.fixture
def ai_enabled(monkeypatch):
    monkeypatch.setattr(config, "AUTO_CATEGORIZE_AI", "1")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def test_disabled_by_default(monkeypatch):
    monkeypatch.setattr(config, "AUTO_CATEGORIZE_AI", "0")

    assert auto_categorize.suggest_category("Uber ride", CATEGORIES) == (None, 0.0, "ai_disabled")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(config, "AUTO_CATEGORIZE_AI", "true")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert auto_categorize.suggest_category("Uber ride", CATEGORIES)[2] == "missing_openai_api_key"


def test_never_guesses_without_categories(ai_enabled):
    assert auto_categorize.suggest_category("Uber ride", [])[2] == "no_available_categories"


def test_empty_description(ai_enabled):
    assert auto_categorize.suggest_category("   ", CATEGORIES)[2] == "empty_description"


def test_suggestion_is_matched_case_insensitively(ai_enabled, monkeypatch):
    calls = []

    def fake_call(description, amount, categories):
        calls.append((description, amount, categories))
        return {"category": "transport", "confidence": 1.7, "reason": "ride hailing"}

    monkeypatch.setattr(auto_categorize, "_call_openai_once", fake_call)

    assert auto_categorize.suggest_category("Uber ride", CATEGORIES, amount=12) == (
        "Transport",
        1.0,
        "ride hailing",
    )
    assert calls == [("Uber ride", 12.0, ["Food", "Salary", "Transport"])]


def test_answers_outside_the_list_are_dropped(ai_enabled, monkeypatch):
    monkeypatch.setattr(
        auto_categorize,
        "_call_openai_once",
        lambda *args: {"category": "Entertainment", "confidence": 0.4},
    )

    assert auto_categorize.suggest_category("Cinema", CATEGORIES) == (None, 0.4, "no_valid_category")


def test_ai_failure_is_silent(ai_enabled, monkeypatch):
    monkeypatch.setattr(auto_categorize, "_call_openai_once", lambda *args: None)

    assert auto_categorize.suggest_category("Cinema", CATEGORIES) == (None, 0.0, "ai_error")


def test_json_fences_are_stripped():
    assert auto_categorize._safe_json_loads(
        auto_categorize._strip_json_fences('```json\n{"category": "Food"}\n```')
    ) == {"category": "Food"}
