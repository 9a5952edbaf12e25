import itertools
import json

import pytest
from pydantic import ValidationError

from macai.core import triage
from macai.core.triage import (
    DEFAULT_RULE_TABLE,
    EMERGENCY_ALERT_ACTION,
    URGENCY_ORDER,
    ClassificationResult,
    UrgencyLevel,
    build_rule_table,
    classify,
    escalate,
    load_rule_table,
    respond,
    symptom_label,
)


def _table(*rules: tuple[str, str, str], emergency: tuple[str, ...] = ()):
    return build_rule_table(
        {
            "symptoms": [
                {
                    "id": rule_id,
                    "keywords": [keyword],
                    "conditions": [f"{rule_id} condition"],
                    "urgency": urgency,
                    "advice": f"{rule_id} advice",
                    "prevention": f"{rule_id} prevention",
                }
                for rule_id, keyword, urgency in rules
            ],
            "emergency_keywords": list(emergency),
        }
    )


def test_no_keyword_is_low_with_no_symptoms() -> None:
    result = classify("I would like to book a routine eye appointment.")
    assert result.detected_symptoms == ()
    assert result.urgency == UrgencyLevel.low
    assert result.conditions == ()


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_empty_and_blank_input_do_not_fail(text: str) -> None:
    result = classify(text)
    assert result == ClassificationResult()


def test_none_is_treated_as_empty() -> None:
    assert classify(None) == ClassificationResult()


@pytest.mark.parametrize(
    "text",
    [
        "I can't breathe",
        "I cant breathe properly",
        "Please help me",
        "There was an ACCIDENT on the road",
        "my father had a stroke",
    ],
)
def test_emergency_keywords_force_critical(text: str) -> None:
    result = classify(text)
    assert result.urgency == UrgencyLevel.critical
    assert result.emergency_triggers


def test_fever_and_headache_in_table_order() -> None:
    result = classify("I have fever for 2 days with headache")
    assert result.detected_symptoms == ("fever", "headache")
    assert result.urgency == UrgencyLevel.medium
    assert result.conditions
    assert result.advice
    assert result.prevention
    assert len(result.conditions) == len(set(result.conditions))
    assert len(result.advice) == 2


def test_table_order_not_text_order() -> None:
    result = classify("Headache first, then a fever")
    assert result.detected_symptoms == ("fever", "headache")


def test_substring_matching_without_word_boundaries() -> None:
    # "hot" is a fever keyword and matches inside "photo".
    result = classify("Can you look at this photo")
    assert result.detected_symptoms == ("fever",)


def test_transliterated_keywords_match() -> None:
    result = classify("Mujhe khansi aur sir dard hai")
    assert result.detected_symptoms == ("cough", "headache")
    assert result.urgency == UrgencyLevel.low


def test_shared_conditions_are_deduplicated_in_first_seen_order() -> None:
    result = classify("dry cough and I feel breathless")
    assert result.detected_symptoms == ("cough", "breathing_difficulty")
    assert result.conditions.count("asthma") == 1
    assert result.conditions.count("pneumonia") == 1
    assert result.conditions.index("pneumonia") < result.conditions.index("heart failure")
    assert result.urgency == UrgencyLevel.high


def test_emergency_keyword_cannot_be_lowered_by_low_rules() -> None:
    result = classify("emergency: mild headache and a cough, some gas")
    assert set(result.detected_symptoms) == {"cough", "headache", "stomach_pain"}
    assert result.urgency == UrgencyLevel.critical


def test_critical_rule_without_emergency_keyword() -> None:
    result = classify("sharp heart pain since morning")
    assert result.detected_symptoms == ("chest_pain",)
    assert result.emergency_triggers == ()
    assert result.urgency == UrgencyLevel.critical


def test_classify_is_deterministic() -> None:
    text = "fever, chills and stomach pain after dinner"
    assert classify(text) == classify(text)
    assert classify(text).to_dict() == classify(text).to_dict()


def _branch_promotion(current: UrgencyLevel, candidate: UrgencyLevel) -> UrgencyLevel:
    # Three-branch promotion rule: critical wins, high beats non-critical, medium beats low.
    if candidate == UrgencyLevel.critical:
        return UrgencyLevel.critical
    if current != UrgencyLevel.critical and candidate == UrgencyLevel.high:
        return UrgencyLevel.high
    if current == UrgencyLevel.low and candidate == UrgencyLevel.medium:
        return UrgencyLevel.medium
    return current


@pytest.mark.parametrize("current,candidate", list(itertools.product(URGENCY_ORDER, URGENCY_ORDER)))
def test_escalate_matches_branchwise_promotion(current: UrgencyLevel, candidate: UrgencyLevel) -> None:
    # Promotion is a monotonic maximum; for every pair it agrees with the
    # three-branch rule above.
    assert escalate(current, candidate) == _branch_promotion(current, candidate)


def test_promotion_is_independent_of_rule_order() -> None:
    levels = [("a", "alpha", "medium"), ("b", "beta", "high"), ("c", "gamma", "low")]
    outcomes = set()
    for ordering in itertools.permutations(levels):
        outcomes.add(classify("alpha beta gamma", _table(*ordering)).urgency)
    assert outcomes == {UrgencyLevel.high}


def test_medium_after_high_does_not_lower() -> None:
    table = _table(("first", "one", "high"), ("second", "two", "medium"))
    assert classify("one two", table).urgency == UrgencyLevel.high


def test_keywords_are_normalized_to_lowercase() -> None:
    table = _table(("rash", "Skin RASH", "low"))
    assert classify("a skin rash on my arm", table).detected_symptoms == ("rash",)


def test_duplicate_rule_ids_rejected() -> None:
    with pytest.raises(ValueError):
        _table(("x", "one", "low"), ("x", "two", "low"))


def test_unknown_urgency_rejected() -> None:
    with pytest.raises(ValidationError):
        _table(("x", "one", "severe"))


def test_load_rule_table_from_file(tmp_path) -> None:
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {
                "symptoms": [
                    {
                        "id": "rash",
                        "keywords": ["rash", "itching"],
                        "conditions": ["dermatitis"],
                        "urgency": "low",
                        "advice": "Keep the area clean and dry",
                        "prevention": "Avoid known irritants",
                    }
                ],
                "emergency_keywords": ["anaphylaxis"],
            }
        ),
        encoding="utf-8",
    )
    table = load_rule_table(path)
    assert classify("constant itching", table).detected_symptoms == ("rash",)
    assert classify("possible anaphylaxis", table).urgency == UrgencyLevel.critical


def test_default_table_is_shared_and_immutable() -> None:
    with pytest.raises(AttributeError):
        DEFAULT_RULE_TABLE.rules[0].urgency = UrgencyLevel.low  # type: ignore[misc]


def test_respond_critical_uses_emergency_template() -> None:
    bundle = respond(classify("chest pain and a headache"))
    assert bundle.urgency == UrgencyLevel.critical
    assert "EMERGENCY ALERT DETECTED" in bundle.content
    assert "Headache" not in bundle.content
    assert bundle.auto_actions == ("emergency_alert", "notify_contacts")
    assert bundle.suggestions[0] == "Call 108 Now"


def test_respond_no_symptoms_uses_onboarding_template() -> None:
    bundle = respond(classify("hello there"))
    assert bundle.urgency == UrgencyLevel.low
    assert "Welcome to MAC AI Healthcare Assistant" in bundle.content
    assert bundle.auto_actions == ()
    assert "Describe Symptoms" in bundle.suggestions


def test_respond_composes_analysis() -> None:
    result = classify("I have fever for 2 days with headache")
    bundle = respond(result)
    assert bundle.urgency == UrgencyLevel.medium
    assert "• Fever<br>" in bundle.content
    assert "• Headache<br>" in bundle.content
    assert "MODERATE CONCERN" in bundle.content
    assert "HIGH PRIORITY" not in bundle.content
    assert "Possible Conditions" in bundle.content
    assert "• Viral infection<br>" in bundle.content
    # Only the first four conditions are listed.
    assert "Typhoid" in bundle.content
    assert "Dengue" not in bundle.content
    assert "Prevention Tips" in bundle.content
    assert "When to seek immediate help" in bundle.content
    assert bundle.content.endswith("provide more specific guidance?")
    assert bundle.auto_actions == ()


def test_respond_high_banner_and_labels() -> None:
    bundle = respond(classify("I feel breathless"))
    assert "HIGH PRIORITY" in bundle.content
    assert "• Breathing difficulty<br>" in bundle.content


def test_respond_low_has_no_banner() -> None:
    bundle = respond(classify("bad migraine"))
    assert bundle.urgency == UrgencyLevel.low
    assert "HIGH PRIORITY" not in bundle.content
    assert "MODERATE CONCERN" not in bundle.content


def test_respond_is_pure() -> None:
    result = classify("stomach pain and acidity")
    assert respond(result) == respond(result)


@pytest.mark.parametrize(
    "text",
    ["", "fever", "cough", "breathless", "help me", "heart pain", "gas and headache", "nothing at all"],
)
def test_emergency_action_iff_critical(text: str) -> None:
    bundle = respond(classify(text))
    assert (EMERGENCY_ALERT_ACTION in bundle.auto_actions) == (bundle.urgency == UrgencyLevel.critical)


def test_symptom_label() -> None:
    assert symptom_label("stomach_pain") == "Stomach pain"
    assert symptom_label("fever") == "Fever"


@pytest.fixture
def fresh_rule_cache():
    triage.get_rule_table.cache_clear()
    yield
    triage.get_rule_table.cache_clear()


def test_rule_table_path_setting_is_loaded_once(tmp_path, monkeypatch, fresh_rule_cache) -> None:
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {
                "symptoms": [
                    {
                        "id": "sprain",
                        "keywords": ["sprain"],
                        "conditions": ["ligament injury"],
                        "urgency": "medium",
                        "advice": "Rest and apply ice",
                        "prevention": "Warm up before exercise",
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(triage, "SYMPTOM_RULES_PATH", str(path))

    table = triage.get_rule_table()
    assert [rule.id for rule in table.rules] == ["sprain"]
    assert table.emergency_keywords == ()

    path.unlink()
    assert triage.get_rule_table() is table


def test_rule_table_defaults_without_path(monkeypatch, fresh_rule_cache) -> None:
    monkeypatch.setattr(triage, "SYMPTOM_RULES_PATH", None)
    assert triage.get_rule_table() is DEFAULT_RULE_TABLE
