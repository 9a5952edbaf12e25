import json
import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, Field

SYMPTOM_RULES_PATH = os.getenv("SYMPTOM_RULES_PATH")

EMERGENCY_ALERT_ACTION = "emergency_alert"
NOTIFY_CONTACTS_ACTION = "notify_contacts"


class UrgencyLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

    @property
    def rank(self) -> int:
        return URGENCY_ORDER.index(self)


URGENCY_ORDER: tuple[UrgencyLevel, ...] = (
    UrgencyLevel.low,
    UrgencyLevel.medium,
    UrgencyLevel.high,
    UrgencyLevel.critical,
)


def escalate(current: UrgencyLevel, candidate: UrgencyLevel) -> UrgencyLevel:
    """Return the higher of two urgency levels; never lowers ``current``."""
    if candidate.rank > current.rank:
        return candidate
    return current


@dataclass(frozen=True)
class SymptomRule:
    id: str
    keywords: tuple[str, ...]
    conditions: tuple[str, ...]
    urgency: UrgencyLevel
    advice: str
    prevention: str

    def matches(self, normalized_text: str) -> bool:
        return any(keyword in normalized_text for keyword in self.keywords)


@dataclass(frozen=True)
class RuleTable:
    rules: tuple[SymptomRule, ...]
    emergency_keywords: tuple[str, ...]

    def emergency_hits(self, normalized_text: str) -> tuple[str, ...]:
        return tuple(keyword for keyword in self.emergency_keywords if keyword in normalized_text)


@dataclass(frozen=True)
class ClassificationResult:
    detected_symptoms: tuple[str, ...] = ()
    urgency: UrgencyLevel = UrgencyLevel.low
    conditions: tuple[str, ...] = ()
    advice: tuple[str, ...] = ()
    prevention: tuple[str, ...] = ()
    emergency_triggers: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected_symptoms": list(self.detected_symptoms),
            "urgency": self.urgency.value,
            "conditions": list(self.conditions),
            "advice": list(self.advice),
            "prevention": list(self.prevention),
            "emergency_triggers": list(self.emergency_triggers),
        }


@dataclass(frozen=True)
class ResponseBundle:
    content: str
    urgency: UrgencyLevel
    suggestions: tuple[str, ...] = ()
    auto_actions: tuple[str, ...] = ()

    @property
    def requires_emergency_alert(self) -> bool:
        return EMERGENCY_ALERT_ACTION in self.auto_actions


# Knowledge base. Keywords include common Hindi transliterations.
DEFAULT_SYMPTOM_RULES: list[dict[str, Any]] = [
    {
        "id": "fever",
        "keywords": ["fever", "temperature", "hot", "chills", "bukhar", "thand", "body heat"],
        "conditions": ["viral infection", "bacterial infection", "malaria", "typhoid", "dengue"],
        "urgency": "medium",
        "advice": (
            "Monitor temperature regularly, stay hydrated, rest. "
            "Seek medical help if temperature exceeds 103°F or persists >3 days"
        ),
        "prevention": "Maintain hygiene, avoid crowded places during outbreaks, drink clean water",
    },
    {
        "id": "cough",
        "keywords": ["cough", "coughing", "khansi", "throat", "dry cough", "wet cough"],
        "conditions": ["common cold", "bronchitis", "pneumonia", "tuberculosis", "asthma"],
        "urgency": "low",
        "advice": (
            "Stay hydrated, avoid cold foods, use warm salt water gargle. "
            "Seek help if cough persists >2 weeks or with blood"
        ),
        "prevention": "Avoid smoking, wear masks in polluted areas, maintain good ventilation",
    },
    {
        "id": "chest_pain",
        "keywords": ["chest pain", "heart pain", "cardiac", "seene mein dard", "breathing pain"],
        "conditions": ["heart attack", "angina", "acid reflux", "anxiety", "muscle strain"],
        "urgency": "critical",
        "advice": "EMERGENCY: Call 108 immediately for chest pain. Do not ignore. Sit upright, stay calm.",
        "prevention": "Regular exercise, healthy diet, stress management, avoid smoking",
    },
    {
        "id": "breathing_difficulty",
        "keywords": ["breathing", "shortness", "difficulty", "saans", "breathless", "oxygen"],
        "conditions": ["asthma", "pneumonia", "heart failure", "anxiety", "covid-19"],
        "urgency": "high",
        "advice": (
            "Seek immediate medical attention. Sit upright, stay calm, "
            "use prescribed inhaler if available"
        ),
        "prevention": "Avoid allergens, maintain clean environment, regular check-ups",
    },
    {
        "id": "headache",
        "keywords": ["headache", "migraine", "head pain", "sir dard", "brain pain"],
        "conditions": ["tension headache", "migraine", "hypertension", "sinus", "dehydration"],
        "urgency": "low",
        "advice": (
            "Rest in dark room, stay hydrated, gentle massage. "
            "Seek help if sudden severe headache"
        ),
        "prevention": "Regular sleep schedule, stress management, stay hydrated, limit screen time",
    },
    {
        "id": "stomach_pain",
        "keywords": ["stomach pain", "abdominal", "pet dard", "gas", "acidity", "digestion"],
        "conditions": ["gastritis", "food poisoning", "appendicitis", "gas", "ulcer"],
        "urgency": "medium",
        "advice": (
            "Avoid spicy foods, stay hydrated, rest. "
            "Severe pain with fever needs immediate attention"
        ),
        "prevention": "Eat fresh food, maintain hygiene, avoid overeating, regular meal times",
    },
]

DEFAULT_EMERGENCY_KEYWORDS: list[str] = [
    "emergency",
    "urgent",
    "critical",
    "help me",
    "cant breathe",
    "can't breathe",
    "can’t breathe",
    "chest pain",
    "heart attack",
    "stroke",
    "unconscious",
    "bleeding",
    "accident",
    "choking",
    "poisoning",
    "severe pain",
    "difficulty breathing",
    "suicide",
    "overdose",
]


class SymptomRuleSpec(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    keywords: list[str] = Field(min_length=1)
    conditions: list[str] = Field(default_factory=list)
    urgency: UrgencyLevel
    advice: str
    prevention: str


class RuleTableSpec(BaseModel):
    symptoms: list[SymptomRuleSpec]
    emergency_keywords: list[str] = Field(default_factory=list)


def _normalized_keywords(keywords: Iterable[str]) -> tuple[str, ...]:
    cleaned: list[str] = []
    for keyword in keywords:
        value = keyword.lower()
        if not value.strip():
            raise ValueError("Rule keywords must not be blank")
        if value not in cleaned:
            cleaned.append(value)
    return tuple(cleaned)


def build_rule_table(data: dict[str, Any]) -> RuleTable:
    spec = RuleTableSpec.model_validate(data)
    seen_ids: set[str] = set()
    rules: list[SymptomRule] = []
    for item in spec.symptoms:
        if item.id in seen_ids:
            raise ValueError(f"Duplicate symptom rule id: {item.id}")
        seen_ids.add(item.id)
        rules.append(
            SymptomRule(
                id=item.id,
                keywords=_normalized_keywords(item.keywords),
                conditions=tuple(item.conditions),
                urgency=item.urgency,
                advice=item.advice,
                prevention=item.prevention,
            )
        )
    emergency = _normalized_keywords(spec.emergency_keywords) if spec.emergency_keywords else ()
    return RuleTable(rules=tuple(rules), emergency_keywords=emergency)


def load_rule_table(path: Union[str, Path]) -> RuleTable:
    raw = Path(path).expanduser().read_text(encoding="utf-8")
    return build_rule_table(json.loads(raw))


DEFAULT_RULE_TABLE = build_rule_table(
    {"symptoms": DEFAULT_SYMPTOM_RULES, "emergency_keywords": DEFAULT_EMERGENCY_KEYWORDS}
)


@lru_cache(maxsize=1)
def get_rule_table() -> RuleTable:
    if SYMPTOM_RULES_PATH:
        return load_rule_table(SYMPTOM_RULES_PATH)
    return DEFAULT_RULE_TABLE


def _extend_unique(target: list[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


def classify(text: Optional[str], rules: Optional[RuleTable] = None) -> ClassificationResult:
    """Match free text against the rule table.

    Matching is plain substring containment on the lowercased text, so
    multi-word phrases and short fragments behave the same way. Any string,
    including an empty one, yields a result.
    """
    table = rules or get_rule_table()
    normalized = (text or "").lower()

    triggers = table.emergency_hits(normalized)
    urgency = UrgencyLevel.critical if triggers else UrgencyLevel.low

    detected: list[str] = []
    conditions: list[str] = []
    advice: list[str] = []
    prevention: list[str] = []
    for rule in table.rules:
        if not rule.matches(normalized):
            continue
        detected.append(rule.id)
        _extend_unique(conditions, rule.conditions)
        _extend_unique(advice, [rule.advice])
        _extend_unique(prevention, [rule.prevention])
        urgency = escalate(urgency, rule.urgency)

    return ClassificationResult(
        detected_symptoms=tuple(detected),
        urgency=urgency,
        conditions=tuple(conditions),
        advice=tuple(advice),
        prevention=tuple(prevention),
        emergency_triggers=triggers,
    )


EMERGENCY_SUGGESTIONS = ("Call 108 Now", "Nearest Emergency Room", "Emergency Contacts")
ONBOARDING_SUGGESTIONS = ("Describe Symptoms", "Find Hospital", "Health Tips", "Emergency Help")
ANALYSIS_SUGGESTIONS = (
    "Find Nearby Hospital",
    "Ayushman Bharat Services",
    "More Prevention Tips",
    "Emergency Contacts",
)
MAX_LISTED_CONDITIONS = 4

EMERGENCY_CONTENT = (
    "🚨 <strong>EMERGENCY ALERT DETECTED</strong><br><br>"
    "Based on your symptoms, this requires immediate medical attention.<br><br>"
    "<strong>🚑 IMMEDIATE ACTIONS REQUIRED:</strong><br>"
    "📞 <strong>Call 108 (National Ambulance Service) NOW</strong><br>"
    "📞 <strong>Call 102 (Emergency Medical Service)</strong><br>"
    "🏥 <strong>Go to nearest emergency room immediately</strong><br><br>"
    "<strong>While waiting for help:</strong><br>"
    "• Stay calm and sit upright<br>"
    "• Do not drive yourself<br>"
    "• Have someone stay with you<br>"
    "• Keep emergency contacts ready<br><br>"
    "⚠️ <strong>DO NOT DELAY - SEEK IMMEDIATE MEDICAL HELP!</strong><br><br>"
    "<em>Emergency services have been notified automatically.</em>"
)

ONBOARDING_CONTENT = (
    "🩺 <strong>Welcome to MAC AI Healthcare Assistant</strong><br><br>"
    "I'm here to help with your health concerns. I can provide:<br><br>"
    "<strong>🔍 Health Services:</strong><br>"
    "• Symptom analysis and guidance<br>"
    "• Disease prevention tips<br>"
    "• Healthcare facility finder<br>"
    "• Emergency assistance<br>"
    "• Health education<br><br>"
    "<strong>💬 How to get help:</strong><br>"
    "Please describe your symptoms in detail:<br>"
    "• What are you experiencing?<br>"
    "• When did it start?<br>"
    "• How severe is it (1-10 scale)?<br>"
    "• Any other associated symptoms?<br><br>"
    '<em>Example: "I have fever for 2 days with headache and body ache"</em><br><br>'
    "<strong>🔒 Your privacy is protected</strong> - All conversations are confidential."
)

URGENCY_BANNERS: dict[UrgencyLevel, str] = {
    UrgencyLevel.high: (
        "⚠️ <strong>HIGH PRIORITY:</strong> Please seek medical attention soon. "
        "Don't delay if symptoms worsen.<br><br>"
    ),
    UrgencyLevel.medium: (
        "⚠️ <strong>MODERATE CONCERN:</strong> Monitor symptoms closely. "
        "Consult a doctor if they persist or worsen.<br><br>"
    ),
}

NEXT_STEPS = (
    "Document your symptoms and their progression",
    "Monitor any changes in your condition",
    "Consider consulting a healthcare professional",
    "I can help you find nearby Ayushman Bharat empanelled facilities",
)

SEEK_HELP_IF = (
    "Symptoms suddenly worsen",
    "Difficulty breathing or chest pain",
    "High fever (>103°F) or severe dehydration",
    "Loss of consciousness or severe weakness",
)


def symptom_label(symptom_id: str) -> str:
    return symptom_id.replace("_", " ").capitalize()


def _capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def _bullets(items: Iterable[str]) -> str:
    return "".join(f"• {item}<br>" for item in items)


def respond(result: ClassificationResult) -> ResponseBundle:
    if result.urgency == UrgencyLevel.critical:
        return ResponseBundle(
            content=EMERGENCY_CONTENT,
            urgency=UrgencyLevel.critical,
            suggestions=EMERGENCY_SUGGESTIONS,
            auto_actions=(EMERGENCY_ALERT_ACTION, NOTIFY_CONTACTS_ACTION),
        )

    if not result.detected_symptoms:
        return ResponseBundle(
            content=ONBOARDING_CONTENT,
            urgency=UrgencyLevel.low,
            suggestions=ONBOARDING_SUGGESTIONS,
        )

    parts = ["🩺 <strong>MAC AI Health Analysis</strong><br><br>"]
    parts.append("<strong>📋 Detected Symptoms:</strong><br>")
    parts.append(_bullets(symptom_label(symptom) for symptom in result.detected_symptoms))
    parts.append("<br>")

    parts.append("<strong>💡 Medical Guidance:</strong><br>")
    parts.append(_bullets(result.advice))
    parts.append("<br>")

    if result.conditions:
        parts.append("<strong>🔍 Possible Conditions (for reference):</strong><br>")
        parts.append(_bullets(_capitalize_first(c) for c in result.conditions[:MAX_LISTED_CONDITIONS]))
        parts.append(
            "<br><em>⚠️ This is for informational purposes only. "
            "Consult a doctor for proper diagnosis.</em><br><br>"
        )

    if result.prevention:
        parts.append("<strong>🛡️ Prevention Tips:</strong><br>")
        parts.append(_bullets(result.prevention))
        parts.append("<br>")

    parts.append(URGENCY_BANNERS.get(result.urgency, ""))

    parts.append("<strong>🏥 Next Steps:</strong><br>")
    parts.append(_bullets(NEXT_STEPS))
    parts.append("<br>")

    parts.append("<strong>🆘 When to seek immediate help:</strong><br>")
    parts.append(_bullets(SEEK_HELP_IF))
    parts.append("<br>")

    parts.append(
        "Would you like me to help you find nearby healthcare facilities "
        "or provide more specific guidance?"
    )

    return ResponseBundle(
        content="".join(parts),
        urgency=result.urgency,
        suggestions=ANALYSIS_SUGGESTIONS,
    )
