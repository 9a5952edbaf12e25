import json
from datetime import datetime, timedelta

from macai.core.triage import build_rule_table
from macai.db.models import ChatSession, EmergencyAlert, User


def _send(client, headers, session_id: str, message: str):
    return client.post(
        "/api/chat/message",
        headers=headers,
        json={"session_id": session_id, "message": message},
    )


def test_start_session_returns_welcome(client, auth_headers) -> None:
    response = client.post("/api/chat/start", headers=auth_headers)
    assert response.status_code == 201
    body = response.json()
    assert body["session_id"].startswith("session_")
    assert body["initial_message"]["role"] == "assistant"
    assert body["initial_message"]["content"].startswith("🙏 Namaste Asha Verma!")
    assert body["features"]


def test_symptom_message_updates_summary(client, auth_headers, start_session, db_session) -> None:
    session_id = start_session()
    response = _send(client, auth_headers, session_id, "I have fever for 2 days with headache")
    assert response.status_code == 200
    body = response.json()

    reply = body["response"]
    assert reply["urgency"] == "medium"
    assert reply["auto_actions"] == []
    assert reply["metadata"]["symptoms"] == ["fever", "headache"]
    assert reply["metadata"]["intent"] == "medical_consultation"
    assert "Medical Guidance" in reply["content"]

    summary = body["session_summary"]
    assert summary["primary_symptoms"] == ["fever", "headache"]
    assert summary["urgency_level"] == "medium"
    assert summary["recommended_actions"] == reply["suggestions"]
    assert body["analysis"]["symptoms_detected"] == 2
    assert body["analysis"]["conditions_identified"] == 10
    assert body["session_status"] == "active"
    assert body["emergency_alert_id"] is None

    row = db_session.query(ChatSession).filter(ChatSession.session_id == session_id).one()
    assert row.message_count == 3
    assert db_session.query(EmergencyAlert).filter(EmergencyAlert.session_id == session_id).count() == 0


def test_critical_message_escalates_and_creates_alert(client, auth_headers, start_session, db_session) -> None:
    session_id = start_session()
    response = _send(client, auth_headers, session_id, "Help, I can't breathe")
    assert response.status_code == 200
    body = response.json()

    assert body["response"]["urgency"] == "critical"
    assert body["response"]["auto_actions"] == ["emergency_alert", "notify_contacts"]
    assert "EMERGENCY ALERT DETECTED" in body["response"]["content"]
    assert body["session_status"] == "escalated"
    alert_id = body["emergency_alert_id"]
    assert alert_id.startswith("EMRG_")

    alert = db_session.query(EmergencyAlert).filter(EmergencyAlert.alert_id == alert_id).one()
    assert alert.alert_type == "critical_symptoms"
    assert alert.status == "active"
    assert alert.severity == "critical"
    assert alert.session_id == session_id
    assert alert.user_message == "Help, I can't breathe"

    user = db_session.query(User).filter(User.id == alert.user_id).one()
    assert user.emergency_alert_count == 1
    assert user.total_messages == 1


def test_repeated_critical_message_creates_another_alert(client, auth_headers, start_session, db_session) -> None:
    session_id = start_session()
    first = _send(client, auth_headers, session_id, "severe pain in my chest, chest pain")
    second = _send(client, auth_headers, session_id, "severe pain in my chest, chest pain")
    assert first.json()["emergency_alert_id"] != second.json()["emergency_alert_id"]
    assert first.json()["response"]["content"] == second.json()["response"]["content"]
    assert db_session.query(EmergencyAlert).filter(EmergencyAlert.session_id == session_id).count() == 2


def test_onboarding_reply_for_unmatched_message(client, auth_headers, start_session) -> None:
    session_id = start_session()
    response = _send(client, auth_headers, session_id, "hello")
    body = response.json()
    assert body["response"]["urgency"] == "low"
    assert "Welcome to MAC AI Healthcare Assistant" in body["response"]["content"]
    assert body["session_summary"]["primary_symptoms"] == []


def test_message_validation(client, auth_headers, start_session) -> None:
    session_id = start_session()
    assert _send(client, auth_headers, session_id, "").status_code == 422
    assert _send(client, auth_headers, session_id, "x" * 1001).status_code == 422
    assert _send(client, auth_headers, session_id, "x" * 1000).status_code == 200


def test_message_to_unknown_or_foreign_session(client, auth_headers, registration_payload) -> None:
    assert _send(client, auth_headers, "session_missing", "fever").status_code == 404

    other = registration_payload()
    token = client.post("/api/auth/register", json=other).json()["token"]
    other_headers = {"Authorization": f"Bearer {token}"}
    other_session = client.post("/api/chat/start", headers=other_headers).json()["session_id"]
    assert _send(client, auth_headers, other_session, "fever").status_code == 404


def test_custom_rule_table_is_used(client, auth_headers, start_session, override_rules) -> None:
    override_rules(
        build_rule_table(
            {
                "symptoms": [
                    {
                        "id": "rash",
                        "keywords": ["rash"],
                        "conditions": ["dermatitis"],
                        "urgency": "high",
                        "advice": "Keep the area clean",
                        "prevention": "Avoid irritants",
                    }
                ],
                "emergency_keywords": [],
            }
        )
    )
    session_id = start_session()
    body = _send(client, auth_headers, session_id, "rash and fever").json()
    assert body["response"]["metadata"]["symptoms"] == ["rash"]
    assert body["response"]["urgency"] == "high"


def test_history_transcript_and_statistics(client, auth_headers, start_session) -> None:
    calm = start_session()
    _send(client, auth_headers, calm, "dry cough since yesterday")
    urgent = start_session()
    _send(client, auth_headers, urgent, "there was an accident")
    finished = start_session()
    end = client.post(f"/api/chat/sessions/{finished}/end", headers=auth_headers)
    assert end.status_code == 200
    assert end.json()["status"] == "completed"

    history = client.get("/api/chat/history", headers=auth_headers, params={"limit": 2, "page": 1})
    assert history.status_code == 200
    body = history.json()
    assert len(body["sessions"]) == 2
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 2,
        "total_sessions": 3,
        "has_next": True,
        "has_prev": False,
    }
    assert body["statistics"] == {"total": 3, "active": 1, "completed": 1, "escalated": 1}

    page_two = client.get("/api/chat/history", headers=auth_headers, params={"limit": 2, "page": 2}).json()
    assert len(page_two["sessions"]) == 1
    assert page_two["pagination"]["has_prev"] is True

    all_sessions = body["sessions"] + page_two["sessions"]
    by_id = {item["session_id"]: item for item in all_sessions}
    assert by_id[urgent]["status"] == "escalated"
    assert by_id[calm]["summary"]["primary_symptoms"] == ["cough"]
    assert by_id[calm]["last_message"].endswith("...")
    assert len(by_id[calm]["last_message"]) == 103

    transcript = client.get(f"/api/chat/sessions/{calm}/messages", headers=auth_headers)
    assert transcript.status_code == 200
    messages = transcript.json()["messages"]
    assert [m["role"] for m in messages] == ["assistant", "user", "assistant"]
    assert messages[1]["content"] == "dry cough since yesterday"
    assert messages[2]["symptoms"] == ["cough"]
    assert messages[2]["urgency"] == "low"


def test_end_session_only_when_active(client, auth_headers, start_session) -> None:
    session_id = start_session()
    _send(client, auth_headers, session_id, "I am unconscious soon")
    response = client.post(f"/api/chat/sessions/{session_id}/end", headers=auth_headers)
    assert response.status_code == 409
    assert client.post("/api/chat/sessions/session_missing/end", headers=auth_headers).status_code == 404


def test_critical_message_names_primary_contact(client, registration_payload, db_session) -> None:
    payload = registration_payload(
        emergency_contacts=[
            {"name": "Kiran Verma", "relation": "sibling", "phone": "8123456789"},
            {"name": "Ravi Verma", "relation": "spouse", "phone": "9876501234", "is_primary": True},
        ]
    )
    token = client.post("/api/auth/register", json=payload).json()["token"]
    headers = {"Authorization": f"Bearer {token}"}
    session_id = client.post("/api/chat/start", headers=headers).json()["session_id"]

    body = _send(client, headers, session_id, "he is unconscious").json()
    assert body["emergency_contact"]["name"] == "Ravi Verma"
    assert body["emergency_contact"]["phone"] == "9876501234"

    alert = db_session.query(EmergencyAlert).filter(EmergencyAlert.alert_id == body["emergency_alert_id"]).one()
    assert json.loads(alert.contacts_notified_json) == [
        {"name": "Ravi Verma", "relation": "spouse", "phone": "9876501234", "is_primary": True}
    ]

    calm = _send(client, headers, session_id, "mild cough").json()
    assert calm["emergency_contact"] is None


def test_timestamps_are_utc_aware(client, auth_headers, start_session) -> None:
    session_id = start_session()
    reply = _send(client, auth_headers, session_id, "fever").json()
    transcript = client.get(f"/api/chat/sessions/{session_id}/messages", headers=auth_headers).json()
    history = client.get("/api/chat/history", headers=auth_headers).json()

    stamps = [reply["response"]["timestamp"], history["sessions"][0]["updated_at"]]
    stamps += [message["created_at"] for message in transcript["messages"]]
    for stamp in stamps:
        parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        assert parsed.utcoffset() == timedelta(0), stamp
