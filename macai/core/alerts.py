import json
import time
from typing import Any, Optional
from uuid import uuid4


def new_alert_id() -> str:
    return f"EMRG_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def load_contacts(raw: Optional[str]) -> list[dict[str, Any]]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def primary_contact(contacts: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Contact to reach first: the one flagged primary, else the first listed."""
    for contact in contacts:
        if contact.get("is_primary"):
            return contact
    return contacts[0] if contacts else None
