import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from macai.api.auth import EmergencyContact, get_current_user
from macai.core.alerts import load_contacts, new_alert_id, primary_contact
from macai.core.resources import NATIONAL_EMERGENCY_SERVICES
from macai.db.models import EmergencyAlert, User
from macai.db.session import get_db

router = APIRouter(prefix="/api/emergency", tags=["emergency"])
logger = logging.getLogger("uvicorn.error")

ESTIMATED_RESPONSE_TIME = "8-12 minutes"

INSTRUCTIONS = [
    "Emergency services have been automatically notified",
    "Call 108 for immediate medical assistance",
    "Stay calm and follow emergency operator instructions",
    "Do not move if injured unless in immediate danger",
    "Keep phone lines open for emergency contacts",
]


class AlertLocation(BaseModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=300)
    accuracy_m: Optional[float] = Field(default=None, ge=0)


class EmergencyRequest(BaseModel):
    location: Optional[AlertLocation] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    contact_emergency_services: bool = True


class ImmediateAction(BaseModel):
    action: str
    number: Optional[str] = None
    description: str


class EmergencyService(BaseModel):
    name: str
    phone: str
    type: str
    response_time: str


class EmergencyResponse(BaseModel):
    success: bool = True
    message: str
    alert_id: str
    timestamp: datetime
    immediate_actions: list[ImmediateAction]
    emergency_services: list[EmergencyService]
    instructions: list[str]
    estimated_response_time: str
    support_message: str
    emergency_contact: Optional[EmergencyContact] = None


IMMEDIATE_ACTIONS = [
    ImmediateAction(
        action="Call Emergency Services",
        number="108",
        description="National Ambulance Service - Call immediately",
    ),
    ImmediateAction(action="Stay Calm", description="Emergency services have been notified"),
    ImmediateAction(
        action="Share Location",
        description="Provide exact location to emergency responders",
    ),
]


@router.post("", response_model=EmergencyResponse, status_code=status.HTTP_201_CREATED)
def raise_emergency(
    payload: EmergencyRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> EmergencyResponse:
    now = datetime.now(timezone.utc)
    contact = primary_contact(load_contacts(user.emergency_contacts_json))
    alert = EmergencyAlert(
        alert_id=new_alert_id(),
        user_id=user.id,
        alert_type="user_initiated",
        severity="high",
        description=(payload.description or "").strip() or None,
        location_json=payload.location.model_dump_json() if payload.location else None,
        contact_emergency_services=payload.contact_emergency_services,
        contacts_notified_json=json.dumps([contact] if contact else []),
        status="active",
        alert_at=now,
        created_at=now,
    )
    db.add(alert)
    user.emergency_alert_count = (user.emergency_alert_count or 0) + 1
    db.commit()
    db.refresh(alert)

    logger.warning(
        "emergency_alert_user_initiated user_id=%s alert_id=%s has_location=%s contact_services=%s",
        user.id,
        alert.alert_id,
        payload.location is not None,
        payload.contact_emergency_services,
    )

    return EmergencyResponse(
        message="Emergency alert activated successfully",
        alert_id=alert.alert_id,
        timestamp=alert.alert_at,
        immediate_actions=IMMEDIATE_ACTIONS,
        emergency_services=[EmergencyService(**item) for item in NATIONAL_EMERGENCY_SERVICES],
        instructions=INSTRUCTIONS,
        estimated_response_time=ESTIMATED_RESPONSE_TIME,
        support_message="Help is on the way. Stay strong!",
        emergency_contact=EmergencyContact(**contact) if contact else None,
    )
