import json
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from macai.db.models import ChatSession, EmergencyAlert, User
from macai.db.session import get_db

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

PROCESS_STARTED_AT = time.monotonic()
TOP_SYMPTOM_LIMIT = 10
AVERAGE_WINDOW_DAYS = 30


class UserStats(BaseModel):
    total: int
    new_today: int


class SessionStats(BaseModel):
    total: int
    today: int
    average_per_day: int


class AlertStats(BaseModel):
    total: int
    active: int
    resolved: int


class SymptomCount(BaseModel):
    symptom: str
    count: int


class UrgencyCount(BaseModel):
    level: Optional[str] = None
    count: int


class SymptomStats(BaseModel):
    top_symptoms: list[SymptomCount]
    urgency_distribution: list[UrgencyCount]


class SystemHealth(BaseModel):
    uptime_seconds: float
    last_updated: datetime


class UsageAnalytics(BaseModel):
    users: UserStats
    sessions: SessionStats
    emergency_alerts: AlertStats
    symptoms: SymptomStats
    system_health: SystemHealth


class UsageAnalyticsResponse(BaseModel):
    success: bool = True
    analytics: UsageAnalytics


def _start_of_today() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def top_symptoms(db: Session, limit: int = TOP_SYMPTOM_LIMIT) -> list[SymptomCount]:
    counts: Counter[str] = Counter()
    for (raw,) in db.query(ChatSession.primary_symptoms_json).all():
        try:
            symptoms = json.loads(raw or "[]")
        except ValueError:
            continue
        counts.update(str(item) for item in symptoms)
    return [SymptomCount(symptom=name, count=count) for name, count in counts.most_common(limit)]


@router.get("/usage", response_model=UsageAnalyticsResponse)
def usage_analytics(db: Session = Depends(get_db)) -> UsageAnalyticsResponse:
    today = _start_of_today()
    total_sessions = db.query(func.count(ChatSession.id)).scalar() or 0

    urgency_rows = (
        db.query(ChatSession.urgency_level, func.count(ChatSession.id).label("count"))
        .group_by(ChatSession.urgency_level)
        .order_by(func.count(ChatSession.id).desc(), ChatSession.urgency_level.asc())
        .all()
    )

    return UsageAnalyticsResponse(
        analytics=UsageAnalytics(
            users=UserStats(
                total=db.query(func.count(User.id)).scalar() or 0,
                new_today=db.query(func.count(User.id)).filter(User.registered_at >= today).scalar() or 0,
            ),
            sessions=SessionStats(
                total=total_sessions,
                today=db.query(func.count(ChatSession.id)).filter(ChatSession.created_at >= today).scalar()
                or 0,
                average_per_day=round(total_sessions / AVERAGE_WINDOW_DAYS),
            ),
            emergency_alerts=AlertStats(
                total=db.query(func.count(EmergencyAlert.id)).scalar() or 0,
                active=db.query(func.count(EmergencyAlert.id)).filter(EmergencyAlert.status == "active").scalar()
                or 0,
                resolved=db.query(func.count(EmergencyAlert.id))
                .filter(EmergencyAlert.status == "resolved")
                .scalar()
                or 0,
            ),
            symptoms=SymptomStats(
                top_symptoms=top_symptoms(db),
                urgency_distribution=[
                    UrgencyCount(level=row.urgency_level, count=int(row.count)) for row in urgency_rows
                ],
            ),
            system_health=SystemHealth(
                uptime_seconds=round(time.monotonic() - PROCESS_STARTED_AT, 3),
                last_updated=datetime.now(timezone.utc),
            ),
        )
    )
