import json
import logging
import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from macai.api.auth import EmergencyContact, get_current_user
from macai.core.alerts import load_contacts, new_alert_id, primary_contact
from macai.core.triage import RuleTable, UrgencyLevel, classify, get_rule_table, respond
from macai.db.models import ChatMessage, ChatSession, EmergencyAlert, User
from macai.db.session import get_db

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger("uvicorn.error")

ANALYSIS_INTENT = "medical_consultation"
ANALYSIS_TYPE = "keyword_rules"
ANALYSIS_CONFIDENCE = 0.85
PREVIEW_LENGTH = 100

SESSION_FEATURES = [
    "Symptom analysis",
    "Emergency detection & alerts",
    "Healthcare facility finder",
    "Ayushman Bharat integration",
    "Multi-language support",
]


class SessionStatus(str, Enum):
    active = "active"
    completed = "completed"
    escalated = "escalated"
    interrupted = "interrupted"
    archived = "archived"


class MessageRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=96)
    message: str = Field(min_length=1, max_length=1000)


class MessageItem(BaseModel):
    id: int
    role: str
    content: str
    urgency: Optional[UrgencyLevel] = None
    symptoms: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    created_at: datetime


class StartSessionResponse(BaseModel):
    success: bool = True
    session_id: str
    message: str
    initial_message: MessageItem
    features: list[str]


class SessionSummary(BaseModel):
    primary_symptoms: list[str]
    possible_conditions: list[str]
    recommended_actions: list[str]
    urgency_level: UrgencyLevel
    last_analysis_at: Optional[datetime] = None


class ReplyMetadata(BaseModel):
    symptoms: list[str]
    intent: str
    confidence: float
    suggestions: list[str]
    urgency: UrgencyLevel
    analysis_type: str


class AssistantReply(BaseModel):
    content: str
    urgency: UrgencyLevel
    suggestions: list[str]
    auto_actions: list[str]
    timestamp: datetime
    metadata: ReplyMetadata


class AnalysisCounts(BaseModel):
    symptoms_detected: int
    urgency_level: UrgencyLevel
    conditions_identified: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    response: AssistantReply
    session_status: SessionStatus
    session_summary: SessionSummary
    analysis: AnalysisCounts
    emergency_alert_id: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None


class SessionItem(BaseModel):
    session_id: str
    status: SessionStatus
    summary: SessionSummary
    message_count: int
    created_at: datetime
    updated_at: datetime
    last_message: Optional[str] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_sessions: int
    has_next: bool
    has_prev: bool


class SessionStatistics(BaseModel):
    total: int
    active: int
    completed: int
    escalated: int


class HistoryResponse(BaseModel):
    success: bool = True
    sessions: list[SessionItem]
    pagination: Pagination
    statistics: SessionStatistics


class TranscriptResponse(BaseModel):
    session_id: str
    status: SessionStatus
    summary: SessionSummary
    messages: list[MessageItem]


class EndSessionResponse(BaseModel):
    session_id: str
    status: SessionStatus
    ended_at: datetime


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _loads_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return [str(item) for item in value] if isinstance(value, list) else []


def _new_session_id(user_id: int) -> str:
    return f"session_{user_id}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def _message_item(row: ChatMessage) -> MessageItem:
    return MessageItem(
        id=row.id,
        role=row.role,
        content=row.content,
        urgency=UrgencyLevel(row.urgency) if row.urgency else None,
        symptoms=_loads_list(row.symptoms_json),
        suggestions=_loads_list(row.suggestions_json),
        created_at=row.created_at,
    )


def _summary(chat_session: ChatSession) -> SessionSummary:
    return SessionSummary(
        primary_symptoms=_loads_list(chat_session.primary_symptoms_json),
        possible_conditions=_loads_list(chat_session.possible_conditions_json),
        recommended_actions=_loads_list(chat_session.recommended_actions_json),
        urgency_level=UrgencyLevel(chat_session.urgency_level),
        last_analysis_at=chat_session.last_analysis_at,
    )


def _preview(content: Optional[str]) -> Optional[str]:
    if content is None:
        return None
    if len(content) <= PREVIEW_LENGTH:
        return content
    return f"{content[:PREVIEW_LENGTH]}..."


def _get_owned_session(db: Session, user_id: int, session_id: str) -> ChatSession:
    chat_session = (
        db.query(ChatSession)
        .filter(ChatSession.session_id == session_id, ChatSession.user_id == user_id)
        .first()
    )
    if not chat_session:
        raise HTTPException(status_code=404, detail="Chat session not found. Please start a new chat session")
    return chat_session


def _welcome_text(user: User) -> str:
    return (
        f"🙏 Namaste {user.name}! I'm MAC AI, your personal healthcare companion integrated with "
        "Ayushman Bharat services. I'm here to help with your health concerns, provide medical "
        "guidance, and assist with emergency situations. How can I help you today?"
    )


@router.post("/start", response_model=StartSessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StartSessionResponse:
    now = _utc_now()
    chat_session = ChatSession(
        session_id=_new_session_id(user.id),
        user_id=user.id,
        status=SessionStatus.active.value,
        message_count=1,
        started_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(chat_session)
    db.flush()
    welcome = ChatMessage(
        session_pk=chat_session.id,
        role="assistant",
        content=_welcome_text(user),
        created_at=now,
    )
    db.add(welcome)
    user.total_sessions = (user.total_sessions or 0) + 1
    user.last_active_at = now
    db.commit()
    db.refresh(welcome)
    logger.info("chat_session_started user_id=%s session_id=%s", user.id, chat_session.session_id)

    return StartSessionResponse(
        session_id=chat_session.session_id,
        message="Chat session started successfully",
        initial_message=_message_item(welcome),
        features=SESSION_FEATURES,
    )


@router.post("/message", response_model=MessageResponse)
def send_message(
    payload: MessageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rules: RuleTable = Depends(get_rule_table),
) -> MessageResponse:
    chat_session = _get_owned_session(db, user.id, payload.session_id)

    result = classify(payload.message, rules)
    bundle = respond(result)
    symptoms = list(result.detected_symptoms)
    suggestions = list(bundle.suggestions)

    now = _utc_now()
    user_msg = ChatMessage(
        session_pk=chat_session.id,
        role="user",
        content=payload.message,
        created_at=now,
    )
    assistant_msg = ChatMessage(
        session_pk=chat_session.id,
        role="assistant",
        content=bundle.content,
        urgency=bundle.urgency.value,
        symptoms_json=json.dumps(symptoms),
        suggestions_json=json.dumps(suggestions),
        created_at=now,
    )
    db.add(user_msg)
    db.add(assistant_msg)

    chat_session.primary_symptoms_json = json.dumps(symptoms)
    chat_session.possible_conditions_json = json.dumps(list(result.conditions))
    chat_session.recommended_actions_json = json.dumps(suggestions)
    chat_session.urgency_level = bundle.urgency.value
    chat_session.last_analysis_at = now
    chat_session.message_count = (chat_session.message_count or 0) + 2
    chat_session.updated_at = now
    user.total_messages = (user.total_messages or 0) + 1
    user.last_active_at = now

    alert: Optional[EmergencyAlert] = None
    contact: Optional[dict] = None
    if bundle.requires_emergency_alert:
        chat_session.status = SessionStatus.escalated.value
        contact = primary_contact(load_contacts(user.emergency_contacts_json))
        alert = EmergencyAlert(
            alert_id=new_alert_id(),
            user_id=user.id,
            session_id=chat_session.session_id,
            alert_type="critical_symptoms",
            severity=UrgencyLevel.critical.value,
            symptoms_json=json.dumps(symptoms),
            user_message=payload.message,
            contacts_notified_json=json.dumps([contact] if contact else []),
            status="active",
            alert_at=now,
            created_at=now,
        )
        db.add(alert)
        user.emergency_alert_count = (user.emergency_alert_count or 0) + 1

    db.commit()
    db.refresh(chat_session)

    if alert is not None:
        logger.warning(
            "emergency_alert_created user_id=%s session_id=%s alert_id=%s symptoms=%s triggers=%s contact=%s",
            user.id,
            chat_session.session_id,
            alert.alert_id,
            ",".join(symptoms),
            ",".join(result.emergency_triggers),
            contact is not None,
        )
    logger.info(
        "chat_message_processed user_id=%s session_id=%s urgency=%s symptoms=%s",
        user.id,
        chat_session.session_id,
        result.urgency.value,
        len(symptoms),
    )

    return MessageResponse(
        message="Message processed successfully",
        response=AssistantReply(
            content=bundle.content,
            urgency=bundle.urgency,
            suggestions=suggestions,
            auto_actions=list(bundle.auto_actions),
            timestamp=now,
            metadata=ReplyMetadata(
                symptoms=symptoms,
                intent=ANALYSIS_INTENT,
                confidence=ANALYSIS_CONFIDENCE,
                suggestions=suggestions,
                urgency=bundle.urgency,
                analysis_type=ANALYSIS_TYPE,
            ),
        ),
        session_status=SessionStatus(chat_session.status),
        session_summary=_summary(chat_session),
        analysis=AnalysisCounts(
            symptoms_detected=len(symptoms),
            urgency_level=result.urgency,
            conditions_identified=len(result.conditions),
        ),
        emergency_alert_id=alert.alert_id if alert is not None else None,
        emergency_contact=EmergencyContact(**contact) if contact else None,
    )


@router.get("/history", response_model=HistoryResponse)
def get_history(
    limit: int = Query(default=10, ge=1, le=50),
    page: int = Query(default=1, ge=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HistoryResponse:
    base = db.query(ChatSession).filter(ChatSession.user_id == user.id)
    total = base.count()
    rows = (
        base.order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    status_counts = dict(
        db.query(ChatSession.status, func.count(ChatSession.id))
        .filter(ChatSession.user_id == user.id)
        .group_by(ChatSession.status)
        .all()
    )

    sessions = [
        SessionItem(
            session_id=row.session_id,
            status=SessionStatus(row.status),
            summary=_summary(row),
            message_count=row.message_count,
            created_at=row.created_at,
            updated_at=row.updated_at,
            last_message=_preview(row.messages[-1].content if row.messages else None),
        )
        for row in rows
    ]
    return HistoryResponse(
        sessions=sessions,
        pagination=Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_sessions=total,
            has_next=page * limit < total,
            has_prev=page > 1,
        ),
        statistics=SessionStatistics(
            total=total,
            active=int(status_counts.get(SessionStatus.active.value, 0)),
            completed=int(status_counts.get(SessionStatus.completed.value, 0)),
            escalated=int(status_counts.get(SessionStatus.escalated.value, 0)),
        ),
    )


@router.get("/sessions/{session_id}/messages", response_model=TranscriptResponse)
def get_session_messages(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TranscriptResponse:
    chat_session = _get_owned_session(db, user.id, session_id)
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.session_pk == chat_session.id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )
    return TranscriptResponse(
        session_id=chat_session.session_id,
        status=SessionStatus(chat_session.status),
        summary=_summary(chat_session),
        messages=[_message_item(row) for row in rows],
    )


@router.post("/sessions/{session_id}/end", response_model=EndSessionResponse)
def end_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> EndSessionResponse:
    chat_session = _get_owned_session(db, user.id, session_id)
    if chat_session.status != SessionStatus.active.value:
        raise HTTPException(status_code=409, detail=f"Chat session is {chat_session.status}")

    now = _utc_now()
    chat_session.status = SessionStatus.completed.value
    chat_session.ended_at = now
    chat_session.updated_at = now
    db.commit()
    logger.info("chat_session_ended user_id=%s session_id=%s", user.id, chat_session.session_id)
    return EndSessionResponse(
        session_id=chat_session.session_id,
        status=SessionStatus.completed,
        ended_at=now,
    )
