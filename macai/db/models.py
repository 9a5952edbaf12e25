from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC in SQLite and hands back timezone-aware UTC values."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    aadhaar_digest: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    aadhaar_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    ayushman_bharat_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    preferred_language: Mapped[str] = mapped_column(String(32), nullable=False, default="english")
    account_status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    # [{"name", "relation", "phone", "is_primary"}]
    emergency_contacts_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_alert_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    registered_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False, index=True)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    chat_sessions: Mapped[list["ChatSession"]] = relationship(
        "ChatSession", back_populates="user", cascade="all, delete-orphan"
    )
    emergency_alerts: Mapped[list["EmergencyAlert"]] = relationship(
        "EmergencyAlert", back_populates="user", cascade="all, delete-orphan"
    )


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chat_sessions_user_updated", "user_id", "updated_at"),
        Index("ix_chat_sessions_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    session_id: Mapped[str] = mapped_column(String(96), unique=True, index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    session_type: Mapped[str] = mapped_column(String(32), nullable=False, default="general_consultation")

    primary_symptoms_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    possible_conditions_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    recommended_actions_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    urgency_level: Mapped[str] = mapped_column(String(16), nullable=False, default="low", index=True)
    last_analysis_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    user: Mapped[User] = relationship("User", back_populates="chat_sessions")
    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_session_created", "session_pk", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    session_pk: Mapped[int] = mapped_column(ForeignKey("chat_sessions.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    urgency: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    symptoms_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suggestions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    session: Mapped[ChatSession] = relationship("ChatSession", back_populates="messages")


class HealthFacility(Base):
    __tablename__ = "health_facilities"
    __table_args__ = (
        Index("ix_health_facilities_type", "facility_type"),
        Index("ix_health_facilities_city", "city"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    facility_type: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(120), nullable=False)
    pincode: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    primary_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    emergency_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    services_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    ayushman_empanelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    emergency_24x7: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    regular_hours: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)


class EmergencyAlert(Base):
    __tablename__ = "emergency_alerts"
    __table_args__ = (
        Index("ix_emergency_alerts_user_time", "user_id", "alert_at"),
        Index("ix_emergency_alerts_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    alert_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(96), nullable=True, index=True)
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="high")
    symptoms_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    user_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_emergency_services: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    contacts_notified_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    alert_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="emergency_alerts")
