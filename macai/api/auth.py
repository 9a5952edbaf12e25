import json
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from macai.core.alerts import load_contacts
from macai.core.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    aadhaar_digest,
    create_access_token,
    decode_access_token,
    decrypt_identifier,
    encrypt_identifier,
    mask_aadhaar,
)
from macai.db.models import User
from macai.db.session import get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
logger = logging.getLogger("uvicorn.error")

AADHAAR_PATTERN = r"^\d{12}$"
PHONE_PATTERN = r"^[6-9]\d{9}$"
MAX_EMERGENCY_CONTACTS = 5


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"
    prefer_not_to_say = "prefer_not_to_say"


class ContactRelation(str, Enum):
    spouse = "spouse"
    parent = "parent"
    child = "child"
    sibling = "sibling"
    friend = "friend"
    guardian = "guardian"
    other = "other"


class EmergencyContact(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    relation: ContactRelation
    phone: str = Field(pattern=PHONE_PATTERN)
    is_primary: bool = False


class RegisterRequest(BaseModel):
    aadhaar_id: str = Field(pattern=AADHAAR_PATTERN)
    phone: str = Field(pattern=PHONE_PATTERN)
    name: str = Field(min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[Gender] = None
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list, max_length=MAX_EMERGENCY_CONTACTS)

    @field_validator("emergency_contacts")
    @classmethod
    def single_primary_contact(cls, contacts: list[EmergencyContact]) -> list[EmergencyContact]:
        if sum(1 for contact in contacts if contact.is_primary) > 1:
            raise ValueError("Only one emergency contact can be primary")
        return contacts


class LoginRequest(BaseModel):
    aadhaar_id: str = Field(pattern=AADHAAR_PATTERN)
    phone: str = Field(pattern=PHONE_PATTERN)


class UserProfile(BaseModel):
    id: int
    name: str
    phone: str
    display_name: str
    ayushman_bharat_id: Optional[str] = None
    preferred_language: str
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)
    registered_at: datetime
    last_active_at: datetime


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    token_type: str = "bearer"
    user: UserProfile


def _bad_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _display_name(user: User) -> str:
    try:
        masked = mask_aadhaar(decrypt_identifier(user.aadhaar_encrypted))
    except ValueError:
        masked = "************"
    return f"{user.name} ({masked})"


def _profile(user: User) -> UserProfile:
    return UserProfile(
        id=user.id,
        name=user.name,
        phone=user.phone,
        display_name=_display_name(user),
        ayushman_bharat_id=user.ayushman_bharat_id,
        preferred_language=user.preferred_language,
        emergency_contacts=[EmergencyContact(**item) for item in load_contacts(user.emergency_contacts_json)],
        registered_at=user.registered_at,
        last_active_at=user.last_active_at,
    )


def _issue_token(user: User) -> str:
    return create_access_token(
        subject=str(user.id),
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        extra_claims={"name": user.name},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    try:
        subject = decode_access_token(token)
        user_id = int(subject)
    except Exception:
        raise _bad_credentials()

    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.account_status != "active":
        raise _bad_credentials()
    return user


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> AuthResponse:
    digest = aadhaar_digest(payload.aadhaar_id)
    existing = (
        db.query(User)
        .filter(or_(User.aadhaar_digest == digest, User.phone == payload.phone))
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=409,
            detail="An account with this Aadhaar ID or phone number already exists",
        )

    now = _utc_now()
    user = User(
        aadhaar_digest=digest,
        aadhaar_encrypted=encrypt_identifier(payload.aadhaar_id),
        phone=payload.phone,
        email=payload.email.lower() if payload.email else None,
        name=payload.name.strip(),
        age=payload.age,
        gender=payload.gender.value if payload.gender else None,
        emergency_contacts_json=json.dumps([contact.model_dump(mode="json") for contact in payload.emergency_contacts]),
        # Mock ABDM health ID until the real registry is wired in.
        ayushman_bharat_id=f"ABDM_{uuid4().hex[:16].upper()}",
        registered_at=now,
        last_active_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(
        "user_registered user_id=%s emergency_contacts=%s", user.id, len(payload.emergency_contacts)
    )

    return AuthResponse(
        message="User registered successfully with Ayushman Bharat integration",
        token=_issue_token(user),
        user=_profile(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> AuthResponse:
    user = (
        db.query(User)
        .filter(User.aadhaar_digest == aadhaar_digest(payload.aadhaar_id), User.phone == payload.phone)
        .first()
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Aadhaar ID or phone number",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user.last_active_at = _utc_now()
    db.commit()
    db.refresh(user)
    logger.info("user_logged_in user_id=%s", user.id)

    return AuthResponse(message="Login successful", token=_issue_token(user), user=_profile(user))
