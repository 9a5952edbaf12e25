from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from macai.core.resources import (
    EMERGENCY_NUMBERS,
    HEALTHLINE_NUMBERS,
    SERVICE_FEATURES,
    tips_for_category,
)

API_VERSION = "1.0.0"

router = APIRouter(prefix="/api/health", tags=["health"])


class HealthStatusResponse(BaseModel):
    status: str
    message: str
    version: str
    timestamp: datetime
    features: list[str]


class AdditionalResources(BaseModel):
    emergency_numbers: dict[str, str]
    healthline_numbers: dict[str, str]


class HealthTipsResponse(BaseModel):
    success: bool = True
    category: str
    tips: list[str]
    additional_resources: AdditionalResources


@router.get("", response_model=HealthStatusResponse)
def health_status() -> HealthStatusResponse:
    return HealthStatusResponse(
        status="healthy",
        message="MAC AI Healthcare API is running successfully",
        version=API_VERSION,
        timestamp=datetime.now(timezone.utc),
        features=SERVICE_FEATURES,
    )


@router.get("/tips", response_model=HealthTipsResponse)
def health_tips(category: Optional[str] = None) -> HealthTipsResponse:
    resolved, tips = tips_for_category(category)
    return HealthTipsResponse(
        category=resolved,
        tips=tips,
        additional_resources=AdditionalResources(
            emergency_numbers=EMERGENCY_NUMBERS,
            healthline_numbers=HEALTHLINE_NUMBERS,
        ),
    )
