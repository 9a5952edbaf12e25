import json
import logging
from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from macai.api.auth import get_current_user
from macai.core.resources import (
    AYUSHMAN_BHARAT_BENEFITS,
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    SAMPLE_FACILITIES,
)
from macai.db.models import HealthFacility, User
from macai.db.session import get_db

router = APIRouter(prefix="/api/facilities", tags=["facilities"])
logger = logging.getLogger("uvicorn.error")

MAX_FACILITIES = 10


class FacilityType(str, Enum):
    hospital = "hospital"
    clinic = "clinic"
    phc = "phc"
    chc = "chc"
    emergency = "emergency"
    specialty_clinic = "specialty_clinic"
    diagnostic_center = "diagnostic_center"
    pharmacy = "pharmacy"


class Coordinates(BaseModel):
    lat: float
    lng: float


class FacilityLocation(BaseModel):
    address: Optional[str] = None
    city: str
    state: str
    pincode: Optional[str] = None
    coordinates: Coordinates


class FacilityContact(BaseModel):
    phone: str
    emergency: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class FacilityAvailability(BaseModel):
    emergency_24x7: bool
    regular_hours: Optional[str] = None


class FacilityRatings(BaseModel):
    average: float
    count: int


class FacilityItem(BaseModel):
    name: str
    type: FacilityType
    location: FacilityLocation
    contact: FacilityContact
    services: list[str] = Field(default_factory=list)
    ayushman_empanelled: bool
    availability: FacilityAvailability
    ratings: FacilityRatings
    distance: Optional[str] = None
    estimated_time: Optional[str] = None


class SearchCriteria(BaseModel):
    location: Optional[Coordinates] = None
    radius_km: float
    type: Optional[FacilityType] = None
    ayushman_only: bool


class AyushmanBharatInfo(BaseModel):
    total_empanelled: int
    benefits_available: list[str]


class FacilitySearchResponse(BaseModel):
    success: bool = True
    message: str
    source: str
    count: int
    facilities: list[FacilityItem]
    search_criteria: SearchCriteria
    ayushman_bharat_info: AyushmanBharatInfo


def _sample_item(raw: dict[str, Any], lat: float, lng: float) -> FacilityItem:
    d_lat, d_lng = raw["offset"]
    return FacilityItem(
        name=raw["name"],
        type=FacilityType(raw["type"]),
        location=FacilityLocation(
            address=raw["address"],
            city=raw["city"],
            state=raw["state"],
            pincode=raw["pincode"],
            coordinates=Coordinates(lat=round(lat + d_lat, 6), lng=round(lng + d_lng, 6)),
        ),
        contact=FacilityContact(
            phone=raw["phone"],
            emergency=raw["emergency_phone"],
            email=raw["email"],
            website=raw["website"],
        ),
        services=list(raw["services"]),
        ayushman_empanelled=raw["ayushman_empanelled"],
        availability=FacilityAvailability(
            emergency_24x7=raw["emergency_24x7"], regular_hours=raw["regular_hours"]
        ),
        ratings=FacilityRatings(average=raw["rating_average"], count=raw["rating_count"]),
        distance=raw["distance"],
        estimated_time=raw["estimated_time"],
    )


def _stored_item(row: HealthFacility) -> FacilityItem:
    try:
        services = json.loads(row.services_json or "[]")
    except ValueError:
        services = []
    return FacilityItem(
        name=row.name,
        type=FacilityType(row.facility_type),
        location=FacilityLocation(
            address=row.address,
            city=row.city,
            state=row.state,
            pincode=row.pincode,
            coordinates=Coordinates(lat=row.latitude, lng=row.longitude),
        ),
        contact=FacilityContact(
            phone=row.primary_phone,
            emergency=row.emergency_phone,
            email=row.email,
            website=row.website,
        ),
        services=[str(item) for item in services],
        ayushman_empanelled=row.ayushman_empanelled,
        availability=FacilityAvailability(
            emergency_24x7=row.emergency_24x7, regular_hours=row.regular_hours
        ),
        ratings=FacilityRatings(average=row.rating_average, count=row.rating_count),
    )


def sample_facilities(
    lat: Optional[float],
    lng: Optional[float],
    facility_type: Optional[FacilityType] = None,
    ayushman_only: bool = False,
) -> list[FacilityItem]:
    center_lat = lat if lat is not None else DEFAULT_LATITUDE
    center_lng = lng if lng is not None else DEFAULT_LONGITUDE
    items = [_sample_item(raw, center_lat, center_lng) for raw in SAMPLE_FACILITIES]
    if facility_type:
        items = [item for item in items if item.type == facility_type]
    if ayushman_only:
        items = [item for item in items if item.ayushman_empanelled]
    return items


@router.get("/nearby", response_model=FacilitySearchResponse)
def find_nearby_facilities(
    lat: Optional[float] = Query(default=None, ge=-90, le=90),
    lng: Optional[float] = Query(default=None, ge=-180, le=180),
    radius: float = Query(default=10, gt=0, le=200),
    facility_type: Optional[FacilityType] = Query(default=None, alias="type"),
    ayushman_only: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FacilitySearchResponse:
    # Samples stand in only for an empty registry.
    if db.query(HealthFacility.id).first() is None:
        facilities = sample_facilities(lat, lng, facility_type, ayushman_only)
        source = "sample"
    else:
        query = db.query(HealthFacility).filter(HealthFacility.status == "active")
        if facility_type:
            query = query.filter(HealthFacility.facility_type == facility_type.value)
        if ayushman_only:
            query = query.filter(HealthFacility.ayushman_empanelled.is_(True))
        rows = query.order_by(HealthFacility.id.asc()).limit(MAX_FACILITIES).all()
        facilities = [_stored_item(row) for row in rows]
        source = "registry"

    logger.info(
        "facility_search user_id=%s source=%s count=%s", user.id, source, len(facilities)
    )
    location = Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None
    return FacilitySearchResponse(
        message="Healthcare facilities found",
        source=source,
        count=len(facilities),
        facilities=facilities,
        search_criteria=SearchCriteria(
            location=location,
            radius_km=radius,
            type=facility_type,
            ayushman_only=ayushman_only,
        ),
        ayushman_bharat_info=AyushmanBharatInfo(
            total_empanelled=sum(1 for item in facilities if item.ayushman_empanelled),
            benefits_available=AYUSHMAN_BHARAT_BENEFITS,
        ),
    )
