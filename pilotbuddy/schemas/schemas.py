from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TripStatusEnum(str, Enum):
    available = "available"
    pending = "pending"
    accepted = "accepted"
    started = "started"
    finished = "finished"
    cancelled = "cancelled"


class SearchModeEnum(str, Enum):
    exact = "exact"
    flexible = "flexible"


class PaymentStatusEnum(str, Enum):
    pending = "pending"
    completed = "completed"


# ---------------------------------------------------------------------------
# Pickup points
# ---------------------------------------------------------------------------

class PickupPoint(BaseModel):
    id: str
    name: str
    type: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    distance_m: float = Field(..., ge=0)


class PickupPreviewRequest(BaseModel):
    source: str = Field(..., min_length=1, max_length=512)
    destination: str = Field(..., min_length=1, max_length=512)
    source_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    source_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    dest_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    dest_lng: Optional[float] = Field(default=None, ge=-180, le=180)


class RouteStep(BaseModel):
    instruction: str
    distance_m: float
    duration_s: float


class PickupPreviewResponse(BaseModel):
    route_available: bool
    distance_km: Optional[float] = None
    duration_text: Optional[str] = None
    points: list[PickupPoint] = []
    steps: list[RouteStep] = []


# ---------------------------------------------------------------------------
# Trip schemas
# ---------------------------------------------------------------------------

class TripCreateRequest(PickupPreviewRequest):
    start_time: datetime
    # Used only when no route can be computed.
    distance_km: Optional[float] = Field(default=None, gt=0)
    # None exposes every sampled point; start and end are always exposed.
    pickup_point_ids: Optional[list[str]] = None


class TripResponse(BaseModel):
    id: str
    pilot_id: str
    pilot_name: str
    pilot_phone: str
    source: str
    destination: str
    source_lat: Optional[float] = None
    source_lng: Optional[float] = None
    dest_lat: Optional[float] = None
    dest_lng: Optional[float] = None
    start_time: datetime
    route: list[PickupPoint]
    pickup_candidates: list[PickupPoint]
    distance_km: Decimal
    base_fare: Decimal
    rate_per_km: Decimal
    fixed_surcharge: Decimal
    status: TripStatusEnum
    buddy_id: Optional[str] = None
    buddy_name: Optional[str] = None
    buddy_phone: Optional[str] = None
    buddy_pickup: Optional[PickupPoint] = None
    adjusted_fare: Optional[Decimal] = None
    payment_initiated: bool
    payment_status: PaymentStatusEnum
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TripStatusResponse(BaseModel):
    trip_id: str
    status: TripStatusEnum
    payment_status: PaymentStatusEnum


class TripEventResponse(BaseModel):
    id: str
    kind: str
    payload: dict


# ---------------------------------------------------------------------------
# Search / booking schemas
# ---------------------------------------------------------------------------

class SearchRequest(BaseModel):
    mode: SearchModeEnum = SearchModeEnum.exact
    destination: str = Field(..., min_length=1, max_length=512)
    desired_time: datetime
    source: Optional[str] = Field(default=None, max_length=512)
    pickup_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_km: float = Field(default=2.0, ge=1, le=5)


class TripMatchResponse(BaseModel):
    trip: TripResponse
    average_rating: float
    rating_count: int
    adjusted_fare: Optional[Decimal] = None
    savings: Optional[Decimal] = None
    pickup_distance_km: Optional[float] = None


class SearchResponse(BaseModel):
    results: list[TripMatchResponse]
    message: Optional[str] = None


class BookingRequest(BaseModel):
    trip_id: str
    pickup_point: Optional[PickupPoint] = None


class BookingResponse(BaseModel):
    id: str
    trip_id: Optional[str] = None
    pilot_id: str
    pilot_name: str
    pilot_phone: str
    buddy_id: str
    source: str
    destination: str
    fare: Decimal
    flexible_pickup: bool
    pickup_point: Optional[PickupPoint] = None
    status: TripStatusEnum
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Rating schemas
# ---------------------------------------------------------------------------

class RatingRequest(BaseModel):
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class RatingResponse(BaseModel):
    id: str
    trip_id: str
    event_id: str
    rater_id: str
    rated_user_id: str
    score: int
    comment: Optional[str] = None
    trigger: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserRatingResponse(BaseModel):
    user_id: str
    total_ratings: int
    average_rating: float
    last_rated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Analytics schemas
# ---------------------------------------------------------------------------

class AnalyticsRoleEnum(str, Enum):
    pilot = "pilot"
    buddy = "buddy"


class DailyTrips(BaseModel):
    day: date
    trips: int


class DailyEarnings(BaseModel):
    day: date
    earnings: Decimal


class RatingBucket(BaseModel):
    stars: int
    count: int


class SourceCount(BaseModel):
    source: str
    trips: int


class TimeSlotCount(BaseModel):
    slot: str
    trips: int


class AnalyticsResponse(BaseModel):
    user_id: str
    role: AnalyticsRoleEnum
    days: int
    daily_trips: list[DailyTrips]
    daily_earnings: list[DailyEarnings]
    rating_distribution: list[RatingBucket]
    top_sources: list[SourceCount]
    time_of_day: list[TimeSlotCount]
    total_trips: int
    total_earnings: Decimal
    average_rating: float
    total_ratings: int

    model_config = {"from_attributes": True}
