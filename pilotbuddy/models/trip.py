import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Float, Numeric, Boolean, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column
from pilotbuddy.database import Base


class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    pilot_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    pilot_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pilot_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pilot_phone: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    # trim + lowercase
    source: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    destination: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    source_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    source_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    dest_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    dest_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # [{id, name, type, lat, lng, distance_m}], ordered by distance_m
    route: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # subset of route shown to buddies; not used for proximity
    pickup_candidates: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    distance_km: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    base_fare: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rate_per_km: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    fixed_surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # available | pending | accepted | started | finished | cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available", index=True)

    buddy_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    buddy_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    buddy_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    buddy_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    buddy_pickup: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    adjusted_fare: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    payment_initiated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # pending | completed
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
