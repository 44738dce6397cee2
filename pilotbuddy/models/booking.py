import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, Boolean, DateTime, JSON, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from pilotbuddy.database import Base


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Nulled when the retention policy prunes the trip; the booking stays as history.
    trip_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("trips.id", ondelete="SET NULL"), nullable=True, index=True
    )

    pilot_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    pilot_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pilot_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pilot_phone: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    buddy_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    buddy_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    buddy_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    buddy_phone: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    source: Mapped[str] = mapped_column(String(512), nullable=False)
    destination: Mapped[str] = mapped_column(String(512), nullable=False)
    fare: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    flexible_pickup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pickup_point: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # mirrors Trip.status
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
