import uuid
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from pilotbuddy.database import Base


class TripEvent(Base):
    __tablename__ = "trip_events"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # trip_completed | payment_completed
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    rater_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    rater_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    rated_user_id: Mapped[str] = mapped_column(String, nullable=False)

    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rating_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
