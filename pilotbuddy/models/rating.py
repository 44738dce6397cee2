import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from pilotbuddy.database import Base


class Rating(Base):
    __tablename__ = "ratings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # One rating per trigger event.
    event_id: Mapped[str] = mapped_column(
        String, ForeignKey("trip_events.id"), unique=True, nullable=False
    )
    rater_id: Mapped[str] = mapped_column(String, nullable=False)
    rater_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    rated_user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    # trip_completed | payment_completed
    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
