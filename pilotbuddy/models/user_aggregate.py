from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from pilotbuddy.database import Base


class UserAggregate(Base):
    __tablename__ = "user_aggregates"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_rating: Mapped[Decimal] = mapped_column(Numeric(3, 1), nullable=False, default=Decimal("0.0"))
    last_rated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Optimistic concurrency: a stale UPDATE raises StaleDataError.
    __mapper_args__ = {"version_id_col": version}
