"""Initial schema: trips, bookings, trip_events, ratings, user_aggregates"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "trips",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("pilot_id", sa.String, nullable=False),
        sa.Column("pilot_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("pilot_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("pilot_phone", sa.String(20), nullable=False, server_default=""),
        sa.Column("source", sa.String(512), nullable=False),
        sa.Column("destination", sa.String(512), nullable=False),
        sa.Column("source_lat", sa.Float, nullable=True),
        sa.Column("source_lng", sa.Float, nullable=True),
        sa.Column("dest_lat", sa.Float, nullable=True),
        sa.Column("dest_lng", sa.Float, nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("route", sa.JSON, nullable=False),
        sa.Column("pickup_candidates", sa.JSON, nullable=False),
        sa.Column("distance_km", sa.Numeric(10, 3), nullable=False),
        sa.Column("base_fare", sa.Numeric(10, 2), nullable=False),
        sa.Column("rate_per_km", sa.Numeric(6, 2), nullable=False),
        sa.Column("fixed_surcharge", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("buddy_id", sa.String, nullable=True),
        sa.Column("buddy_name", sa.String(255), nullable=True),
        sa.Column("buddy_email", sa.String(255), nullable=True),
        sa.Column("buddy_phone", sa.String(20), nullable=True),
        sa.Column("buddy_pickup", sa.JSON, nullable=True),
        sa.Column("adjusted_fare", sa.Numeric(10, 2), nullable=True),
        sa.Column("payment_initiated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_trips_pilot", "trips", ["pilot_id"])
    op.create_index("idx_trips_buddy", "trips", ["buddy_id"])
    op.create_index("idx_trips_source", "trips", ["source"])
    op.create_index("idx_trips_destination", "trips", ["destination"])
    op.create_index("idx_trips_start_time", "trips", ["start_time"])
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_status_start", "trips", ["status", "start_time"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("trip_id", sa.String, sa.ForeignKey("trips.id", ondelete="SET NULL"), nullable=True),
        sa.Column("pilot_id", sa.String, nullable=False),
        sa.Column("pilot_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("pilot_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("pilot_phone", sa.String(20), nullable=False, server_default=""),
        sa.Column("buddy_id", sa.String, nullable=False),
        sa.Column("buddy_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("buddy_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("buddy_phone", sa.String(20), nullable=False, server_default=""),
        sa.Column("source", sa.String(512), nullable=False),
        sa.Column("destination", sa.String(512), nullable=False),
        sa.Column("fare", sa.Numeric(10, 2), nullable=False),
        sa.Column("flexible_pickup", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("pickup_point", sa.JSON, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_bookings_trip", "bookings", ["trip_id"])
    op.create_index("idx_bookings_pilot", "bookings", ["pilot_id"])
    op.create_index("idx_bookings_buddy", "bookings", ["buddy_id"])
    op.create_index("idx_bookings_status", "bookings", ["status"])

    op.create_table(
        "trip_events",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("trip_id", sa.String, nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("rater_id", sa.String, nullable=False),
        sa.Column("rater_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("rated_user_id", sa.String, nullable=False),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating_id", sa.String, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_trip_events_trip", "trip_events", ["trip_id"])
    op.create_index("idx_trip_events_rater", "trip_events", ["rater_id"])
    op.create_index("idx_trip_events_processed", "trip_events", ["processed"])

    op.create_table(
        "ratings",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("trip_id", sa.String, nullable=False),
        sa.Column("event_id", sa.String, sa.ForeignKey("trip_events.id"), unique=True, nullable=False),
        sa.Column("rater_id", sa.String, nullable=False),
        sa.Column("rater_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("rated_user_id", sa.String, nullable=False),
        sa.Column("score", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("trigger", sa.String(30), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("score BETWEEN 1 AND 5", name="ck_ratings_score_range"),
    )
    op.create_index("idx_ratings_trip", "ratings", ["trip_id"])
    op.create_index("idx_ratings_rated_user", "ratings", ["rated_user_id"])

    op.create_table(
        "user_aggregates",
        sa.Column("user_id", sa.String, primary_key=True),
        sa.Column("total_ratings", sa.Integer, nullable=False, server_default="0"),
        sa.Column("average_rating", sa.Numeric(3, 1), nullable=False, server_default="0.0"),
        sa.Column("last_rated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("user_aggregates")
    op.drop_table("ratings")
    op.drop_table("trip_events")
    op.drop_table("bookings")
    op.drop_table("trips")
