"""Initial schema: users, vehicles, trips, bookings, seat ledgers, reviews.

Revision ID: 001
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_BOOKING = sa.text("status IN ('pending', 'accepted')")


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="passenger"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("plate", sa.String(20), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="4"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("capacity > 0", name="ck_vehicles_capacity_positive"),
    )
    op.create_index("idx_vehicles_owner", "vehicles", ["owner_id"])

    # ── trip_offers ───────────────────────────────────────────────────
    op.create_table(
        "trip_offers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=False
        ),
        sa.Column("origin_text", sa.String(255), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("destination_text", sa.String(255), nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("departure_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "estimated_arrival_at", sa.DateTime(timezone=True), nullable=False
        ),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column(
            "status", sa.String(32), nullable=False, server_default="published"
        ),
        sa.Column("notes", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("total_seats > 0", name="ck_trip_offers_seats_positive"),
    )
    op.create_index(
        "idx_trip_offers_driver", "trip_offers", ["driver_id", "status"]
    )
    op.create_index(
        "idx_trip_offers_status_arrival",
        "trip_offers",
        ["status", "estimated_arrival_at"],
    )

    # ── booking_requests ──────────────────────────────────────────────
    op.create_table(
        "booking_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "trip_id", sa.Integer, sa.ForeignKey("trip_offers.id"), nullable=False
        ),
        sa.Column(
            "passenger_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "status", sa.String(32), nullable=False, server_default="pending"
        ),
        sa.Column("seats", sa.Integer, nullable=False, server_default="1"),
        sa.Column("note", sa.String(300), nullable=False, server_default=""),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_by", sa.Integer, nullable=True),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("declined_by", sa.Integer, nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "refund_needed", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("seats >= 1", name="ck_booking_requests_seats_positive"),
    )
    op.create_index(
        "idx_booking_requests_trip", "booking_requests", ["trip_id", "status"]
    )
    op.create_index(
        "idx_booking_requests_passenger",
        "booking_requests",
        ["passenger_id", "status"],
    )
    op.create_index(
        "idx_booking_requests_status_created",
        "booking_requests",
        ["status", "created_at"],
    )
    op.create_index(
        "uq_booking_requests_active",
        "booking_requests",
        ["passenger_id", "trip_id"],
        unique=True,
        postgresql_where=ACTIVE_BOOKING,
    )

    # ── seat_ledgers ──────────────────────────────────────────────────
    op.create_table(
        "seat_ledgers",
        sa.Column(
            "trip_id",
            sa.Integer,
            sa.ForeignKey("trip_offers.id"),
            primary_key=True,
        ),
        sa.Column(
            "allocated_seats", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "allocated_seats >= 0", name="ck_seat_ledgers_non_negative"
        ),
    )

    # ── reviews ───────────────────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "trip_id", sa.Integer, sa.ForeignKey("trip_offers.id"), nullable=False
        ),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "passenger_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("text", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "status", sa.String(32), nullable=False, server_default="visible"
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        sa.UniqueConstraint(
            "trip_id", "passenger_id", name="uq_reviews_trip_passenger"
        ),
    )
    op.create_index(
        "idx_reviews_driver_status", "reviews", ["driver_id", "status"]
    )

    # ── rating_aggregates ─────────────────────────────────────────────
    op.create_table(
        "rating_aggregates",
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column("avg_rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("histogram", sa.JSON, nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("rating_aggregates")
    op.drop_table("reviews")
    op.drop_table("seat_ledgers")
    op.drop_table("booking_requests")
    op.drop_table("trip_offers")
    op.drop_table("vehicles")
    op.drop_table("users")
