"""SQLAlchemy ORM Models for HeroTime."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import INTEGER, JSON, TEXT, TIMESTAMP, CheckConstraint, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Generation lifecycle
GENERATION_STARTING = "starting"
GENERATION_PROCESSING = "processing"
GENERATION_SUCCEEDED = "succeeded"
GENERATION_FAILED = "failed"

IN_FLIGHT_STATUSES = (GENERATION_STARTING, GENERATION_PROCESSING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class User(Base):
    """Subscription and usage state for one auth-provider identity.

    Created lazily on first billing interaction or subscription sync; never
    hard-deleted by the API.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)  # auth provider user id
    email: Mapped[str] = mapped_column(TEXT, nullable=False)
    plan: Mapped[str] = mapped_column(TEXT, nullable=False, default="free")
    scheduled_plan: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    generations_used: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    generations_limit: Mapped[int] = mapped_column(INTEGER, nullable=False, default=2)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True, unique=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    subscription_status: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        CheckConstraint("generations_used >= 0", name="ck_users_generations_used_nonneg"),
        CheckConstraint("generations_limit > 0", name="ck_users_generations_limit_pos"),
    )


class Generation(Base):
    """One hero-image generation request and its result."""

    __tablename__ = "generations"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    user_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # users.id of the owner
    title: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    status: Mapped[str] = mapped_column(TEXT, nullable=False, default=GENERATION_STARTING)
    uploaded_image_url: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    selected_props: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    selected_template: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    prediction_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    file_size: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        Index("idx_generations_user_created", "user_id", "created_at"),
        Index("idx_generations_status_updated", "status", "updated_at"),
        CheckConstraint(
            "status IN ('starting', 'processing', 'succeeded', 'failed')",
            name="ck_generations_status",
        ),
        CheckConstraint(
            "status <> 'succeeded' OR image_url IS NOT NULL",
            name="ck_generations_succeeded_has_image",
        ),
    )
