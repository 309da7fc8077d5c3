"""Core SQLAlchemy models (2.x style) for users and the service catalog.

Legacy provider sub-documents (onboarding data, provider profile) are kept
as JSON so every historical shape can still be read back.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from config.service_categories import PRICE_TYPES, SERVICE_CATEGORIES

USER_TYPES = ("client", "provider", "admin")
PROVIDER_STATUSES = ("pending", "under_review", "approved", "rejected", "suspended")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """Marketplace accounts; providers carry their legacy service data here."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[str] = mapped_column(
        Enum(*USER_TYPES, name="user_type", native_enum=False, create_constraint=True, length=16),
        nullable=False,
        default="client",
    )
    provider_status: Mapped[str | None] = mapped_column(
        Enum(*PROVIDER_STATUSES, name="provider_status", native_enum=False, create_constraint=True, length=16),
    )
    onboarding_data: Mapped[dict | None] = mapped_column(JSON)
    provider_profile: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    services: Mapped[list[ProviderService]] = relationship("ProviderService", back_populates="provider")

    __table_args__ = (
        Index("ix_users_type_status", "user_type", "provider_status"),
    )


class ProviderService(Base):
    """Bookable catalog entry owned by one provider."""
    __tablename__ = "provider_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(
        Enum(*SERVICE_CATEGORIES, name="service_category", native_enum=False, create_constraint=True, length=32),
        nullable=False,
        index=True,
    )
    price: Mapped[float] = mapped_column(Float, nullable=False)
    price_type: Mapped[str] = mapped_column(
        Enum(*PRICE_TYPES, name="price_type", native_enum=False, create_constraint=True, length=16),
        nullable=False,
        default="fixed",
    )
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    service_area: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    available_hours_start: Mapped[str] = mapped_column(String(5), nullable=False, default="08:00")
    available_hours_end: Mapped[str] = mapped_column(String(5), nullable=False, default="18:00")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Statistics (updated by bookings)
    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    rating: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    # Relationship
    provider: Mapped[User] = relationship("User", back_populates="services")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_provider_services_price_non_negative"),
        CheckConstraint("duration >= 15", name="ck_provider_services_min_duration"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_provider_services_rating_range"),
        # One listing per (provider, title, category)
        UniqueConstraint("provider_id", "title", "category", name="uq_provider_services_provider_title_category"),
    )
