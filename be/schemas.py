"""Pydantic models passed between the backfill steps."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.service_categories import SERVICE_CATEGORIES


class ProviderSnapshot(BaseModel):
    """Read-only copy of a provider row, detached from any session."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    email: str
    name: str
    user_type: str
    provider_status: str | None = None
    # Legacy JSON is stored as-is; a non-object value reads as empty
    onboarding_data: Any = None
    provider_profile: Any = None

    @property
    def profile(self) -> Mapping[str, Any]:
        return self.provider_profile if isinstance(self.provider_profile, Mapping) else {}

    @property
    def onboarding(self) -> Mapping[str, Any]:
        return self.onboarding_data if isinstance(self.onboarding_data, Mapping) else {}


class ServiceListingCreate(BaseModel):
    """Validated payload for a new provider_services row."""

    provider_id: int
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    category: str
    price: float = Field(ge=0)
    price_type: Literal["fixed", "hourly"] = "hourly"
    duration: int = Field(default=60, ge=15)
    images: list[str] = Field(default_factory=list)
    service_area: list[str] = Field(default_factory=list)
    available_hours_start: str = Field(default="08:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    available_hours_end: str = Field(default="18:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    total_bookings: int = 0
    total_revenue: float = 0
    rating: float = 0
    review_count: int = 0

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in SERVICE_CATEGORIES:
            raise ValueError(f"category {v!r} is not one of {SERVICE_CATEGORIES}")
        return v
