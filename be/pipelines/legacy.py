"""Resolution of a provider's legacy service data into listing payloads.

Providers onboarded at different times keep their services in different
places. Exactly one shape is used per provider, in priority order:

1. ``onboarding_data.services``
2. ``provider_profile.services``
3. ``provider_profile.skills`` (one synthesized service per skill)
4. a single synthesized "General Services" entry
"""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from be.config import BackfillSettings
from be.schemas import ProviderSnapshot, ServiceListingCreate
from be.pipelines.normalization import (
    coerce_category,
    coerce_price_type,
    normalize_whitespace,
    parse_price,
    slugify,
    title_case_first,
)

logger = logging.getLogger(__name__)

DEFAULT_SKILL = "general"

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class LegacySource(str, Enum):
    """Where a provider's services were found."""
    ONBOARDING_SERVICES = "onboarding_services"
    PROFILE_SERVICES = "profile_services"
    PROFILE_SKILLS = "profile_skills"
    DEFAULT = "default"


class LegacyDataError(ValueError):
    """Raised when a single legacy service entry cannot be turned into a listing."""
    pass


@dataclass(frozen=True)
class LegacyServices:
    """Raw service entries of one provider, tagged with their origin."""
    source: LegacySource
    entries: list[Any] = field(default_factory=list)

    @property
    def synthesized(self) -> bool:
        return self.source in (LegacySource.PROFILE_SKILLS, LegacySource.DEFAULT)


def _non_empty_list(value: Any) -> list[Any] | None:
    return value if isinstance(value, list) and value else None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [normalize_whitespace(item) for item in value if isinstance(item, str) and item.strip()]


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _synthesize_entry(provider: ProviderSnapshot, skill: str, price: float) -> dict[str, Any]:
    skill = normalize_whitespace(skill)
    return {
        "title": f"{title_case_first(skill)} Services",
        "category": slugify(skill),
        "description": f"Professional {skill.lower()} services by {provider.name}",
        "price": price,
        "priceType": "hourly",
    }


def resolve_legacy_services(
    provider: ProviderSnapshot,
    backfill_settings: BackfillSettings,
) -> LegacyServices:
    """Pick the provider's legacy service entries by priority.

    Args:
        provider: Provider to inspect
        backfill_settings: Supplies the default price for synthesized entries

    Returns:
        LegacyServices with at least one entry
    """
    onboarding_services = _non_empty_list(provider.onboarding.get("services"))
    if onboarding_services:
        return LegacyServices(LegacySource.ONBOARDING_SERVICES, list(onboarding_services))

    profile = provider.profile
    profile_services = _non_empty_list(profile.get("services"))
    if profile_services:
        return LegacyServices(LegacySource.PROFILE_SERVICES, list(profile_services))

    price = parse_price(profile.get("hourlyRate")) or backfill_settings.default_price

    skills = _string_list(profile.get("skills"))
    if skills:
        return LegacyServices(
            LegacySource.PROFILE_SKILLS,
            [_synthesize_entry(provider, skill, price) for skill in skills],
        )

    logger.info(f"No legacy service data for provider {provider.email}, synthesizing a default listing")
    return LegacyServices(LegacySource.DEFAULT, [_synthesize_entry(provider, DEFAULT_SKILL, price)])


def _first_price(*values: Any) -> float | None:
    # Zero counts as missing, matching how legacy forms left the field blank
    for value in values:
        price = parse_price(value)
        if price:
            return price
    return None


def _hours(value: Any, default: str) -> str:
    if isinstance(value, str) and _HHMM.match(value.strip()):
        return value.strip()
    return default


def _duration(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 15:
        return value
    return default


def candidate_from_entry(
    provider: ProviderSnapshot,
    entry: Any,
    backfill_settings: BackfillSettings,
) -> ServiceListingCreate:
    """Build the listing payload for one legacy service entry.

    Raises:
        LegacyDataError: entry is not a mapping or has no title
        pydantic.ValidationError: derived values are out of range
    """
    if not isinstance(entry, Mapping):
        raise LegacyDataError(f"service entry is {type(entry).__name__}, expected an object")

    raw_title = entry.get("title")
    if not isinstance(raw_title, str) or not raw_title.strip():
        raise LegacyDataError("service entry has no title")

    profile = provider.profile
    pricing = _mapping(entry.get("pricing"))
    hours = _mapping(_mapping(profile.get("availability")).get("hours"))

    raw_category = entry.get("category")
    has_raw_category = isinstance(raw_category, str) and bool(raw_category.strip())
    category = coerce_category(raw_category, backfill_settings.fallback_category)
    category_label = normalize_whitespace(raw_category) if has_raw_category else category

    description = entry.get("description")
    if not isinstance(description, str) or not description.strip():
        description = f"Professional {category_label} service by {provider.name}"

    price = _first_price(entry.get("price"), pricing.get("basePrice"), profile.get("hourlyRate"))
    if price is None:
        price = backfill_settings.default_price

    tags: list[str] = []
    for tag in [slugify(raw_category) if has_raw_category else category, *backfill_settings.default_tags]:
        if tag not in tags:
            tags.append(tag)

    return ServiceListingCreate(
        provider_id=provider.id,
        title=normalize_whitespace(raw_title),
        description=description.strip(),
        category=category,
        price=price,
        price_type=coerce_price_type(entry.get("priceType") or pricing.get("priceType")),
        duration=_duration(entry.get("duration"), backfill_settings.default_duration_minutes),
        images=_string_list(entry.get("images")),
        service_area=(
            _string_list(entry.get("serviceAreas"))
            or _string_list(profile.get("serviceAreas"))
            or list(backfill_settings.default_service_areas)
        ),
        available_hours_start=_hours(hours.get("start"), backfill_settings.default_hours_start),
        available_hours_end=_hours(hours.get("end"), backfill_settings.default_hours_end),
        tags=tags,
    )
