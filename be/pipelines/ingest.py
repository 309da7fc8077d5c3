"""Catalog reads and writes used by the backfill.

Implementations here:
- Never update or delete an existing listing, only insert missing ones.
- Are reusable from the batch job and from one-off maintenance scripts.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..schemas import ProviderSnapshot, ServiceListingCreate


async def list_eligible_providers(session: AsyncSession) -> list[ProviderSnapshot]:
    """Approved providers, detached from the session."""

    result = await session.execute(
        select(models.User)
        .where(
            models.User.user_type == "provider",
            models.User.provider_status == "approved",
        )
        .order_by(models.User.id)
    )
    return [ProviderSnapshot.model_validate(user) for user in result.scalars()]


async def count_listings(session: AsyncSession, provider_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(models.ProviderService)
        .where(models.ProviderService.provider_id == provider_id)
    )
    return result.scalar_one()


async def find_listing(
    session: AsyncSession,
    *,
    provider_id: int,
    title: str,
    category: str,
) -> models.ProviderService | None:
    """Existing listing for the (provider, title, category) triple, if any."""

    result = await session.execute(
        select(models.ProviderService)
        .where(
            models.ProviderService.provider_id == provider_id,
            models.ProviderService.title == title,
            models.ProviderService.category == category,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_listing_if_absent(
    session: AsyncSession,
    payload: ServiceListingCreate,
) -> tuple[models.ProviderService, bool]:
    """Insert ``payload`` unless its (provider, title, category) already exists.

    The existence check uses the stored category, so a legacy category that
    was coerced to the fallback still matches on re-runs.

    Returns:
        The listing and whether it was created by this call
    """

    existing = await find_listing(
        session,
        provider_id=payload.provider_id,
        title=payload.title,
        category=payload.category,
    )
    if existing is not None:
        return existing, False

    listing = models.ProviderService(**payload.model_dump())
    session.add(listing)
    await session.flush()
    return listing, True


async def stamp_provider(session: AsyncSession, provider_id: int, *, when: datetime) -> bool:
    """Record on the provider that its services were reconciled.

    Returns:
        False when the provider is gone or its onboarding data is not an
        object; such rows are left untouched
    """

    user = await session.get(models.User, provider_id)
    if user is None:
        return False
    if user.onboarding_data is not None and not isinstance(user.onboarding_data, Mapping):
        return False
    # Reassign so the JSON column is marked dirty
    user.onboarding_data = {
        **(user.onboarding_data or {}),
        "servicesActivated": True,
        "migrationDate": when.isoformat(),
    }
    await session.flush()
    return True


async def count_active_listings(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(models.ProviderService)
        .where(models.ProviderService.is_active.is_(True))
    )
    return result.scalar_one()


async def sample_active_listings(session: AsyncSession, limit: int) -> list[tuple[models.ProviderService, str]]:
    """A few active listings with their provider's email, newest first."""

    result = await session.execute(
        select(models.ProviderService, models.User.email)
        .join(models.User, models.User.id == models.ProviderService.provider_id)
        .where(models.ProviderService.is_active.is_(True))
        .order_by(models.ProviderService.id.desc())
        .limit(limit)
    )
    return [(listing, email) for listing, email in result.all()]
