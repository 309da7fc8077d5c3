"""Provider service backfill.

Fills the service catalog from legacy provider data: every approved
provider without any listing gets listings derived from its onboarding
services, profile services or skills. Existing listings are never touched,
so the job can be re-run until every provider is covered.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from be.config import BackfillSettings
from be.schemas import ProviderSnapshot, ServiceListingCreate
from be.pipelines.ingest import (
    count_active_listings,
    count_listings,
    create_listing_if_absent,
    find_listing,
    list_eligible_providers,
    sample_active_listings,
    stamp_provider,
)
from be.pipelines.legacy import LegacyDataError, candidate_from_entry, resolve_legacy_services

logger = logging.getLogger(__name__)


class BackfillError(Exception):
    """Raised when the run cannot start: no database or the provider query failed."""
    pass


class CoverageStatus(str, Enum):
    """Whether a provider already has at least one catalog listing."""
    UNCOVERED = "uncovered"
    COVERED = "covered"


class EntryOutcome(str, Enum):
    """What happened to one legacy service entry."""
    CREATED = "created"
    EXISTING = "existing"
    FAILED = "failed"


@dataclass
class BackfillReport:
    """Counters for one run."""
    providers_found: int = 0
    providers_processed: int = 0
    providers_skipped: int = 0
    providers_failed: int = 0
    listings_created: int = 0
    listings_existing: int = 0
    candidate_failures: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _entry_label(entry: Any, index: int) -> str:
    if isinstance(entry, Mapping) and isinstance(entry.get("title"), str):
        return repr(entry["title"])
    return f"#{index}"


class ServiceBackfiller:
    """Creates missing catalog listings for approved providers.

    Providers are handled one at a time. Each listing is inserted in its own
    transaction, so a failing candidate never rolls back the others.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        backfill_settings: BackfillSettings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sessionmaker = sessionmaker
        self.settings = backfill_settings
        self._clock = clock

    async def run(self) -> BackfillReport:
        """Backfill every eligible provider and return the run's counters.

        Raises:
            BackfillError: if the eligible providers cannot be listed
        """
        report = BackfillReport(dry_run=self.settings.dry_run)
        mode = " (dry run)" if report.dry_run else ""
        logger.info(f"Starting service backfill for approved providers{mode}")

        try:
            async with self._sessionmaker() as session:
                providers = await list_eligible_providers(session)
        except Exception as e:
            logger.error(f"Could not list approved providers: {e}", exc_info=True)
            raise BackfillError(f"Provider query failed: {e}") from e

        report.providers_found = len(providers)
        logger.info(f"Found {len(providers)} approved providers")

        for provider in providers:
            try:
                await self._process_provider(provider, report)
            except Exception as e:
                report.providers_failed += 1
                logger.error(f"Error processing provider {provider.email}: {e}", exc_info=True)

        self._log_summary(report)
        await self._log_catalog_snapshot()
        return report

    async def coverage_status(self, provider: ProviderSnapshot) -> CoverageStatus:
        """Computed fresh on every run; nothing is cached between runs."""
        async with self._sessionmaker() as session:
            existing = await count_listings(session, provider.id)
        logger.info(f"   Existing services: {existing}")
        return CoverageStatus.COVERED if existing > 0 else CoverageStatus.UNCOVERED

    async def _process_provider(self, provider: ProviderSnapshot, report: BackfillReport) -> None:
        logger.info(f"Processing provider: {provider.email}")

        # Any listing counts as covered; partially migrated providers are not topped up
        if await self.coverage_status(provider) is CoverageStatus.COVERED:
            report.providers_skipped += 1
            logger.info(f"   Provider {provider.email} already has services, skipping")
            return

        legacy = resolve_legacy_services(provider, self.settings)
        logger.info(f"   Found {len(legacy.entries)} services ({legacy.source.value})")

        planned: set[tuple[str, str]] = set()
        created = 0
        for index, entry in enumerate(legacy.entries):
            outcome = await self._backfill_entry(provider, entry, index, planned)
            if outcome is EntryOutcome.CREATED:
                created += 1
                report.listings_created += 1
            elif outcome is EntryOutcome.EXISTING:
                report.listings_existing += 1
            else:
                report.candidate_failures += 1

        if self.settings.stamp_providers and not self.settings.dry_run:
            await self._stamp(provider)

        report.providers_processed += 1
        verb = "Would create" if self.settings.dry_run else "Created"
        logger.info(f"   {verb} {created} services for {provider.email}")

    async def _backfill_entry(
        self,
        provider: ProviderSnapshot,
        entry: Any,
        index: int,
        planned: set[tuple[str, str]],
    ) -> EntryOutcome:
        label = _entry_label(entry, index)
        try:
            payload = candidate_from_entry(provider, entry, self.settings)
        except (LegacyDataError, ValidationError) as e:
            logger.error(f"Error creating service {label} for provider {provider.email}: {e}")
            return EntryOutcome.FAILED

        if self.settings.dry_run:
            return await self._plan_entry(payload, planned)

        try:
            async with self._sessionmaker() as session, session.begin():
                listing, created = await create_listing_if_absent(session, payload)
        except SQLAlchemyError as e:
            logger.error(f"Error creating service {label} for provider {provider.email}: {e}", exc_info=True)
            return EntryOutcome.FAILED

        if not created:
            logger.info(f"   Service {payload.title!r} already exists for {provider.email}, skipping")
            return EntryOutcome.EXISTING

        logger.info(f"   Created service {listing.title!r} ({listing.category}) for {provider.email}")
        return EntryOutcome.CREATED

    async def _plan_entry(self, payload: ServiceListingCreate, planned: set[tuple[str, str]]) -> EntryOutcome:
        key = (payload.title, payload.category)
        if key in planned:
            return EntryOutcome.EXISTING

        async with self._sessionmaker() as session:
            existing = await find_listing(
                session,
                provider_id=payload.provider_id,
                title=payload.title,
                category=payload.category,
            )
        if existing is not None:
            return EntryOutcome.EXISTING

        planned.add(key)
        logger.info(f"   Would create service {payload.title!r} ({payload.category})")
        return EntryOutcome.CREATED

    async def _stamp(self, provider: ProviderSnapshot) -> None:
        try:
            async with self._sessionmaker() as session, session.begin():
                stamped = await stamp_provider(session, provider.id, when=self._clock())
        except SQLAlchemyError as e:
            logger.warning(f"Could not mark provider {provider.email} as migrated: {e}")
            return
        if not stamped:
            logger.warning(f"Onboarding data of {provider.email} is not an object, migration marker not written")

    def _log_summary(self, report: BackfillReport) -> None:
        logger.info("Backfill completed" + (" (dry run, nothing written)" if report.dry_run else ""))
        logger.info(f"Providers found: {report.providers_found}")
        logger.info(f"Providers processed: {report.providers_processed}")
        logger.info(f"Providers skipped (already had services): {report.providers_skipped}")
        logger.info(f"Providers failed: {report.providers_failed}")
        logger.info(f"Services created: {report.listings_created}")
        logger.info(f"Services already present: {report.listings_existing}")
        if report.candidate_failures:
            logger.error(f"Services that could not be created: {report.candidate_failures}")

    async def _log_catalog_snapshot(self) -> None:
        if self.settings.sample_size == 0:
            return
        try:
            async with self._sessionmaker() as session:
                active = await count_active_listings(session)
                sample = await sample_active_listings(session, self.settings.sample_size)
        except SQLAlchemyError as e:
            logger.warning(f"Could not read catalog snapshot: {e}")
            return

        logger.info(f"Total active services in catalog: {active}")
        for number, (listing, email) in enumerate(sample, start=1):
            logger.info(
                f"{number}. {listing.title!r} by {email} | "
                f"Category: {listing.category} | Price: {listing.price:g} ({listing.price_type})"
            )
