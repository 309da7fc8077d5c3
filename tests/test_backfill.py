import logging
from datetime import datetime, timezone
from types import MappingProxyType

import pytest
from sqlalchemy import select

from be import models
from be.config import BackfillSettings
from be.db import build_sessionmaker
from be.pipelines.backfill import BackfillError, CoverageStatus, ServiceBackfiller, _entry_label
from be.schemas import ProviderSnapshot


@pytest.fixture
def backfiller(sessionmaker, backfill_settings):
    return ServiceBackfiller(sessionmaker, backfill_settings)


async def all_listing_keys(sessionmaker) -> list[tuple[int, str, str]]:
    async with sessionmaker() as session:
        result = await session.execute(
            select(
                models.ProviderService.provider_id,
                models.ProviderService.title,
                models.ProviderService.category,
            ).order_by(models.ProviderService.id)
        )
        return [tuple(row) for row in result.all()]


async def test_skill_only_provider_scenario(backfiller, add_user, listings_for):
    provider_id = await add_user(
        "a@x.com",
        provider_profile={"skills": ["cleaning"], "hourlyRate": 1800},
    )

    report = await backfiller.run()

    listings = await listings_for(provider_id)
    assert len(listings) == 1
    listing = listings[0]
    assert listing.category == "cleaning"
    assert listing.price == 1800
    assert listing.price_type == "hourly"
    assert listing.service_area == ["nairobi"]
    assert listing.is_active is True
    assert listing.duration == 60
    assert (listing.available_hours_start, listing.available_hours_end) == ("08:00", "18:00")
    assert (listing.total_bookings, listing.total_revenue, listing.rating, listing.review_count) == (0, 0, 0, 0)
    assert report.providers_found == 1
    assert report.providers_processed == 1
    assert report.listings_created == 1


async def test_default_synthesis_from_single_skill(backfiller, add_user, listings_for):
    provider_id = await add_user("plumber@x.com", onboarding_data={}, provider_profile={"skills": ["plumbing"]})

    await backfiller.run()

    listings = await listings_for(provider_id)
    assert len(listings) == 1
    assert listings[0].category == "plumbing"
    assert "Plumbing" in listings[0].title
    assert listings[0].price_type == "hourly"


async def test_provider_without_legacy_data_gets_general_listing(backfiller, add_user, listings_for):
    provider_id = await add_user("empty@x.com")

    await backfiller.run()

    listings = await listings_for(provider_id)
    assert [(listing.title, listing.category) for listing in listings] == [("General Services", "other")]
    assert listings[0].price == 1000


async def test_run_is_idempotent(sessionmaker, backfill_settings, add_user):
    await add_user("a@x.com", provider_profile={"skills": ["cleaning", "painting"]})
    await add_user(
        "b@x.com",
        onboarding_data={"services": [{"title": "Leak Repair", "category": "plumbing", "price": 1500}]},
    )
    await add_user("c@x.com")

    first = await ServiceBackfiller(sessionmaker, backfill_settings).run()
    keys_after_first = await all_listing_keys(sessionmaker)
    second = await ServiceBackfiller(sessionmaker, backfill_settings).run()

    assert first.listings_created == 4
    assert second.listings_created == 0
    assert second.providers_skipped == 3
    assert await all_listing_keys(sessionmaker) == keys_after_first


async def test_duplicate_legacy_entries_create_one_listing(backfiller, add_user, listings_for):
    provider_id = await add_user(
        "dup@x.com",
        onboarding_data={
            "services": [
                {"title": "Leak Repair", "category": "plumbing"},
                {"title": "Leak Repair", "category": "Plumbing"},
                # Both coerce to the fallback category, so they share a key
                {"title": "Maintenance", "category": "aquarium"},
                {"title": "Maintenance", "category": "pool care"},
            ]
        },
    )

    report = await backfiller.run()

    listings = await listings_for(provider_id)
    assert [(listing.title, listing.category) for listing in listings] == [
        ("Leak Repair", "plumbing"),
        ("Maintenance", "other"),
    ]
    assert report.listings_created == 2
    assert report.listings_existing == 2


@pytest.mark.parametrize(
    "user_type, provider_status",
    [
        ("provider", "pending"),
        ("provider", "under_review"),
        ("provider", "rejected"),
        ("provider", "suspended"),
        ("client", None),
        ("admin", "approved"),
    ],
)
async def test_ineligible_users_get_no_listings(backfiller, add_user, listings_for, user_type, provider_status):
    user_id = await add_user(
        "nope@x.com",
        user_type=user_type,
        provider_status=provider_status,
        onboarding_data={"services": [{"title": "Leak Repair", "category": "plumbing"}]},
        provider_profile={"skills": ["plumbing"]},
    )

    report = await backfiller.run()

    assert await listings_for(user_id) == []
    assert report.providers_found == 0
    assert report.listings_created == 0


async def test_onboarding_services_win_over_skills(backfiller, add_user, listings_for):
    provider_id = await add_user(
        "both@x.com",
        onboarding_data={"services": [{"title": "Socket Install", "category": "electrical", "priceType": "fixed"}]},
        provider_profile={"skills": ["cleaning", "gardening"]},
    )

    await backfiller.run()

    listings = await listings_for(provider_id)
    assert [(listing.title, listing.category, listing.price_type) for listing in listings] == [
        ("Socket Install", "electrical", "fixed"),
    ]


async def test_out_of_enum_category_is_stored_as_fallback(backfiller, add_user, listings_for):
    provider_id = await add_user(
        "odd@x.com",
        provider_profile={"services": [{"title": "Pest Control", "category": "pest-control"}]},
    )

    report = await backfiller.run()

    listings = await listings_for(provider_id)
    assert len(listings) == 1
    assert listings[0].category == "other"
    assert report.candidate_failures == 0


async def test_provider_with_existing_listing_is_skipped(sessionmaker, backfiller, add_user, listings_for):
    provider_id = await add_user(
        "covered@x.com",
        onboarding_data={
            "services": [
                {"title": "Leak Repair", "category": "plumbing"},
                {"title": "Drain Unblocking", "category": "plumbing"},
            ]
        },
    )
    async with sessionmaker() as session, session.begin():
        session.add(
            models.ProviderService(
                provider_id=provider_id,
                title="Handmade Listing",
                description="Created by the provider",
                category="carpentry",
                price=300,
                price_type="fixed",
                duration=30,
            )
        )

    report = await backfiller.run()

    listings = await listings_for(provider_id)
    assert [listing.title for listing in listings] == ["Handmade Listing"]
    assert report.providers_skipped == 1
    assert report.providers_processed == 0
    assert report.listings_created == 0


async def test_bad_candidates_are_skipped_and_run_continues(backfiller, add_user, listings_for, caplog):
    first = await add_user(
        "mixed@x.com",
        onboarding_data={
            "services": [
                "not an object",
                {"title": "Negative", "category": "painting", "price": -20},
                {"title": "Wall Painting", "category": "painting", "price": 2000},
            ]
        },
    )
    second = await add_user("next@x.com", provider_profile={"skills": ["roofing"]})

    with caplog.at_level(logging.INFO):
        report = await backfiller.run()

    assert [listing.title for listing in await listings_for(first)] == ["Wall Painting"]
    assert [listing.title for listing in await listings_for(second)] == ["Roofing Services"]
    assert report.candidate_failures == 2
    assert report.listings_created == 2
    assert report.providers_processed == 2
    errors = [record.getMessage() for record in caplog.records if record.levelno >= logging.ERROR]
    assert any("'Negative'" in message and "mixed@x.com" in message for message in errors)
    assert any("#0" in message and "mixed@x.com" in message for message in errors)


async def test_processed_provider_is_stamped(sessionmaker, backfill_settings, add_user, user_by_id):
    when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    provider_id = await add_user(
        "stamp@x.com",
        onboarding_data={"services": [{"title": "Leak Repair", "category": "plumbing"}], "step": 4},
    )

    await ServiceBackfiller(sessionmaker, backfill_settings, clock=lambda: when).run()

    user = await user_by_id(provider_id)
    assert user.onboarding_data["servicesActivated"] is True
    assert user.onboarding_data["migrationDate"] == when.isoformat()
    assert user.onboarding_data["step"] == 4
    assert len(user.onboarding_data["services"]) == 1


async def test_stamping_can_be_disabled(sessionmaker, add_user, user_by_id):
    provider_id = await add_user("nostamp@x.com", provider_profile={"skills": ["hvac"]})

    await ServiceBackfiller(sessionmaker, BackfillSettings(stamp_providers=False)).run()

    user = await user_by_id(provider_id)
    assert user.onboarding_data is None


async def test_dry_run_writes_nothing(sessionmaker, add_user, listings_for, user_by_id):
    provider_id = await add_user(
        "dry@x.com",
        onboarding_data={
            "services": [
                {"title": "Leak Repair", "category": "plumbing"},
                {"title": "Leak Repair", "category": "plumbing"},
                {"title": "Boiler Check", "category": "hvac"},
            ]
        },
    )

    report = await ServiceBackfiller(sessionmaker, BackfillSettings(dry_run=True)).run()

    assert report.dry_run is True
    assert report.listings_created == 2
    assert report.listings_existing == 1
    assert await listings_for(provider_id) == []
    assert (await user_by_id(provider_id)).onboarding_data.get("servicesActivated") is None


async def test_coverage_status_reflects_current_listings(sessionmaker, backfiller, add_user):
    provider_id = await add_user("status@x.com", provider_profile={"skills": ["cleaning"]})
    snapshot = ProviderSnapshot(id=provider_id, email="status@x.com", name="Test Provider", user_type="provider")

    assert await backfiller.coverage_status(snapshot) is CoverageStatus.UNCOVERED
    await backfiller.run()
    assert await backfiller.coverage_status(snapshot) is CoverageStatus.COVERED


async def test_provider_query_failure_is_fatal(engine, backfill_settings):
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.drop_all)

    with pytest.raises(BackfillError):
        await ServiceBackfiller(build_sessionmaker(engine), backfill_settings).run()


async def test_run_with_no_providers_reports_zero(backfiller):
    report = await backfiller.run()
    assert report.as_dict() == {
        "providers_found": 0,
        "providers_processed": 0,
        "providers_skipped": 0,
        "providers_failed": 0,
        "listings_created": 0,
        "listings_existing": 0,
        "candidate_failures": 0,
        "dry_run": False,
    }


async def test_non_object_legacy_json_does_not_abort_run(backfiller, add_user, listings_for, user_by_id):
    bad = await add_user("bad@x.com", onboarding_data=["not", "an", "object"], provider_profile="cleaning")
    good = await add_user("good@x.com", provider_profile={"skills": ["cleaning"]})

    report = await backfiller.run()

    assert [listing.title for listing in await listings_for(good)] == ["Cleaning Services"]
    # Unreadable legacy data falls through to the default listing
    assert [(listing.title, listing.category) for listing in await listings_for(bad)] == [
        ("General Services", "other"),
    ]
    assert report.providers_found == 2
    assert report.providers_processed == 2
    assert report.providers_failed == 0
    # The list is left as it was instead of being overwritten by the marker
    assert (await user_by_id(bad)).onboarding_data == ["not", "an", "object"]
    assert (await user_by_id(good)).onboarding_data["servicesActivated"] is True


def test_entry_label_accepts_any_mapping():
    assert _entry_label(MappingProxyType({"title": "Leak Repair"}), 3) == "'Leak Repair'"
    assert _entry_label(["Leak Repair"], 3) == "#3"
