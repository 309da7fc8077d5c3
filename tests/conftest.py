from typing import Any

import pytest
from sqlalchemy import select

from be import models
from be.config import BackfillSettings, DatabaseSettings
from be.db import build_engine, build_sessionmaker
from be.models import Base


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'catalog.sqlite3'}"


@pytest.fixture
async def engine(db_url):
    engine = build_engine(DatabaseSettings(url=db_url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def backfill_settings():
    return BackfillSettings()


@pytest.fixture
def add_user(sessionmaker):
    async def _add_user(
        email: str,
        *,
        user_type: str = "provider",
        provider_status: str | None = "approved",
        name: str = "Test Provider",
        onboarding_data: dict[str, Any] | None = None,
        provider_profile: dict[str, Any] | None = None,
    ) -> int:
        async with sessionmaker() as session, session.begin():
            user = models.User(
                email=email,
                name=name,
                user_type=user_type,
                provider_status=provider_status,
                onboarding_data=onboarding_data,
                provider_profile=provider_profile,
            )
            session.add(user)
            await session.flush()
            return user.id

    return _add_user


@pytest.fixture
def listings_for(sessionmaker):
    async def _listings_for(provider_id: int) -> list[models.ProviderService]:
        async with sessionmaker() as session:
            result = await session.execute(
                select(models.ProviderService)
                .where(models.ProviderService.provider_id == provider_id)
                .order_by(models.ProviderService.id)
            )
            return list(result.scalars())

    return _listings_for


@pytest.fixture
def user_by_id(sessionmaker):
    async def _user_by_id(user_id: int) -> models.User:
        async with sessionmaker() as session:
            return await session.get(models.User, user_id)

    return _user_by_id
