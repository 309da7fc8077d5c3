"""Initialize database schema for the service catalog.

Creates the users and provider_services tables if they do not exist.
Existing tables and rows are left untouched.
"""

import asyncio
import sys

from pydantic import ValidationError

from be.config import get_settings
from be.db import build_engine
from be.models import Base


async def init_database() -> None:
    """Create all database tables."""
    settings = get_settings()
    print(f"Initializing database: {settings.db.url.split('@')[-1]}")
    print("Creating tables...")

    engine = build_engine(settings.db)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            print("✓ Created missing tables")
    finally:
        await engine.dispose()

    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(Base.metadata.tables.keys())}")


async def main():
    """Main entry point."""
    try:
        await init_database()
    except ValidationError as e:
        print(f"\n❌ Invalid configuration (is DB_URL set?): {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
