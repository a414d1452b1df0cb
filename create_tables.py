"""
Script to create all database tables.

Creates every table defined in the models. Use Alembic migrations in
deployed environments; this is for local development.
"""
import asyncio
from eventcore.database import engine
from eventcore.models.base import Base

# Import all models to register them with Base
from eventcore.models.organization import Organization  # noqa: F401
from eventcore.models.automation_rule import AutomationRule  # noqa: F401
from eventcore.models.webhook import WebhookSubscription, DeliveryAttempt  # noqa: F401
from eventcore.models.targets import Notification, Task, FeatureConfig  # noqa: F401


async def create_all_tables():
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("All tables created successfully!")


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    print("All tables dropped!")


async def main():
    """Main entry point."""
    print("Creating database tables...")
    await create_all_tables()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
