"""
Webhook subscription store.

SECURITY: All queries MUST include organization_id filter.
Failure to do so will result in data leakage between tenants.
"""
from datetime import datetime
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from eventcore.models.webhook import WebhookSubscription


class SubscriptionService:
    """Service for managing webhook subscriptions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_subscription(self, org_id: str, **fields) -> WebhookSubscription:
        """
        Register a webhook endpoint for an organization.

        Args:
            org_id: Owning organization ID
            **fields: url, secret, events, headers, max_retries, retry_delay, ...

        Returns:
            Newly created WebhookSubscription
        """
        subscription = WebhookSubscription(organization_id=org_id, **fields)
        self.db.add(subscription)
        await self.db.commit()
        await self.db.refresh(subscription)
        return subscription

    async def get_subscription(self, webhook_id: str, org_id: str) -> WebhookSubscription | None:
        """Get subscription by ID within organization."""
        stmt = select(WebhookSubscription).where(
            WebhookSubscription.id == webhook_id,
            WebhookSubscription.organization_id == org_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_subscriptions(self, org_id: str) -> list[WebhookSubscription]:
        """List an organization's subscriptions, newest first."""
        stmt = (
            select(WebhookSubscription)
            .where(WebhookSubscription.organization_id == org_id)
            .order_by(WebhookSubscription.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_subscription(
        self,
        webhook_id: str,
        org_id: str,
        **changes
    ) -> WebhookSubscription | None:
        """Apply operator edits. Returns None if not found."""
        subscription = await self.get_subscription(webhook_id, org_id)
        if not subscription:
            return None

        for field, value in changes.items():
            setattr(subscription, field, value)

        await self.db.commit()
        await self.db.refresh(subscription)
        return subscription

    async def delete_subscription(self, webhook_id: str, org_id: str) -> bool:
        """Delete a subscription. Returns False if it did not exist."""
        stmt = delete(WebhookSubscription).where(
            WebhookSubscription.id == webhook_id,
            WebhookSubscription.organization_id == org_id
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def get_subscriptions_for_event(
        self,
        org_id: str,
        event_type: str
    ) -> list[WebhookSubscription]:
        """
        Active subscriptions of the organization interested in event_type.

        The events list is JSON, so the membership test runs in Python to
        stay portable across PostgreSQL and SQLite.
        """
        stmt = select(WebhookSubscription).where(
            WebhookSubscription.organization_id == org_id,
            WebhookSubscription.active.is_(True)
        )
        result = await self.db.execute(stmt)
        return [sub for sub in result.scalars().all() if sub.wants(event_type)]

    async def mark_delivered(self, webhook_id: str, now: datetime) -> None:
        """Reset failure_count and stamp last_triggered after a 2xx."""
        stmt = (
            update(WebhookSubscription)
            .where(WebhookSubscription.id == webhook_id)
            .values(failure_count=0, last_triggered=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def increment_failure_count(self, webhook_id: str) -> None:
        """Atomically add one exhausted delivery cycle to failure_count."""
        stmt = (
            update(WebhookSubscription)
            .where(WebhookSubscription.id == webhook_id)
            .values(failure_count=WebhookSubscription.failure_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()
