"""
Append-only webhook delivery log.

Rows are inserted once per HTTP attempt and never updated.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from eventcore.models.webhook import DeliveryAttempt


class DeliveryLogService:
    """Service for writing and reading delivery attempts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_attempt(self, **fields) -> DeliveryAttempt:
        """
        Append one attempt row.

        Args:
            **fields: webhook_id, delivery_id, event_type, payload, attempt,
                status_code, response_body, error_message, duration_ms,
                success, is_test

        Returns:
            The persisted DeliveryAttempt
        """
        attempt = DeliveryAttempt(**fields)
        self.db.add(attempt)
        await self.db.commit()
        return attempt

    async def list_attempts(self, webhook_id: str, limit: int = 50) -> list[DeliveryAttempt]:
        """
        Attempt history for one subscription, most recent first.

        Callers must have already checked the subscription belongs to
        their organization.
        """
        stmt = (
            select(DeliveryAttempt)
            .where(DeliveryAttempt.webhook_id == webhook_id)
            .order_by(DeliveryAttempt.timestamp.desc(), DeliveryAttempt.attempt.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_cycle(self, delivery_id: str) -> list[DeliveryAttempt]:
        """All attempts of one delivery cycle in attempt order."""
        stmt = (
            select(DeliveryAttempt)
            .where(DeliveryAttempt.delivery_id == delivery_id)
            .order_by(DeliveryAttempt.attempt)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
