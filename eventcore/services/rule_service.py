"""
Automation rule store.

SECURITY: All queries MUST include organization_id filter.
Failure to do so will result in data leakage between tenants.
"""
from datetime import datetime
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from eventcore.models.automation_rule import AutomationRule


class RuleService:
    """Service for reading and updating automation rules."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_rule(self, org_id: str, **fields) -> AutomationRule:
        """
        Create a new automation rule.

        Args:
            org_id: Owning organization ID
            **fields: Column values (rule_name, trigger_type, action_type, ...)

        Returns:
            Newly created AutomationRule
        """
        rule = AutomationRule(organization_id=org_id, **fields)
        self.db.add(rule)
        await self.db.commit()
        await self.db.refresh(rule)
        return rule

    async def get_rule(self, rule_id: str, org_id: str) -> AutomationRule | None:
        """Get rule by ID within organization."""
        stmt = select(AutomationRule).where(
            AutomationRule.id == rule_id,
            AutomationRule.organization_id == org_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_rules(self, org_id: str, trigger_type: str | None = None) -> list[AutomationRule]:
        """List an organization's rules, newest first."""
        stmt = select(AutomationRule).where(AutomationRule.organization_id == org_id)
        if trigger_type:
            stmt = stmt.where(AutomationRule.trigger_type == trigger_type)
        stmt = stmt.order_by(AutomationRule.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_rule(self, rule_id: str, org_id: str, **changes) -> AutomationRule | None:
        """
        Apply operator edits to a rule.

        Execution bookkeeping is not editable here.

        Returns:
            Updated rule, or None if not found
        """
        rule = await self.get_rule(rule_id, org_id)
        if not rule:
            return None

        for field, value in changes.items():
            setattr(rule, field, value)

        await self.db.commit()
        await self.db.refresh(rule)
        return rule

    async def delete_rule(self, rule_id: str, org_id: str) -> bool:
        """Delete a rule. Returns False if it did not exist."""
        stmt = delete(AutomationRule).where(
            AutomationRule.id == rule_id,
            AutomationRule.organization_id == org_id
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def get_active_rules(
        self,
        trigger_type: str,
        org_id: str | None = None
    ) -> list[AutomationRule]:
        """
        Load active rules listening for trigger_type.

        Without org_id this spans all tenants; only the internal evaluate
        endpoint calls it that way.
        """
        stmt = select(AutomationRule).where(
            AutomationRule.trigger_type == trigger_type,
            AutomationRule.is_active.is_(True)
        )
        if org_id:
            stmt = stmt.where(AutomationRule.organization_id == org_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def record_execution(
        self,
        rule_id: str,
        observed_last_execution: datetime | None,
        now: datetime
    ) -> bool:
        """
        Atomically bump execution_count and set last_execution.

        The UPDATE only matches while last_execution still holds the value
        the caller saw, so two overlapping events cannot both fire a rule
        inside one cooldown window.

        Returns:
            True if this caller claimed the execution, False if another
            event got there first
        """
        stmt = update(AutomationRule).where(AutomationRule.id == rule_id)
        if observed_last_execution is None:
            stmt = stmt.where(AutomationRule.last_execution.is_(None))
        else:
            stmt = stmt.where(AutomationRule.last_execution == observed_last_execution)

        stmt = stmt.values(
            execution_count=AutomationRule.execution_count + 1,
            last_execution=now
        ).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1
