"""
Automation rule model.

SECURITY: All queries MUST include organization_id filter.
Failure to do so will result in data leakage between tenants.
"""
import enum
from datetime import datetime
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from eventcore.models.base import Base, TimestampMixin, uuid_pk


class TriggerType(str, enum.Enum):
    """
    Built-in trigger types.

    Rules may also listen for any domain event type (e.g. "payment.completed"),
    so the column itself is a plain string.
    """
    BUDGET_THRESHOLD = "budget_threshold"
    COST_SPIKE = "cost_spike"
    CLASSIFICATION_MATCH = "classification_match"


class ActionType(str, enum.Enum):
    """Action kinds with a registered executor."""
    SEND_EMAIL = "send_email"
    SEND_NOTIFICATION = "send_notification"
    CREATE_TASK = "create_task"
    WEBHOOK = "webhook"
    DISABLE_FEATURE = "disable_feature"


DEFAULT_COOLDOWN_MINUTES = 60


class AutomationRule(Base, TimestampMixin):
    """
    Operator-defined automation rule.

    The rule engine only ever touches execution_count and last_execution,
    and always through a single atomic UPDATE.
    """
    __tablename__ = "automation_rules"

    id: Mapped[str] = uuid_pk()
    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    trigger_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # Plain VARCHAR: a row carrying an action kind unknown to this build still
    # loads and surfaces as a per-rule failure instead of breaking the query.
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    action_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    cooldown_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_COOLDOWN_MINUTES
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_execution: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<AutomationRule(id={self.id}, trigger={self.trigger_type}, action={self.action_type})>"
