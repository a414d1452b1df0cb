"""
Rule Engine

Evaluates active automation rules against an incoming trigger, applies
cooldown suppression and runs the matching actions with per-rule isolation.
"""
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import BaseModel

from eventcore.database import AsyncSessionLocal
from eventcore.exceptions import ValidationError
from eventcore.logging_config import get_logger
from eventcore.models.automation_rule import AutomationRule
from eventcore.models.base import as_utc, utcnow
from eventcore.routes.metrics import track_rule_cooldown, track_rule_execution
from eventcore.sentry_config import capture_exception
from eventcore.services.action_service import ActionRegistry, ActionResult, build_default_registry
from eventcore.services.rule_service import RuleService


class RuleExecutionResult(BaseModel):
    """One fired rule in the aggregate evaluation response."""
    rule_id: str
    rule_name: str
    action_type: str
    action_result: ActionResult


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def matches_condition(config: dict | None, data: dict) -> bool:
    """
    Evaluate a rule's trigger_config against trigger data.

    The first predicate whose config field and data field are both present
    decides. A config with no applicable predicate always matches.
    """
    if not config:
        return True

    if config.get("threshold") is not None and data.get("value") is not None:
        value = _as_number(data["value"])
        threshold = _as_number(config["threshold"])
        return value is not None and threshold is not None and value >= threshold

    if config.get("classification") and data.get("classification"):
        return config["classification"] == data["classification"]

    if config.get("spike_percentage") and data.get("increase_percentage"):
        increase = _as_number(data["increase_percentage"])
        spike = _as_number(config["spike_percentage"])
        return increase is not None and spike is not None and increase >= spike

    return True


def in_cooldown(rule: AutomationRule, now: datetime) -> bool:
    """True while now is less than cooldown_minutes after last_execution."""
    if rule.last_execution is None:
        return False
    elapsed = now - as_utc(rule.last_execution)
    return elapsed < timedelta(minutes=rule.cooldown_minutes or 0)


class RuleEngine:
    """Stateless evaluate-and-apply pass, run once per incoming trigger."""

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        registry: ActionRegistry | None = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.registry = registry or build_default_registry(session_factory)
        self.clock = clock

    async def evaluate(
        self,
        trigger_type: str,
        trigger_data: dict,
        organization_id: str | None = None
    ) -> list[RuleExecutionResult]:
        """
        Fire every active rule for trigger_type whose condition matches.

        Returns:
            One result per rule that fired. Rules skipped by cooldown or
            condition do not appear.
        """
        if not isinstance(trigger_type, str) or not trigger_type:
            raise ValidationError("trigger_type is required")
        if not isinstance(trigger_data, dict):
            raise ValidationError("trigger_data must be an object")

        async with self.session_factory() as db:
            rules = await RuleService(db).get_active_rules(trigger_type, organization_id)

        log = get_logger(trigger_type=trigger_type, org_id=organization_id)
        log.info("rules_loaded", candidates=len(rules))

        results = []
        for rule in rules:
            result = await self._apply(rule, trigger_type, trigger_data)
            if result is not None:
                results.append(result)

        log.info("rules_evaluated", executed=len(results))
        return results

    async def _apply(
        self,
        rule: AutomationRule,
        trigger_type: str,
        trigger_data: dict
    ) -> RuleExecutionResult | None:
        log = get_logger(rule_id=rule.id, trigger_type=trigger_type, org_id=rule.organization_id)
        now = self.clock()

        if in_cooldown(rule, now):
            track_rule_cooldown(trigger_type)
            log.info("rule_skipped_cooldown", last_execution=str(rule.last_execution))
            return None

        try:
            if not matches_condition(rule.trigger_config, trigger_data):
                return None

            # Claim the window before acting so a failing action still
            # consumes it and a concurrent event cannot fire the rule twice.
            async with self.session_factory() as db:
                claimed = await RuleService(db).record_execution(rule.id, rule.last_execution, now)
            if not claimed:
                track_rule_cooldown(trigger_type)
                log.info("rule_claimed_elsewhere")
                return None

            action_result = await self.registry.execute(
                rule.action_type,
                rule.action_config,
                trigger_data,
                organization_id=rule.organization_id
            )
        except Exception as e:
            log.error("rule_execution_error", error=str(e))
            capture_exception(e)
            action_result = ActionResult(success=False, error=str(e))

        track_rule_execution(trigger_type, str(rule.action_type), action_result.success)
        if action_result.success:
            log.info("rule_executed", action_type=rule.action_type)
        else:
            log.warning("rule_action_failed", action_type=rule.action_type, error=action_result.error)

        return RuleExecutionResult(
            rule_id=rule.id,
            rule_name=rule.rule_name,
            action_type=str(rule.action_type),
            action_result=action_result
        )
