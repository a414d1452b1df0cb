"""
Event ingestion front door.

Receives a typed domain event and runs the rule engine and the webhook
dispatcher for it concurrently. The two paths share no transaction and
each reports its own outcome; nothing raised inside them escapes here.
"""
import asyncio
from typing import Any

from pydantic import BaseModel, Field

from eventcore.logging_config import get_logger
from eventcore.sentry_config import capture_exception
from eventcore.services.rule_engine import RuleEngine, RuleExecutionResult
from eventcore.services.webhook_service import DeliveryOutcome, WebhookDispatcher


class Event(BaseModel):
    """Domain event emitted by the rest of the application."""
    type: str = Field(min_length=1, max_length=100)
    organization_id: str = Field(min_length=1, max_length=36)
    entity_type: str | None = None
    entity_id: str | None = None
    payload: dict[str, Any]

    def trigger_data(self) -> dict[str, Any]:
        """Payload enriched with the entity reference for rule templates."""
        data = dict(self.payload)
        data.setdefault("entity_type", self.entity_type)
        data.setdefault("entity_id", self.entity_id)
        data.setdefault("organization_id", self.organization_id)
        return data


class EventResult(BaseModel):
    """Aggregated outcome of both paths for one event."""
    event_type: str
    rules: list[RuleExecutionResult] = Field(default_factory=list)
    deliveries: list[DeliveryOutcome] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class EventService:
    """Fans events out to the rule engine and the webhook dispatcher."""

    def __init__(
        self,
        rule_engine: RuleEngine | None = None,
        dispatcher: WebhookDispatcher | None = None
    ):
        self.rule_engine = rule_engine or RuleEngine()
        self.dispatcher = dispatcher or WebhookDispatcher()

    async def publish(self, event: Event) -> EventResult:
        log = get_logger(
            org_id=event.organization_id,
            event_type=event.type,
            entity_type=event.entity_type,
            entity_id=event.entity_id
        )
        log.info("event_received")

        rules, deliveries = await asyncio.gather(
            self.rule_engine.evaluate(event.type, event.trigger_data(), event.organization_id),
            self.dispatcher.dispatch(event.organization_id, event.type, event.payload),
            return_exceptions=True
        )

        result = EventResult(event_type=event.type)

        if isinstance(rules, BaseException):
            log.error("rule_engine_failed", error=str(rules))
            capture_exception(rules)
            result.errors.append(f"rule_engine: {rules}")
        else:
            result.rules = rules

        if isinstance(deliveries, BaseException):
            log.error("webhook_dispatch_failed", error=str(deliveries))
            capture_exception(deliveries)
            result.errors.append(f"webhook_dispatcher: {deliveries}")
        else:
            result.deliveries = deliveries

        log.info(
            "event_processed",
            rules_fired=len(result.rules),
            deliveries=len(result.deliveries),
            errors=len(result.errors)
        )
        return result
