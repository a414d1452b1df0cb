"""
Service providers for FastAPI routes.

Tests override these with instances wired to a test database and a fake
HTTP transport.
"""
from functools import lru_cache

from eventcore.services.event_service import EventService
from eventcore.services.rule_engine import RuleEngine
from eventcore.services.webhook_service import WebhookDispatcher


@lru_cache
def get_rule_engine() -> RuleEngine:
    return RuleEngine()


@lru_cache
def get_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher()


def get_event_service() -> EventService:
    return EventService(get_rule_engine(), get_dispatcher())
