"""
Domain exceptions.

Routes translate these into HTTP client errors; the rule engine and the
webhook dispatcher turn them into per-item failure results.
"""


class EventCoreError(Exception):
    """Base class for all EventCore errors."""


class ValidationError(EventCoreError):
    """Malformed event or unknown trigger/action type."""


class NotFoundError(EventCoreError):
    """Referenced record does not exist within the caller's organization."""


class SignatureError(EventCoreError):
    """Payload cannot be signed with the subscription's secret."""
