"""
Webhook Service

Delivers signed event payloads to subscribed endpoints with bounded,
linearly backed-off retries, and logs every attempt.
"""
import asyncio
import time
import uuid
from datetime import datetime
from typing import Callable

import httpx
from pydantic import BaseModel

from eventcore.config import settings
from eventcore.database import AsyncSessionLocal
from eventcore.exceptions import NotFoundError, SignatureError, ValidationError
from eventcore.logging_config import get_logger
from eventcore.models.base import utcnow
from eventcore.models.webhook import WebhookSubscription
from eventcore.routes.metrics import track_webhook_attempt, track_webhook_delivery
from eventcore.sentry_config import capture_exception
from eventcore.services.delivery_log_service import DeliveryLogService
from eventcore.services.signature_service import canonical_json, sign
from eventcore.services.subscription_service import SubscriptionService


TEST_EVENT_TYPE = "webhook.test"


class DeliveryOutcome(BaseModel):
    """Final result of one delivery cycle to one subscription."""
    webhook_id: str
    delivery_id: str
    success: bool
    attempts: int
    status_code: int | None = None
    error: str | None = None


def backoff_delay(retry_delay: float, attempt: int) -> float:
    """Seconds to wait after a failed attempt: linear in the attempt number."""
    return retry_delay * attempt


class WebhookDispatcher:
    """
    Fans an event out to matching subscriptions.

    Subscriptions are delivered concurrently up to max_concurrency; attempts
    for a single subscription are strictly sequential.
    """

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        max_concurrency: int | None = None,
        timeout: float | None = None,
        sleep: Callable = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.timeout = timeout or settings.WEBHOOK_TIMEOUT_SECONDS
        self.client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=self.timeout))
        self.max_concurrency = max_concurrency or settings.WEBHOOK_MAX_CONCURRENCY
        self.sleep = sleep
        self.clock = clock

    async def dispatch(
        self,
        organization_id: str,
        event_type: str,
        payload: dict
    ) -> list[DeliveryOutcome]:
        """
        Deliver payload to every active subscription of the organization
        that listens for event_type (or "*").
        """
        if not organization_id or not event_type:
            raise ValidationError("organization_id and event_type are required")
        if not isinstance(payload, dict):
            raise ValidationError("payload must be an object")

        async with self.session_factory() as db:
            subscriptions = await SubscriptionService(db).get_subscriptions_for_event(
                organization_id, event_type
            )

        log = get_logger(org_id=organization_id, event_type=event_type)
        log.info("webhook_dispatch_started", subscriptions=len(subscriptions))

        if not subscriptions:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(subscription):
            async with semaphore:
                return await self._deliver_safely(subscription, event_type, payload, is_test=False)

        outcomes = await asyncio.gather(*(run(sub) for sub in subscriptions))
        log.info(
            "webhook_dispatch_finished",
            delivered=sum(1 for o in outcomes if o.success),
            failed=sum(1 for o in outcomes if not o.success)
        )
        return list(outcomes)

    async def test(self, organization_id: str, webhook_id: str) -> DeliveryOutcome:
        """
        Send a synthetic payload through the normal pipeline.

        Attempts are logged with is_test set; failure_count and
        last_triggered are left untouched.
        """
        async with self.session_factory() as db:
            subscription = await SubscriptionService(db).get_subscription(webhook_id, organization_id)

        if not subscription:
            raise NotFoundError("Webhook not found")

        payload = {
            "event": TEST_EVENT_TYPE,
            "message": "This is a test delivery",
            "webhook_id": subscription.id,
            "timestamp": self.clock().isoformat(),
        }
        return await self._deliver_safely(subscription, TEST_EVENT_TYPE, payload, is_test=True)

    async def _deliver_safely(
        self,
        subscription: WebhookSubscription,
        event_type: str,
        payload: dict,
        is_test: bool
    ) -> DeliveryOutcome:
        delivery_id = str(uuid.uuid4())
        try:
            return await self._deliver(subscription, delivery_id, event_type, payload, is_test)
        except Exception as e:
            get_logger(webhook_id=subscription.id, delivery_id=delivery_id).error(
                "webhook_delivery_error", error=str(e)
            )
            capture_exception(e)
            return DeliveryOutcome(
                webhook_id=subscription.id,
                delivery_id=delivery_id,
                success=False,
                attempts=0,
                error=str(e)
            )

    async def _deliver(
        self,
        subscription: WebhookSubscription,
        delivery_id: str,
        event_type: str,
        payload: dict,
        is_test: bool
    ) -> DeliveryOutcome:
        log = get_logger(
            webhook_id=subscription.id,
            delivery_id=delivery_id,
            event_type=event_type,
            test=is_test
        )

        body = canonical_json(payload)
        try:
            signature = sign(subscription.secret, body)
        except SignatureError as e:
            log.error("webhook_unsignable", error=str(e))
            return DeliveryOutcome(
                webhook_id=subscription.id,
                delivery_id=delivery_id,
                success=False,
                attempts=0,
                error=str(e)
            )

        # Core headers replace subscriber-supplied ones whatever their case
        headers = httpx.Headers(subscription.headers or {})
        headers["Content-Type"] = "application/json"
        headers["X-Webhook-Signature"] = signature
        headers["X-Webhook-Event"] = event_type

        body_text = body.decode("utf-8")
        max_attempts = max(1, subscription.max_retries)
        status_code = None
        error = None

        async with self.client_factory() as client:
            for attempt in range(1, max_attempts + 1):
                headers["X-Webhook-Attempt"] = str(attempt)
                status_code = None
                response_body = None
                success = False
                started = time.monotonic()

                try:
                    response = await client.post(subscription.url, content=body, headers=headers)
                    status_code = response.status_code
                    response_body = response.text[:settings.WEBHOOK_RESPONSE_BODY_LIMIT]
                    success = response.is_success
                    error = None if success else f"HTTP {status_code}"
                except httpx.TimeoutException:
                    error = f"Timed out after {self.timeout}s"
                except Exception as e:
                    error = str(e) or e.__class__.__name__

                elapsed = time.monotonic() - started
                track_webhook_attempt(success, elapsed)

                async with self.session_factory() as db:
                    await DeliveryLogService(db).record_attempt(
                        webhook_id=subscription.id,
                        delivery_id=delivery_id,
                        event_type=event_type,
                        payload=body_text,
                        attempt=attempt,
                        status_code=status_code,
                        response_body=response_body,
                        error_message=error,
                        duration_ms=int(elapsed * 1000),
                        timestamp=self.clock(),
                        success=success,
                        is_test=is_test
                    )

                if success:
                    if not is_test:
                        async with self.session_factory() as db:
                            await SubscriptionService(db).mark_delivered(subscription.id, self.clock())
                    track_webhook_delivery(event_type, True)
                    log.info("webhook_delivered", attempt=attempt, status_code=status_code)
                    return DeliveryOutcome(
                        webhook_id=subscription.id,
                        delivery_id=delivery_id,
                        success=True,
                        attempts=attempt,
                        status_code=status_code
                    )

                log.warning("webhook_attempt_failed", attempt=attempt, error=error)

                if attempt < max_attempts:
                    await self.sleep(backoff_delay(subscription.retry_delay, attempt))

        if not is_test:
            async with self.session_factory() as db:
                await SubscriptionService(db).increment_failure_count(subscription.id)

        track_webhook_delivery(event_type, False)
        log.error("webhook_failed", attempts=max_attempts, error=error)
        return DeliveryOutcome(
            webhook_id=subscription.id,
            delivery_id=delivery_id,
            success=False,
            attempts=max_attempts,
            status_code=status_code,
            error=error
        )
