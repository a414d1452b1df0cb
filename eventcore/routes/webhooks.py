"""
Webhook API routes.

Subscription management, delivery history, test deliveries and the
dispatch entry point.

SECURITY: All queries MUST include organization_id filter.
Failure to do so will result in data leakage between tenants.
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from sqlalchemy.ext.asyncio import AsyncSession

from eventcore.database import get_db
from eventcore.dependencies.auth import TokenPayload, get_current_user, require_admin
from eventcore.dependencies.services import get_dispatcher
from eventcore.exceptions import NotFoundError, ValidationError
from eventcore.routes.events import ensure_same_org
from eventcore.services.delivery_log_service import DeliveryLogService
from eventcore.services.subscription_service import SubscriptionService
from eventcore.services.webhook_service import DeliveryOutcome, WebhookDispatcher


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


class TriggerWebhookRequest(BaseModel):
    """Request model for dispatching an event to subscriptions."""
    organization_id: str = Field(min_length=1, max_length=36)
    event_type: str = Field(min_length=1, max_length=100)
    payload: dict[str, Any]


class SubscriptionCreate(BaseModel):
    """Request model for registering a webhook endpoint."""
    url: HttpUrl
    secret: str = Field(min_length=1, max_length=255)
    events: list[str] = Field(min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    description: str | None = Field(default=None, max_length=500)
    active: bool = True
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_delay: int = Field(default=60, ge=0, le=3600)


class SubscriptionUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    url: HttpUrl | None = None
    secret: str | None = Field(default=None, min_length=1, max_length=255)
    events: list[str] | None = Field(default=None, min_length=1)
    headers: dict[str, str] | None = None
    description: str | None = Field(default=None, max_length=500)
    active: bool | None = None
    max_retries: int | None = Field(default=None, ge=1, le=10)
    retry_delay: int | None = Field(default=None, ge=0, le=3600)


class SubscriptionResponse(BaseModel):
    """Subscription as returned to operators. The secret is write-only."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    url: str
    events: list[str]
    headers: dict[str, str]
    description: str | None = None
    active: bool
    max_retries: int
    retry_delay: int
    failure_count: int
    last_triggered: datetime | None = None


class DeliveryAttemptResponse(BaseModel):
    """One row of delivery history."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    delivery_id: str
    event_type: str
    payload: str
    attempt: int
    status_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    timestamp: datetime
    success: bool
    is_test: bool


def webhook_not_found():
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Webhook not found"
    )


@router.post("/trigger", response_model=dict)
async def trigger_webhooks(
    request: TriggerWebhookRequest,
    token: TokenPayload = Depends(get_current_user),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher)
):
    """
    Deliver an event to all matching subscriptions.

    Returns one outcome per subscription; delivery failures are reported
    in the body.
    """
    ensure_same_org(token, request.organization_id)

    try:
        outcomes = await dispatcher.dispatch(
            request.organization_id,
            request.event_type,
            request.payload
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "triggered": len(outcomes),
        "results": [o.model_dump() for o in outcomes]
    }


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    request: SubscriptionCreate,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Register a webhook endpoint for the caller's organization."""
    fields = request.model_dump()
    fields["url"] = str(request.url)
    return await SubscriptionService(db).create_subscription(token.org_id, **fields)


@router.get("/subscriptions", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the organization's webhook subscriptions."""
    return await SubscriptionService(db).list_subscriptions(token.org_id)


@router.get("/subscriptions/{webhook_id}", response_model=SubscriptionResponse)
async def get_subscription(
    webhook_id: str,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a subscription with its failure_count."""
    subscription = await SubscriptionService(db).get_subscription(webhook_id, token.org_id)
    if not subscription:
        raise webhook_not_found()
    return subscription


@router.patch("/subscriptions/{webhook_id}", response_model=SubscriptionResponse)
async def update_subscription(
    webhook_id: str,
    request: SubscriptionUpdate,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Edit a subscription. failure_count and last_triggered are dispatcher-owned."""
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if "url" in changes:
        changes["url"] = str(request.url)

    subscription = await SubscriptionService(db).update_subscription(
        webhook_id, token.org_id, **changes
    )
    if not subscription:
        raise webhook_not_found()
    return subscription


@router.delete("/subscriptions/{webhook_id}", response_model=dict)
async def delete_subscription(
    webhook_id: str,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Remove a webhook subscription."""
    if not await SubscriptionService(db).delete_subscription(webhook_id, token.org_id):
        raise webhook_not_found()
    return {"message": "Webhook removed successfully"}


@router.post("/subscriptions/{webhook_id}/test", response_model=DeliveryOutcome)
async def test_subscription(
    webhook_id: str,
    token: TokenPayload = Depends(require_admin),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher)
):
    """Send a synthetic payload through the normal delivery pipeline."""
    try:
        return await dispatcher.test(token.org_id, webhook_id)
    except NotFoundError:
        raise webhook_not_found()


@router.get("/subscriptions/{webhook_id}/deliveries", response_model=list[DeliveryAttemptResponse])
async def list_deliveries(
    webhook_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delivery attempt history for a subscription, most recent first."""
    subscription = await SubscriptionService(db).get_subscription(webhook_id, token.org_id)
    if not subscription:
        raise webhook_not_found()
    return await DeliveryLogService(db).list_attempts(webhook_id, limit)
