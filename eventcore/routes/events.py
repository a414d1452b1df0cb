"""
Event ingestion routes.

Entry points used by entity-mutation handlers to report domain events.
"""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from eventcore.dependencies.auth import TokenPayload, get_current_user, require_admin
from eventcore.dependencies.services import get_event_service, get_rule_engine
from eventcore.exceptions import ValidationError
from eventcore.services.event_service import Event, EventResult, EventService
from eventcore.services.rule_engine import RuleEngine


router = APIRouter(prefix="/api", tags=["events"])


class EvaluateRequest(BaseModel):
    """Request model for a direct rule evaluation."""
    trigger_type: str = Field(min_length=1, max_length=100)
    trigger_data: dict[str, Any]
    organization_id: str | None = None


def ensure_same_org(token: TokenPayload, organization_id: str | None) -> str:
    """Callers may only act on their own organization."""
    if organization_id and organization_id != token.org_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization mismatch"
        )
    return token.org_id


@router.post("/events", response_model=EventResult)
async def publish_event(
    event: Event,
    token: TokenPayload = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service)
):
    """
    Ingest a domain event.

    Runs automation rules and webhook delivery in parallel and returns
    both outcomes. Failures inside either path are reported in the body,
    never as a 5xx.
    """
    ensure_same_org(token, event.organization_id)
    return await event_service.publish(event)


@router.post("/automation/evaluate", response_model=dict)
async def evaluate_rules(
    request: EvaluateRequest,
    token: TokenPayload = Depends(require_admin),
    rule_engine: RuleEngine = Depends(get_rule_engine)
):
    """Evaluate the organization's rules for a trigger without webhook fan-out."""
    org_id = ensure_same_org(token, request.organization_id)

    try:
        results = await rule_engine.evaluate(request.trigger_type, request.trigger_data, org_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "success": True,
        "executed_rules": len(results),
        "results": [r.model_dump() for r in results]
    }
