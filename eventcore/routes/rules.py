"""
Automation rule API routes.

SECURITY: All queries MUST include organization_id filter.
Failure to do so will result in data leakage between tenants.
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from eventcore.database import get_db
from eventcore.dependencies.auth import TokenPayload, get_current_user, require_admin
from eventcore.models.automation_rule import DEFAULT_COOLDOWN_MINUTES, ActionType
from eventcore.services.rule_service import RuleService


router = APIRouter(prefix="/api/rules", tags=["rules"])


class RuleCreate(BaseModel):
    """Request model for creating a rule."""
    rule_name: str = Field(min_length=1, max_length=255)
    trigger_type: str = Field(min_length=1, max_length=100)
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    action_type: ActionType
    action_config: dict[str, Any] = Field(default_factory=dict)
    cooldown_minutes: int = Field(default=DEFAULT_COOLDOWN_MINUTES, ge=0)
    is_active: bool = True


class RuleUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    rule_name: str | None = Field(default=None, min_length=1, max_length=255)
    trigger_type: str | None = Field(default=None, min_length=1, max_length=100)
    trigger_config: dict[str, Any] | None = None
    action_type: ActionType | None = None
    action_config: dict[str, Any] | None = None
    cooldown_minutes: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class RuleResponse(BaseModel):
    """Response model for a rule."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    rule_name: str
    trigger_type: str
    trigger_config: dict[str, Any]
    action_type: str
    action_config: dict[str, Any]
    cooldown_minutes: int
    is_active: bool
    execution_count: int
    last_execution: datetime | None = None


def rule_not_found():
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Rule not found"
    )


@router.post("/", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    request: RuleCreate,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create an automation rule for the caller's organization."""
    fields = request.model_dump()
    fields["action_type"] = request.action_type.value
    return await RuleService(db).create_rule(token.org_id, **fields)


@router.get("/", response_model=list[RuleResponse])
async def list_rules(
    trigger_type: str | None = Query(default=None),
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the organization's rules, optionally filtered by trigger type."""
    return await RuleService(db).list_rules(token.org_id, trigger_type)


@router.get("/{rule_id}", response_model=RuleResponse)
async def get_rule(
    rule_id: str,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a single rule with its execution counters."""
    rule = await RuleService(db).get_rule(rule_id, token.org_id)
    if not rule:
        raise rule_not_found()
    return rule


@router.patch("/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: str,
    request: RuleUpdate,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Edit a rule. execution_count and last_execution are engine-owned."""
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if changes.get("action_type") is not None:
        changes["action_type"] = changes["action_type"].value

    rule = await RuleService(db).update_rule(rule_id, token.org_id, **changes)
    if not rule:
        raise rule_not_found()
    return rule


@router.delete("/{rule_id}", response_model=dict)
async def delete_rule(
    rule_id: str,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a rule."""
    if not await RuleService(db).delete_rule(rule_id, token.org_id):
        raise rule_not_found()
    return {"message": "Rule deleted successfully"}
