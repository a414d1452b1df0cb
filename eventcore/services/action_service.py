"""
Action executors for automation rules.

Each executor implements execute(config, data) and reports an ActionResult.
Collaborator failures are caught and reported, never raised to the engine.
Executors may run more than once for the same event; cooldown is the only
at-most-once guard.
"""
from typing import Any, Callable

import httpx
from pydantic import BaseModel, Field
from sqlalchemy import select, update

from eventcore.config import settings
from eventcore.database import AsyncSessionLocal
from eventcore.exceptions import EventCoreError
from eventcore.logging_config import get_logger
from eventcore.models.automation_rule import ActionType
from eventcore.models.targets import FeatureConfig, Notification, Task


class ActionResult(BaseModel):
    """Outcome of one action execution."""
    success: bool
    action: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


def render_template(template: str, data: dict) -> str:
    """
    Substitute {key} placeholders from data.

    Placeholders without a matching key are left as literal text.
    """
    result = template
    for key, value in data.items():
        result = result.replace("{" + str(key) + "}", str(value))
    return result


def default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)


class EmailSender:
    """
    Hands outbound email to the configured mail relay.

    The relay accepts POST {to, subject, body} and answers 2xx when queued.
    """

    def __init__(
        self,
        relay_url: str | None = None,
        token: str | None = None,
        client_factory: Callable[[], httpx.AsyncClient] = default_http_client
    ):
        self.relay_url = relay_url if relay_url is not None else settings.EMAIL_RELAY_URL
        self.token = token if token is not None else settings.EMAIL_RELAY_TOKEN
        self.client_factory = client_factory

    async def send(self, to: str, subject: str, body: str) -> None:
        if not self.relay_url:
            raise EventCoreError("Email relay not configured")

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        async with self.client_factory() as client:
            response = await client.post(
                self.relay_url,
                json={"to": to, "subject": subject, "body": body},
                headers=headers
            )
            response.raise_for_status()


class ActionExecutor:
    """Common capability of all action kinds."""

    action_type: ActionType

    async def execute(
        self,
        config: dict,
        data: dict,
        organization_id: str | None = None
    ) -> ActionResult:
        raise NotImplementedError


class SendEmailAction(ActionExecutor):
    action_type = ActionType.SEND_EMAIL

    def __init__(self, email_sender: EmailSender):
        self.email_sender = email_sender

    async def execute(self, config, data, organization_id=None):
        try:
            subject = config.get("subject") or "Automation Alert"
            body = render_template(config.get("body_template") or "Alert: {message}", data)
            recipients = config.get("recipients") or []
            if not recipients:
                return ActionResult(success=False, error="No recipients specified")

            for recipient in recipients:
                await self.email_sender.send(recipient, subject, body)

            return ActionResult(
                success=True,
                action="email_sent",
                detail={"recipients": recipients}
            )
        except Exception as e:
            return ActionResult(success=False, error=str(e))


class SendNotificationAction(ActionExecutor):
    action_type = ActionType.SEND_NOTIFICATION

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def execute(self, config, data, organization_id=None):
        try:
            message = render_template(
                config.get("message") or "Workflow triggered: {message}",
                data
            )
            user_ids = config.get("user_ids") or []

            async with self.session_factory() as db:
                for user_id in user_ids:
                    db.add(Notification(
                        organization_id=organization_id,
                        user_id=user_id,
                        type="workflow",
                        title=config.get("title") or "Automation Alert",
                        message=message,
                        priority=config.get("priority") or "normal"
                    ))
                await db.commit()

            return ActionResult(
                success=True,
                action="notification_sent",
                detail={"count": len(user_ids)}
            )
        except Exception as e:
            return ActionResult(success=False, error=str(e))


class CreateTaskAction(ActionExecutor):
    action_type = ActionType.CREATE_TASK

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def execute(self, config, data, organization_id=None):
        try:
            async with self.session_factory() as db:
                task = Task(
                    organization_id=organization_id,
                    title=config.get("task_title") or "Automation Task",
                    description=render_template(config.get("task_description") or "", data),
                    status="pending",
                    priority=config.get("priority") or "medium"
                )
                db.add(task)
                await db.flush()
                task_id = task.id
                await db.commit()

            return ActionResult(
                success=True,
                action="task_created",
                detail={"task_id": task_id}
            )
        except Exception as e:
            return ActionResult(success=False, error=str(e))


class WebhookAction(ActionExecutor):
    """
    One-shot POST to a URL from the rule's config.

    No retries here; reliable delivery belongs to the webhook dispatcher.
    """
    action_type = ActionType.WEBHOOK

    def __init__(self, client_factory: Callable[[], httpx.AsyncClient] = default_http_client):
        self.client_factory = client_factory

    async def execute(self, config, data, organization_id=None):
        url = config.get("webhook_url")
        if not url:
            return ActionResult(success=False, error="No webhook_url specified")

        try:
            async with self.client_factory() as client:
                response = await client.post(
                    url,
                    json={"event": "automation_rule_trigger", "data": data}
                )
            return ActionResult(
                success=response.is_success,
                action="webhook_called",
                detail={"status": response.status_code},
                error=None if response.is_success else f"HTTP {response.status_code}"
            )
        except Exception as e:
            return ActionResult(success=False, error=str(e))


class DisableFeatureAction(ActionExecutor):
    action_type = ActionType.DISABLE_FEATURE

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def execute(self, config, data, organization_id=None):
        feature_key = config.get("feature_key")
        if not feature_key:
            return ActionResult(success=False, error="No feature_key specified")

        try:
            async with self.session_factory() as db:
                feature = await self._find_feature(db, feature_key, organization_id)
                if feature is None:
                    return ActionResult(success=False, error="Feature not found")

                await db.execute(
                    update(FeatureConfig)
                    .where(FeatureConfig.id == feature.id)
                    .values(is_enabled=False)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()

            return ActionResult(
                success=True,
                action="feature_disabled",
                detail={"feature": feature_key}
            )
        except Exception as e:
            return ActionResult(success=False, error=str(e))

    async def _find_feature(self, db, feature_key, organization_id):
        # Tenant-specific switch wins over the global one
        if organization_id:
            stmt = select(FeatureConfig).where(
                FeatureConfig.feature_key == feature_key,
                FeatureConfig.organization_id == organization_id
            )
            feature = (await db.execute(stmt)).scalars().first()
            if feature is not None:
                return feature

        stmt = select(FeatureConfig).where(
            FeatureConfig.feature_key == feature_key,
            FeatureConfig.organization_id.is_(None)
        )
        return (await db.execute(stmt)).scalars().first()


class ActionRegistry:
    """Maps an action kind to its executor."""

    def __init__(self, executors: list[ActionExecutor] | None = None):
        self._executors: dict[str, ActionExecutor] = {}
        for executor in executors or []:
            self.register(executor)

    def register(self, executor: ActionExecutor) -> None:
        self._executors[executor.action_type.value] = executor

    def get(self, action_type: str) -> ActionExecutor | None:
        key = action_type.value if isinstance(action_type, ActionType) else action_type
        return self._executors.get(key)

    async def execute(
        self,
        action_type: str,
        config: dict,
        data: dict,
        organization_id: str | None = None
    ) -> ActionResult:
        """Run the executor for action_type; unknown kinds fail for this item only."""
        executor = self.get(action_type)
        if executor is None:
            get_logger(action_type=str(action_type)).warning("unknown_action_type")
            return ActionResult(success=False, error="Unknown action type")
        return await executor.execute(config or {}, data, organization_id=organization_id)


def build_default_registry(
    session_factory=AsyncSessionLocal,
    client_factory: Callable[[], httpx.AsyncClient] = default_http_client,
    email_sender: EmailSender | None = None
) -> ActionRegistry:
    """Registry wired to the application's database and HTTP clients."""
    return ActionRegistry([
        SendEmailAction(email_sender or EmailSender(client_factory=client_factory)),
        SendNotificationAction(session_factory),
        CreateTaskAction(session_factory),
        WebhookAction(client_factory),
        DisableFeatureAction(session_factory),
    ])
