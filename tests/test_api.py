"""End-to-end tests for the HTTP API."""
import httpx
import pytest
import pytest_asyncio

from eventcore.database import get_db
from eventcore.dependencies.services import get_dispatcher, get_event_service, get_rule_engine
from eventcore.main import app
from eventcore.services.action_service import build_default_registry
from eventcore.services.event_service import EventService
from eventcore.services.rule_engine import RuleEngine
from eventcore.services.webhook_service import WebhookDispatcher

from helpers import FakeEndpoint, mint_token


def auth(org, role="admin"):
    token = mint_token("user-1", org.id, role, f"{role}@{org.domain}")
    return {"Authorization": f"Bearer {token}"}


RULE = {
    "rule_name": "Budget alert",
    "trigger_type": "budget_threshold",
    "trigger_config": {"threshold": 100},
    "action_type": "create_task",
    "action_config": {"task_title": "Budget at {value}"},
    "cooldown_minutes": 60,
}

SUBSCRIPTION = {
    "url": "https://hooks.example.com/payments",
    "secret": "s3cret",
    "events": ["payment.completed"],
    "max_retries": 2,
    "retry_delay": 1,
}


@pytest.fixture
def endpoint():
    return FakeEndpoint(200)


@pytest_asyncio.fixture
async def client(session_factory, endpoint, sleep, clock):
    rule_engine = RuleEngine(
        session_factory,
        build_default_registry(session_factory, client_factory=endpoint.client_factory()),
        clock=clock
    )
    dispatcher = WebhookDispatcher(
        session_factory, client_factory=endpoint.client_factory(), sleep=sleep, clock=clock
    )

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_rule_engine] = lambda: rule_engine
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_event_service] = lambda: EventService(rule_engine, dispatcher)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
class TestHealth:
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    async def test_health_checks_database(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}

    async def test_health_reports_unreachable_database(self, client):
        class UnreachableSession:
            async def execute(self, statement):
                raise ConnectionRefusedError("database down")

        async def broken_db():
            yield UnreachableSession()

        app.dependency_overrides[get_db] = broken_db

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["database"] == "unavailable"

    async def test_metrics(self, client):
        await client.get("/health")
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "eventcore_http_requests_total" in response.text


@pytest.mark.asyncio
class TestRulesApi:
    async def test_crud(self, client, org):
        created = await client.post("/api/rules/", json=RULE, headers=auth(org))
        assert created.status_code == 201
        rule = created.json()
        assert rule["organization_id"] == org.id
        assert rule["execution_count"] == 0

        listed = await client.get("/api/rules/", headers=auth(org, "member"))
        assert [r["id"] for r in listed.json()] == [rule["id"]]

        patched = await client.patch(
            f"/api/rules/{rule['id']}", json={"is_active": False}, headers=auth(org)
        )
        assert patched.json()["is_active"] is False
        assert patched.json()["rule_name"] == "Budget alert"

        deleted = await client.delete(f"/api/rules/{rule['id']}", headers=auth(org))
        assert deleted.status_code == 200
        missing = await client.get(f"/api/rules/{rule['id']}", headers=auth(org))
        assert missing.status_code == 404

    async def test_unknown_action_type_is_rejected(self, client, org):
        response = await client.post(
            "/api/rules/", json={**RULE, "action_type": "launch_rocket"}, headers=auth(org)
        )
        assert response.status_code == 422

    async def test_negative_cooldown_is_rejected(self, client, org):
        response = await client.post(
            "/api/rules/", json={**RULE, "cooldown_minutes": -1}, headers=auth(org)
        )
        assert response.status_code == 422

    async def test_members_cannot_create_rules(self, client, org):
        response = await client.post("/api/rules/", json=RULE, headers=auth(org, "member"))
        assert response.status_code == 403

    async def test_token_required(self, client):
        response = await client.get("/api/rules/")
        assert response.status_code in (401, 403)

    async def test_invalid_token(self, client):
        response = await client.get("/api/rules/", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_rules_are_tenant_scoped(self, client, org, other_org):
        created = await client.post("/api/rules/", json=RULE, headers=auth(other_org))
        response = await client.get(f"/api/rules/{created.json()['id']}", headers=auth(org))
        assert response.status_code == 404


@pytest.mark.asyncio
class TestWebhooksApi:
    async def test_secret_is_never_returned(self, client, org):
        created = await client.post("/api/webhooks/subscriptions", json=SUBSCRIPTION, headers=auth(org))
        assert created.status_code == 201
        assert "secret" not in created.json()

        listed = await client.get("/api/webhooks/subscriptions", headers=auth(org))
        assert all("secret" not in s for s in listed.json())

    async def test_invalid_subscription_is_rejected(self, client, org):
        for bad in ({"url": "not a url"}, {"events": []}, {"secret": ""}, {"max_retries": 0}):
            response = await client.post(
                "/api/webhooks/subscriptions", json={**SUBSCRIPTION, **bad}, headers=auth(org)
            )
            assert response.status_code == 422, bad

    async def test_trigger_delivers_and_logs(self, client, org, endpoint):
        created = await client.post("/api/webhooks/subscriptions", json=SUBSCRIPTION, headers=auth(org))
        webhook_id = created.json()["id"]

        response = await client.post(
            "/api/webhooks/trigger",
            json={"organization_id": org.id, "event_type": "payment.completed", "payload": {"amount": 100}},
            headers=auth(org, "member")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["triggered"] == 1
        assert body["results"][0]["success"] is True
        assert len(endpoint.requests) == 1

        history = await client.get(f"/api/webhooks/subscriptions/{webhook_id}/deliveries", headers=auth(org))
        [attempt] = history.json()
        assert attempt["attempt"] == 1
        assert attempt["status_code"] == 200
        assert attempt["is_test"] is False

    async def test_trigger_requires_payload(self, client, org):
        response = await client.post(
            "/api/webhooks/trigger",
            json={"organization_id": org.id, "event_type": "payment.completed"},
            headers=auth(org)
        )
        assert response.status_code == 422

    async def test_trigger_for_another_org_is_forbidden(self, client, org, other_org):
        response = await client.post(
            "/api/webhooks/trigger",
            json={"organization_id": other_org.id, "event_type": "payment.completed", "payload": {}},
            headers=auth(org)
        )
        assert response.status_code == 403

    async def test_test_delivery(self, client, org, endpoint):
        created = await client.post(
            "/api/webhooks/subscriptions", json={**SUBSCRIPTION, "events": ["invoice.created"]}, headers=auth(org)
        )
        webhook_id = created.json()["id"]

        response = await client.post(f"/api/webhooks/subscriptions/{webhook_id}/test", headers=auth(org))

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert endpoint.requests[0].headers["X-Webhook-Event"] == "webhook.test"

        history = await client.get(f"/api/webhooks/subscriptions/{webhook_id}/deliveries", headers=auth(org))
        assert [a["is_test"] for a in history.json()] == [True]

        refreshed = await client.get(f"/api/webhooks/subscriptions/{webhook_id}", headers=auth(org))
        assert refreshed.json()["last_triggered"] is None

    async def test_test_delivery_for_unknown_webhook(self, client, org):
        response = await client.post("/api/webhooks/subscriptions/missing/test", headers=auth(org))
        assert response.status_code == 404

    async def test_update_and_delete(self, client, org):
        created = await client.post("/api/webhooks/subscriptions", json=SUBSCRIPTION, headers=auth(org))
        webhook_id = created.json()["id"]

        patched = await client.patch(
            f"/api/webhooks/subscriptions/{webhook_id}", json={"events": ["*"]}, headers=auth(org)
        )
        assert patched.json()["events"] == ["*"]

        deleted = await client.delete(f"/api/webhooks/subscriptions/{webhook_id}", headers=auth(org))
        assert deleted.json() == {"message": "Webhook removed successfully"}
        again = await client.delete(f"/api/webhooks/subscriptions/{webhook_id}", headers=auth(org))
        assert again.status_code == 404


@pytest.mark.asyncio
class TestEventsApi:
    async def test_event_runs_rules_and_webhooks(self, client, org, endpoint):
        await client.post("/api/rules/", json={**RULE, "trigger_type": "payment.completed"}, headers=auth(org))
        await client.post("/api/webhooks/subscriptions", json=SUBSCRIPTION, headers=auth(org))

        response = await client.post(
            "/api/events",
            json={
                "type": "payment.completed",
                "organization_id": org.id,
                "entity_type": "invoice",
                "entity_id": "inv-7",
                "payload": {"value": 150},
            },
            headers=auth(org, "member")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["errors"] == []
        assert len(body["rules"]) == 1
        assert body["rules"][0]["action_result"]["success"] is True
        assert len(body["deliveries"]) == 1

    async def test_event_requires_payload(self, client, org, endpoint):
        await client.post("/api/webhooks/subscriptions", json=SUBSCRIPTION, headers=auth(org))

        response = await client.post(
            "/api/events",
            json={"type": "payment.completed", "organization_id": org.id},
            headers=auth(org)
        )

        assert response.status_code == 422
        assert endpoint.requests == []

    async def test_event_for_another_org_is_forbidden(self, client, org, other_org):
        response = await client.post(
            "/api/events",
            json={"type": "payment.completed", "organization_id": other_org.id, "payload": {}},
            headers=auth(org)
        )
        assert response.status_code == 403

    async def test_evaluate(self, client, org):
        await client.post("/api/rules/", json=RULE, headers=auth(org))

        response = await client.post(
            "/api/automation/evaluate",
            json={"trigger_type": "budget_threshold", "trigger_data": {"value": 150}},
            headers=auth(org)
        )

        assert response.status_code == 200
        assert response.json()["executed_rules"] == 1

        again = await client.post(
            "/api/automation/evaluate",
            json={"trigger_type": "budget_threshold", "trigger_data": {"value": 150}},
            headers=auth(org)
        )
        assert again.json()["executed_rules"] == 0

    async def test_evaluate_is_admin_only(self, client, org):
        response = await client.post(
            "/api/automation/evaluate",
            json={"trigger_type": "budget_threshold", "trigger_data": {}},
            headers=auth(org, "member")
        )
        assert response.status_code == 403
