"""API endpoint tests running the whole stack over ASGI."""

from typing import Any

import pytest
from helpers import FlakyProvider, add_account
from httpx import AsyncClient

from pipeflow import exceptions

ACCOUNT = {"X-Account-Id": "acct-1"}


def graph_payload(*step_types: str, **node_data: Any) -> dict[str, Any]:
    """Editor-style graph: start -> one node per type -> end."""
    ids = ["start", *[f"n{i}" for i in range(len(step_types))], "end"]
    nodes = [{"id": "start", "type": "start", "data": {"label": "Start"}}]
    nodes += [
        {
            "id": f"n{i}",
            "type": step_type,
            "data": {"providerRef": f"{step_type}-ref", **node_data},
        }
        for i, step_type in enumerate(step_types)
    ]
    nodes.append({"id": "end", "type": "end", "data": {}})
    edges = [
        {"id": f"e{i}", "source": source, "target": target}
        for i, (source, target) in enumerate(zip(ids, ids[1:], strict=False))
    ]
    return {"nodes": nodes, "edges": edges}


async def create_enabled_feature(
    client: AsyncClient, *step_types: str, feature_id: str = "summarize", quota_cost: int = 1
) -> dict[str, Any]:
    response = await client.post(
        "/api/features",
        json={
            "feature_id": feature_id,
            "display_name": feature_id.title(),
            "quota_cost": quota_cost,
            "graph": graph_payload(*step_types),
        },
    )
    assert response.status_code == 201, response.text
    response = await client.patch(f"/api/features/{feature_id}/enabled", json={"enabled": True})
    assert response.status_code == 200
    return response.json()


class TestPipelineEndpoints:
    @pytest.mark.asyncio
    async def test_validate_valid_graph(self, client: AsyncClient):
        response = await client.post("/api/pipelines/validate", json=graph_payload("summarize"))

        assert response.status_code == 200
        assert response.json() == {"valid": True, "errors": [], "warnings": []}

    @pytest.mark.asyncio
    async def test_validate_reports_unreachable_variable(self, client: AsyncClient):
        payload = graph_payload("summarize", inputMapping="Use {{upstream.field}}")

        response = await client.post("/api/pipelines/validate", json=payload)

        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert "upstream.field" in body["errors"][0]

    @pytest.mark.asyncio
    async def test_detect_cycles(self, client: AsyncClient):
        payload = graph_payload("a", "b")
        payload["edges"].append({"source": "n1", "target": "n0"})

        response = await client.post("/api/pipelines/detect-cycles", json=payload)

        body = response.json()
        assert body["is_dag"] is False
        assert body["topological_order"] == ["start"]
        assert set(body["remaining_nodes"]) == {"n0", "n1", "end"}

    @pytest.mark.asyncio
    async def test_linearize_returns_camel_case_steps(self, client: AsyncClient):
        payload = graph_payload("transcribe", "summarize", retryPolicy={"maxRetries": 2})

        response = await client.post("/api/pipelines/linearize", json=payload)

        assert response.status_code == 200
        steps = response.json()
        assert [step["type"] for step in steps] == ["transcribe", "summarize"]
        assert steps[0]["providerRef"] == "transcribe-ref"
        assert steps[0]["retryPolicy"]["maxRetries"] == 2

    @pytest.mark.asyncio
    async def test_linearize_without_start_node(self, client: AsyncClient):
        payload = {"nodes": [{"id": "a", "type": "x", "data": {"providerRef": "r"}}], "edges": []}

        response = await client.post("/api/pipelines/linearize", json=payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_stored_pipeline(self, client: AsyncClient):
        await create_enabled_feature(client, "first")

        response = await client.get("/api/pipelines/summarize@v1")

        assert response.status_code == 200
        assert response.json()["steps"][0]["type"] == "first"

    @pytest.mark.asyncio
    async def test_unknown_pipeline(self, client: AsyncClient):
        response = await client.get("/api/pipelines/missing@v1")
        assert response.status_code == 404


class TestFeatureEndpoints:
    @pytest.mark.asyncio
    async def test_invalid_graph_returns_errors(self, client: AsyncClient):
        payload = graph_payload("a")
        payload["nodes"] = [n for n in payload["nodes"] if n["type"] != "start"]

        response = await client.post(
            "/api/features",
            json={"feature_id": "broken", "display_name": "Broken", "graph": payload},
        )

        assert response.status_code == 422
        assert any("start node" in error for error in response.json()["errors"])

    @pytest.mark.asyncio
    async def test_new_feature_is_disabled(self, client: AsyncClient):
        response = await client.post(
            "/api/features",
            json={"feature_id": "s", "display_name": "S", "graph": graph_payload("first")},
        )

        assert response.status_code == 201
        assert response.json()["is_enabled"] is False
        assert response.json()["pipeline_id"] == "s@v1"

    @pytest.mark.asyncio
    async def test_duplicate_feature_conflicts(self, client: AsyncClient):
        await create_enabled_feature(client, "first")

        response = await client.post(
            "/api/features",
            json={"feature_id": "summarize", "display_name": "S", "graph": graph_payload("first")},
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_replace_pipeline(self, client: AsyncClient):
        await create_enabled_feature(client, "first")

        response = await client.put(
            "/api/features/summarize/pipeline", json=graph_payload("first", "last")
        )

        assert response.status_code == 200
        assert response.json()["pipeline_id"] == "summarize@v2"
        listed = await client.get("/api/features")
        assert [f["feature_id"] for f in listed.json()] == ["summarize"]


class TestTaskFlow:
    @pytest.mark.asyncio
    async def test_task_runs_to_success(self, client: AsyncClient, app, session_factory):
        await add_account(session_factory, balance=5)
        await create_enabled_feature(client, "first", "last", quota_cost=2)

        response = await client.post(
            "/api/tasks", json={"feature_id": "summarize", "input_data": {"text": "hi"}}, headers=ACCOUNT
        )
        assert response.status_code == 202
        task_id = response.json()["id"]
        assert response.json()["status"] == "pending"

        await app.state.pipeline_engine.wait_idle()

        task = (await client.get(f"/api/tasks/{task_id}")).json()
        steps = (await client.get(f"/api/tasks/{task_id}/steps")).json()
        assert task["status"] == "success"
        assert [step["status"] for step in steps] == ["completed", "completed"]
        assert steps[1]["input"] == steps[0]["output"]

        transaction = (await client.get(f"/api/quota/transactions/{task_id}")).json()
        assert transaction["phase"] == "confirmed"
        quota = (await client.get("/api/quota/acct-1")).json()
        assert quota["remaining"] == 3

        listed = (await client.get("/api/tasks", headers=ACCOUNT)).json()
        assert [t["id"] for t in listed] == [task_id]

    @pytest.mark.asyncio
    async def test_failed_task_refunds_quota(self, client: AsyncClient, app, session_factory):
        app.state.provider_registry.register_provider("flaky", FlakyProvider(failures=1))
        await add_account(session_factory, balance=5)
        await create_enabled_feature(client, "first", "flaky", "last")

        response = await client.post(
            "/api/tasks", json={"feature_id": "summarize"}, headers=ACCOUNT
        )
        task_id = response.json()["id"]
        await app.state.pipeline_engine.wait_idle()

        task = (await client.get(f"/api/tasks/{task_id}")).json()
        steps = (await client.get(f"/api/tasks/{task_id}/steps")).json()
        assert task["status"] == "failed"
        assert [step["status"] for step in steps] == ["completed", "failed", "pending"]
        assert (await client.get(f"/api/quota/transactions/{task_id}")).json()["phase"] == "cancelled"
        assert (await client.get("/api/quota/acct-1")).json()["remaining"] == 5

    @pytest.mark.asyncio
    async def test_insufficient_quota_is_forbidden_with_code(
        self, client: AsyncClient, session_factory
    ):
        await add_account(session_factory, balance=1)
        await create_enabled_feature(client, "first", quota_cost=3)

        response = await client.post("/api/tasks", json={"feature_id": "summarize"}, headers=ACCOUNT)

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "QUOTA_INSUFFICIENT"
        assert (body["remaining"], body["requested"]) == (1, 3)
        assert (await client.get("/api/tasks", headers=ACCOUNT)).json() == []

    @pytest.mark.asyncio
    async def test_non_member_is_forbidden(self, client: AsyncClient, session_factory):
        await add_account(session_factory, balance=5, is_member=False)
        await create_enabled_feature(client, "first")

        response = await client.post("/api/tasks", json={"feature_id": "summarize"}, headers=ACCOUNT)

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_MEMBER"

    @pytest.mark.asyncio
    async def test_disabled_feature_conflicts(self, client: AsyncClient, session_factory):
        await add_account(session_factory, balance=5)
        await client.post(
            "/api/features",
            json={"feature_id": "off", "display_name": "Off", "graph": graph_payload("first")},
        )

        response = await client.post("/api/tasks", json={"feature_id": "off"}, headers=ACCOUNT)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_missing_account_header(self, client: AsyncClient):
        response = await client.post("/api/tasks", json={"feature_id": "summarize"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_task(self, client: AsyncClient):
        assert (await client.get("/api/tasks/missing")).status_code == 404
        assert (await client.get("/api/tasks/missing/steps")).status_code == 404


class TestQuotaEndpoints:
    @pytest.mark.asyncio
    async def test_unknown_account(self, client: AsyncClient):
        response = await client.get("/api/quota/nobody")

        assert response.status_code == 404
        assert response.json()["code"] == "ACCOUNT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client: AsyncClient):
        response = await client.get("/api/quota/transactions/missing")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_reconcile_with_nothing_to_settle(self, client: AsyncClient):
        response = await client.post("/api/quota/reconcile")

        assert response.status_code == 200
        assert response.json() == {"cancelled": 0, "confirmed": 0}


# Raised and handled inside a pipeline run; never reach a request handler.
ENGINE_ERRORS = {"PipeflowError", "PipelineError", "PipelineStepError", "StepTimeoutError"}


@pytest.mark.asyncio
async def test_exported_errors_resolve_to_a_handler(app):
    handled = {cls for cls in app.exception_handlers if isinstance(cls, type)}

    for name in exceptions.__all__:
        if name in ENGINE_ERRORS:
            continue
        error = getattr(exceptions, name)
        assert handled & set(error.__mro__), f"{name} has no exception handler"
