"""Tests for the HTTP gateway.

Each endpoint's collaborator (activity, router, worker, Temporal client) is
patched at the routes module boundary; the tests assert the HTTP contract:
status codes, error bodies and what was passed through.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from enrich_gateway.app import create_app
from enrich_shared.errors import ConfigurationError, NotFoundError, StorageFailure
from enrich_shared.pipeline_models import (
    GatherRecordsResult,
    LogResultResult,
    OrchestrateResult,
    PipelineOutcome,
    RecordAttemptResult,
    RecordKind,
)
from enrich_shared.task_queues import PIPELINE_MANAGER_QUEUE

STEP_ID = "0f6d2b9e-4c3a-4e1f-9a8b-7c6d5e4f3a21"
COMPANIES = [{"company_id": "c-101", "company_name": "Acme", "company_domain": "acme.io"}]


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


def _temporal(execute_workflow: AsyncMock) -> AsyncMock:
    temporal = MagicMock()
    temporal.execute_workflow = execute_workflow
    return AsyncMock(return_value=temporal)


# ============================================================================
# /health and CORS
# ============================================================================


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_cors_preflight(client):
    response = client.options(
        "/receive",
        headers={
            "Origin": "https://dashboard.example.com",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


# ============================================================================
# /orchestrate
# ============================================================================


class TestOrchestrate:
    def test_runs_workflow_and_mirrors_status(self, client):
        execute = AsyncMock(
            return_value=OrchestrateResult(
                success=True,
                message="Dispatched 2 of 2 records",
                outcome=PipelineOutcome.DONE,
                workflow_slug="clay-person-profile",
                records_found=2,
                success_count=2,
            )
        )

        with patch("enrich_gateway.routes.get_client", _temporal(execute)):
            response = client.post(
                "/orchestrate",
                json={"companies": COMPANIES, "workflow": {"id": STEP_ID}},
            )

        assert response.status_code == 200
        assert response.json()["success_count"] == 2
        request = execute.await_args.args[1]
        assert request.workflow_id == STEP_ID
        assert request.companies[0].company_id == "c-101"
        assert execute.await_args.kwargs["task_queue"] == PIPELINE_MANAGER_QUEUE
        assert execute.await_args.kwargs["id"].startswith("orchestrate-")

    def test_error_outcome_status(self, client):
        execute = AsyncMock(
            return_value=OrchestrateResult(
                success=False,
                message="No active workflows found",
                outcome=PipelineOutcome.ERROR,
                status_code=404,
            )
        )

        with patch("enrich_gateway.routes.get_client", _temporal(execute)):
            response = client.post(
                "/orchestrate", json={"companies": COMPANIES, "last_completed_step": 0}
            )

        assert response.status_code == 404
        assert response.json()["outcome"] == "error"

    def test_temporal_unreachable(self, client):
        with patch(
            "enrich_gateway.routes.get_client",
            AsyncMock(side_effect=RuntimeError("connection refused")),
        ):
            response = client.post("/orchestrate", json={"companies": COMPANIES})

        assert response.status_code == 500
        assert "connection refused" in response.json()["error"]

    def test_missing_companies_is_400(self, client):
        response = client.post("/orchestrate", json={"workflow": {"id": STEP_ID}})

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "companies"


# ============================================================================
# /fetch
# ============================================================================


class TestFetch:
    BODY = {
        "companies": COMPANIES,
        "workflow_config": {
            "id": STEP_ID,
            "workflow_slug": "clay-person-profile",
            "source_table_name": "company_people",
            "source_table_company_fk": "hq_target_company_id",
        },
    }

    def test_returns_records(self, client):
        gather = AsyncMock(
            return_value=GatherRecordsResult(
                success=True,
                message="Found 1 records",
                kind=RecordKind.SOURCE_RECORDS,
                records=[{"id": "p-1"}],
                record_count=1,
            )
        )

        with patch("enrich_gateway.routes.gather_step_records", gather):
            response = client.post("/fetch", json=self.BODY)

        assert response.status_code == 200
        assert response.json()["records"] == [{"id": "p-1"}]
        assert gather.await_args.args[0].step.source_table_name == "company_people"

    def test_failure_is_500(self, client):
        gather = AsyncMock(
            return_value=GatherRecordsResult(
                success=False,
                message="Fetch from company_people failed",
                source_table="company_people",
            )
        )

        with patch("enrich_gateway.routes.gather_step_records", gather):
            response = client.post("/fetch", json=self.BODY)

        assert response.status_code == 500
        assert response.json()["source_table"] == "company_people"

    def test_unsafe_table_name_rejected(self, client):
        body = {**self.BODY, "workflow_config": {**self.BODY["workflow_config"]}}
        body["workflow_config"]["source_table_name"] = "people; drop table x"

        assert client.post("/fetch", json=body).status_code == 400


# ============================================================================
# /receive and /store
# ============================================================================


class TestCallbacks:
    def test_receive_passes_raw_body(self, client):
        route = AsyncMock(return_value=(207, {"routed": True, "success_count": 1}))

        with patch("enrich_gateway.routes.route", route):
            response = client.post("/receive", content=b'{"workflow_id": "w-1"}')

        assert response.status_code == 207
        assert route.await_args.args[0] == b'{"workflow_id": "w-1"}'

    def test_receive_pipeline_error_becomes_json(self, client):
        route = AsyncMock(
            side_effect=ConfigurationError(
                "No storage_worker_function_url configured for this workflow",
                workflow_id="w-1",
            )
        )

        with patch("enrich_gateway.routes.route", route):
            response = client.post("/receive", content=b'{"workflow_id": "w-1"}')

        assert response.status_code == 400
        assert response.json() == {
            "error": "No storage_worker_function_url configured for this workflow",
            "workflow_id": "w-1",
        }

    def test_store(self, client):
        store = AsyncMock(return_value={"success": True, "record_id": "profile-1"})

        with patch("enrich_gateway.routes.store", store):
            response = client.post("/store", json={"workflow_id": STEP_ID, "name": "Jane"})

        assert response.status_code == 200
        assert response.json()["record_id"] == "profile-1"
        assert store.await_args.args[0] == {"workflow_id": STEP_ID, "name": "Jane"}

    def test_store_invalid_json(self, client):
        response = client.post("/store", content=b"not json")

        assert response.status_code == 400
        assert "Invalid JSON" in response.json()["error"]

    def test_store_without_entity_is_400(self, client):
        lookup = AsyncMock()

        with patch("enrich_storage_engine.worker.lookup_step", lookup):
            response = client.post(
                "/store",
                json={"workflow_id": STEP_ID, "linkedin_person_raw_payload": {"name": "x"}},
            )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Missing required fields")
        assert response.json()["missing"] == [
            "hq_target_company_id",
            "hq_target_company_domain",
        ]
        lookup.assert_not_awaited()

    @pytest.mark.parametrize(
        "error, status",
        [
            (NotFoundError("Workflow not found"), 404),
            (StorageFailure("Failed to insert into person_profiles"), 500),
        ],
    )
    def test_store_errors(self, client, error, status):
        with patch("enrich_gateway.routes.store", AsyncMock(side_effect=error)):
            response = client.post("/store", json={"workflow_id": STEP_ID})

        assert response.status_code == status
        assert response.json()["error"] == error.message


# ============================================================================
# /log and batches
# ============================================================================


class TestLog:
    def test_logs_result(self, client):
        log = AsyncMock(
            return_value=LogResultResult(
                success=True, message="ok", log_id="l-1", completion_logged=True
            )
        )

        with patch("enrich_gateway.routes.log_result", log):
            response = client.post(
                "/log",
                json={
                    "company_id": "c-101",
                    "company_domain": "acme.io",
                    "workflow_slug": "clay-person-profile",
                    "status": "success",
                    "result_table": "person_profiles",
                },
            )

        assert response.status_code == 200
        assert response.json()["completion_logged"] is True
        assert log.await_args.args[0].result_table == "person_profiles"

    @pytest.mark.parametrize("missing", ["company_id", "company_domain", "workflow_slug"])
    def test_required_fields(self, client, missing):
        body = {"company_id": "c-101", "company_domain": "acme.io", "workflow_slug": "s"}
        del body[missing]

        response = client.post("/log", json=body)

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == missing


class TestBatchAttempts:
    def test_counts_attempt(self, client):
        attempt = AsyncMock(
            return_value=RecordAttemptResult(
                success=True,
                message="Batch 3/3",
                batch_id="b-1",
                records_received=3,
                records_sent=3,
                completed=True,
            )
        )

        with patch("enrich_gateway.routes.record_attempt", attempt):
            response = client.post("/batches/b-1/attempts", json={"succeeded": False})

        assert response.status_code == 200
        assert response.json()["completed"] is True
        request = attempt.await_args.args[0]
        assert request.batch_id == "b-1"
        assert request.succeeded is False

    def test_unknown_batch(self, client):
        attempt = AsyncMock(
            return_value=RecordAttemptResult(
                success=False, message="Batch not found: b-9", batch_id="b-9"
            )
        )

        with patch("enrich_gateway.routes.record_attempt", attempt):
            response = client.post("/batches/b-9/attempts", json={})

        assert response.status_code == 404
