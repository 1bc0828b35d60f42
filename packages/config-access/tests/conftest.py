"""Test fixtures for Config Access activities.

Provides a MockEngine that mimics the SQLAlchemy async engine, recording the
statements executed and returning canned rows. Activities call
`get_engine(DatabaseTarget.SOURCE_OF_TRUTH)` — we patch it to return the mock.

Fixtures provide workflow rows as the dashboard stores them: a Clay person
profile step with array explosion, and an Apollo provider variant for it.
"""

from __future__ import annotations

from typing import Any

import pytest

STEP_ID = "0f6d2b9e-4c3a-4e1f-9a8b-7c6d5e4f3a21"

# ============================================================================
# Mock SQLAlchemy async engine/connection
# ============================================================================


class MockMappings:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows

    def fetchone(self) -> dict[str, Any] | None:
        return self._rows[0] if self._rows else None


class MockCursorResult:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows

    def mappings(self) -> MockMappings:
        return MockMappings(self._rows)


class MockConnection:
    """Records executed statements; returns queued rows (or raises a queued error)."""

    def __init__(self) -> None:
        self.executed: list[Any] = []
        self._responses: list[list[dict[str, Any]] | Exception] = []

    def queue_response(self, rows: list[dict[str, Any]]) -> None:
        self._responses.append(rows)

    def queue_error(self, error: Exception) -> None:
        self._responses.append(error)

    async def execute(self, stmt: Any, parameters: Any = None) -> MockCursorResult:
        self.executed.append(stmt)
        response = self._responses.pop(0) if self._responses else []
        if isinstance(response, Exception):
            raise response
        return MockCursorResult(response)


class MockEngine:
    def __init__(self) -> None:
        self.connection = MockConnection()

    def begin(self) -> MockEngine:
        return self

    async def __aenter__(self) -> MockConnection:
        return self.connection

    async def __aexit__(self, *args: Any) -> None:
        pass


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_engine() -> MockEngine:
    return MockEngine()


@pytest.fixture
def mock_conn(mock_engine: MockEngine) -> MockConnection:
    return mock_engine.connection


@pytest.fixture
def step_row() -> dict[str, Any]:
    """A db_driven_enrichment_workflows row, nulls and all."""
    return {
        "id": STEP_ID,
        "workflow_slug": "clay-person-profile",
        "title": "Clay person profile",
        "overall_step_number": 4,
        "phase_type": "enrichment",
        "status": "active",
        "source_table_name": "company_people",
        "source_table_company_fk": "hq_target_company_id",
        "source_table_select_columns": "id, hq_target_company_id, linkedin_url",
        "destination_endpoint_url": "https://api.clay.com/v3/sources/webhook/abc",
        "destination_type": "clay",
        "receiver_function_url": "https://proj.supabase.co/functions/v1/clay-receiver-v1",
        "destination_table_name": "person_profiles",
        "destination_field_mappings": {"name": "full_name", "linkedin_url": "linkedin_url"},
        "destination_insert_mode": None,
        "destination_on_conflict": None,
        "array_field_configs": [
            {
                "source_array_field": "experience",
                "destination_table": "person_experience",
                "parent_fk_field": "person_profile_id",
                "field_mappings": {"company": "company_name"},
            }
        ],
        "source_record_array_field": None,
        "raw_payload_table_name": "person_raw_payloads",
        "raw_payload_field": None,
        "storage_worker_function_url": "https://gateway.example.com/store",
        "global_logger_function_url": None,
    }


@pytest.fixture
def variant_row() -> dict[str, Any]:
    return {
        "id": "a1b2c3d4-0000-4000-8000-000000000001",
        "workflow_id": STEP_ID,
        "enrichment_provider": "apollo",
        "destination_table_name": "apollo_person_profiles",
        "destination_field_mappings": {"name": "full_name"},
        "array_field_configs": None,
        "raw_payload_table_name": None,
        "raw_payload_field": "apollo_raw_payload",
    }
