"""Test fixtures for Data Access activities.

Provides a MockEngine/MockConnection that mimics SQLAlchemy async engine behavior,
recording executed SQL and returning canned results. Activities use
`get_engine(target).begin()` — we mock `get_engine` to return our MockEngine.

Fixtures provide realistic enrichment data: target companies, a people-search
source table, and a Clay person-profile step.
"""

from __future__ import annotations

import uuid
from typing import Any

import pytest

from enrich_shared.pipeline_models import EntityRef
from enrich_shared.workflow_models import WorkflowStep

# ============================================================================
# Mock SQLAlchemy async engine/connection
# ============================================================================


class MockCursorResult:
    """Mimics SQLAlchemy CursorResult."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self._rows = rows or []
        self.rowcount = len(self._rows)

    def scalar(self) -> Any | None:
        if self._rows:
            return next(iter(self._rows[0].values()))
        return None

    def mappings(self) -> MockMappings:
        return MockMappings(self._rows)


class MockMappings:
    """Mimics result.mappings() for dict-like row access."""

    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows

    def fetchone(self) -> dict[str, Any] | None:
        return self._rows[0] if self._rows else None

    def all(self) -> list[dict[str, Any]]:
        return self._rows


class MockConnection:
    """Mimics AsyncConnection with execute() recording."""

    def __init__(self) -> None:
        self.executed: list[Any] = []
        self._responses: list[MockCursorResult | Exception] = []

    def queue_response(self, rows: list[dict[str, Any]]) -> None:
        """Queue a response for the next execute() call."""
        self._responses.append(MockCursorResult(rows))

    def queue_error(self, error: Exception) -> None:
        """Make the next execute() call raise."""
        self._responses.append(error)

    async def execute(self, stmt: Any, parameters: Any = None) -> MockCursorResult:
        self.executed.append(stmt)
        if self._responses:
            response = self._responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return MockCursorResult()


class MockEngine:
    """Mimics AsyncEngine with begin() context manager."""

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
    """Provide a MockEngine that records SQL calls."""
    return MockEngine()


@pytest.fixture
def mock_conn(mock_engine: MockEngine) -> MockConnection:
    """Shortcut to the connection for queueing responses."""
    return mock_engine.connection


@pytest.fixture
def companies() -> list[EntityRef]:
    return [
        EntityRef(
            company_id="c-101",
            company_name="Acme Analytics",
            company_domain="acme.io",
            company_linkedin_url="https://www.linkedin.com/company/acme-analytics",
        ),
        EntityRef(company_id="c-102", company_name="Globex", company_domain="globex.com"),
    ]


@pytest.fixture
def people_search_step() -> WorkflowStep:
    """A step that reads people found for each company and sends them to Clay."""
    return WorkflowStep(
        id=str(uuid.uuid4()),
        workflow_slug="clay-person-profile",
        title="Clay person profile",
        overall_step_number=3,
        status="active",
        source_table_name="company_people",
        source_table_company_fk="hq_target_company_id",
        source_table_select_columns="id, hq_target_company_id, linkedin_url",
        destination_endpoint_url="https://api.clay.com/v3/sources/webhook/abc",
        destination_table_name="person_profiles",
    )


@pytest.fixture
def passthrough_step() -> WorkflowStep:
    """A first step with no source table: the companies are the records."""
    return WorkflowStep(
        id=str(uuid.uuid4()),
        workflow_slug="clean-homepage",
        overall_step_number=1,
        status="active",
        destination_endpoint_url="https://n8n.example.com/webhook/clean-homepage",
    )
