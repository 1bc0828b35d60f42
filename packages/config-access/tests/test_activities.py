"""Tests for Config Access activities.

Each test patches get_engine() to return MockEngine, queues canned rows, calls
the activity, and asserts the result and the query that was built.

Pattern: unittest.mock.patch("enrich_config_access.activities.get_engine")
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.dialects import postgresql

from enrich_config_access.activities import (
    find_next_step,
    lookup_provider_variant,
    lookup_step,
)
from enrich_shared.errors import MissingCredentialsError
from enrich_shared.pipeline_models import DatabaseTarget
from enrich_shared.workflow_models import (
    FindNextStepRequest,
    LookupProviderVariantRequest,
    LookupStepRequest,
    StepStatus,
)

STEP_ID = "0f6d2b9e-4c3a-4e1f-9a8b-7c6d5e4f3a21"


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _params(stmt) -> dict:
    return stmt.compile(dialect=postgresql.dialect()).params


# ============================================================================
# lookup_step
# ============================================================================


class TestLookupStep:
    async def test_found(self, mock_engine, mock_conn, step_row):
        mock_conn.queue_response([step_row])

        with patch(
            "enrich_config_access.activities.get_engine", return_value=mock_engine
        ) as get_engine:
            result = await lookup_step(LookupStepRequest(workflow_id=STEP_ID))

        get_engine.assert_called_once_with(DatabaseTarget.SOURCE_OF_TRUTH)
        assert result.success
        assert result.found
        assert result.step.workflow_slug == "clay-person-profile"
        assert result.step.status == StepStatus.ACTIVE
        assert result.step.array_field_configs[0].destination_table == "person_experience"
        assert "WHERE db_driven_enrichment_workflows.id =" in _sql(mock_conn.executed[0])

    async def test_not_found_is_a_clean_miss(self, mock_engine, mock_conn):
        mock_conn.queue_response([])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_step(LookupStepRequest(workflow_id=STEP_ID))

        assert result.success
        assert not result.found
        assert result.step is None

    async def test_non_uuid_skips_query(self, mock_engine, mock_conn):
        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_step(LookupStepRequest(workflow_id="clay-person-profile"))

        assert result.success
        assert not result.found
        assert mock_conn.executed == []

    async def test_malformed_row(self, mock_engine, mock_conn, step_row):
        step_row["destination_table_name"] = "person_profiles; drop table x"
        mock_conn.queue_response([step_row])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_step(LookupStepRequest(workflow_id=STEP_ID))

        assert not result.success
        assert result.found
        assert result.step is None
        assert "Malformed workflow config" in result.message

    async def test_database_failure(self, mock_engine, mock_conn):
        mock_conn.queue_error(ConnectionRefusedError("connection refused"))

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_step(LookupStepRequest(workflow_id=STEP_ID))

        assert not result.success
        assert not result.found
        assert "connection refused" in result.message

    async def test_missing_credentials(self):
        with patch(
            "enrich_config_access.activities.get_engine",
            side_effect=MissingCredentialsError(
                "SOURCE_OF_TRUTH_DB_URL environment variable is not set"
            ),
        ):
            result = await lookup_step(LookupStepRequest(workflow_id=STEP_ID))

        assert not result.success
        assert "SOURCE_OF_TRUTH_DB_URL" in result.message


# ============================================================================
# find_next_step
# ============================================================================


class TestFindNextStep:
    async def test_query_filters_and_ordering(self, mock_engine, mock_conn, step_row):
        mock_conn.queue_response([step_row])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await find_next_step(FindNextStepRequest(after_step_number=3))

        assert result.success
        assert result.step.overall_step_number == 4

        stmt = mock_conn.executed[0]
        sql = _sql(stmt)
        assert "db_driven_enrichment_workflows.status =" in sql
        assert "db_driven_enrichment_workflows.overall_step_number >" in sql
        assert "ORDER BY db_driven_enrichment_workflows.overall_step_number ASC" in sql
        assert "LIMIT" in sql
        assert set(_params(stmt).values()) >= {"active", 3, 1}

    async def test_first_step_from_zero(self, mock_engine, mock_conn):
        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            await find_next_step(FindNextStepRequest())

        assert 0 in _params(mock_conn.executed[0]).values()

    async def test_no_step_remaining(self, mock_engine, mock_conn):
        mock_conn.queue_response([])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await find_next_step(FindNextStepRequest(after_step_number=9))

        assert result.success
        assert result.step is None

    async def test_ineligible_row_rejected(self, mock_engine, mock_conn, step_row):
        step_row["status"] = "deprecated"
        mock_conn.queue_response([step_row])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await find_next_step(FindNextStepRequest(after_step_number=3))

        assert not result.success
        assert result.step is None

    async def test_database_failure(self, mock_engine, mock_conn):
        mock_conn.queue_error(TimeoutError("statement timeout"))

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await find_next_step(FindNextStepRequest(after_step_number=3))

        assert not result.success
        assert "statement timeout" in result.message


# ============================================================================
# lookup_provider_variant
# ============================================================================


class TestLookupProviderVariant:
    async def test_variant_found(self, mock_engine, mock_conn, variant_row):
        mock_conn.queue_response([variant_row])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_provider_variant(
                LookupProviderVariantRequest(workflow_id=STEP_ID, enrichment_provider="apollo")
            )

        assert result.success
        assert result.variant.destination_table_name == "apollo_person_profiles"
        assert result.variant.array_field_configs == []
        sql = _sql(mock_conn.executed[0])
        assert "workflow_provider_configs.workflow_id =" in sql
        assert "workflow_provider_configs.enrichment_provider =" in sql

    async def test_no_variant_uses_workflow_config(self, mock_engine, mock_conn):
        mock_conn.queue_response([])

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_provider_variant(
                LookupProviderVariantRequest(workflow_id=STEP_ID, enrichment_provider="clearbit")
            )

        assert result.success
        assert result.variant is None

    async def test_database_failure(self, mock_engine, mock_conn):
        mock_conn.queue_error(OSError("network unreachable"))

        with patch("enrich_config_access.activities.get_engine", return_value=mock_engine):
            result = await lookup_provider_variant(
                LookupProviderVariantRequest(workflow_id=STEP_ID, enrichment_provider="apollo")
            )

        assert not result.success
