"""Shared test fixtures for Dispatch Engine tests.

Provides pre-built WorkflowStep instances for third-party and internal destinations.
"""

from __future__ import annotations

from typing import Any

import pytest

from enrich_shared.workflow_models import WorkflowStep


@pytest.fixture
def clay_step() -> WorkflowStep:
    return WorkflowStep(
        id="3c1f9a8e-7a47-4a0e-9b8f-2f4d5b6c7d80",
        workflow_slug="clay-person-profile",
        overall_step_number=3,
        status="active",
        source_table_name="company_people",
        source_table_company_fk="hq_target_company_id",
        destination_endpoint_url="https://api.clay.com/v3/sources/webhook/pull-in-data-from-a-webhook-abc",
        receiver_function_url="https://proj.supabase.co/functions/v1/clay-receiver-v1",
    )


@pytest.fixture
def internal_step(clay_step: WorkflowStep) -> WorkflowStep:
    return clay_step.model_copy(
        update={
            "workflow_slug": "clean-homepage",
            "destination_endpoint_url": "https://proj.supabase.co/functions/v1/clean-homepage-v1",
        }
    )


@pytest.fixture
def people_records() -> list[dict[str, Any]]:
    return [
        {"id": "p-1", "hq_target_company_id": "c-101", "linkedin_url": "https://linkedin.com/in/a"},
        {"id": "p-2", "hq_target_company_id": "c-101", "linkedin_url": "https://linkedin.com/in/b"},
        {"id": "p-3", "hq_target_company_id": "c-102", "linkedin_url": "https://linkedin.com/in/c"},
    ]
