"""Shared test fixtures for Storage Engine tests.

Provides a Clay person-profile step (array explosion, raw payload table) and a
realistic callback payload as Clay posts it back.
"""

from __future__ import annotations

from typing import Any

import pytest

from enrich_shared.workflow_models import WorkflowStep

STEP_ID = "0f6d2b9e-4c3a-4e1f-9a8b-7c6d5e4f3a21"


@pytest.fixture
def person_step() -> WorkflowStep:
    return WorkflowStep(
        id=STEP_ID,
        workflow_slug="clay-person-profile",
        title="Clay person profile",
        overall_step_number=4,
        status="active",
        destination_endpoint_url="https://api.clay.com/v3/sources/webhook/abc",
        destination_table_name="person_profiles",
        destination_field_mappings={
            "name": "full_name",
            "headline": "headline",
            "linkedin_url": "linkedin_url",
            "hq_target_company_id": "hq_target_company_id",
        },
        array_field_configs=[
            {
                "source_array_field": "experience",
                "destination_table": "person_experience",
                "parent_fk_field": "person_profile_id",
                "field_mappings": {"company": "company_name", "title": "title"},
            },
        ],
        raw_payload_table_name="person_raw_payloads",
        storage_worker_function_url="https://gateway.example.com/store",
    )


@pytest.fixture
def person_payload() -> dict[str, Any]:
    return {
        "workflow_id": STEP_ID,
        "workflow_slug": "clay-person-profile",
        "source_record_id": "p-1",
        "hq_target_company_id": "c-101",
        "hq_target_company_name": "Acme Analytics",
        "hq_target_company_domain": "acme.io",
        "receiver_function_url": "https://proj.supabase.co/functions/v1/clay-receiver-v1",
        "linkedin_person_raw_payload": {
            "name": "Jane Doe",
            "headline": "VP Sales at Acme",
            "linkedin_url": "https://www.linkedin.com/in/jane-doe",
            "experience": [
                {"company": "Acme Analytics", "title": "VP Sales", "start": "2022-01"},
                {"company": "Initech", "title": "Account Executive", "start": "2018-06"},
                "not-an-object",
            ],
        },
    }
