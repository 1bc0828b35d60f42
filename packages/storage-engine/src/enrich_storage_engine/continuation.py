"""Pipeline continuation — advance one entity to the next step after storage.

Starts OrchestrateWorkflow for a single entity with `last_completed_step` set
to the step that was just stored. The workflow id is derived from the entity
and the step, so Temporal rejects a duplicate while the first is running. A
duplicate counts as continued; the pipeline is already moving.

Best-effort: any other failure is logged and reported as not continued. The
stored row stays stored.
"""

from __future__ import annotations

import logging

from temporalio.exceptions import WorkflowAlreadyStartedError

from enrich_pipeline_manager.workflows.orchestrate import (
    OrchestrateWorkflow,
    continuation_workflow_id,
)
from enrich_shared.pipeline_models import EntityRef, OrchestrateRequest
from enrich_shared.task_queues import PIPELINE_MANAGER_QUEUE
from enrich_shared.temporal_client import get_client

logger = logging.getLogger(__name__)


def entity_from_payload(payload: dict) -> EntityRef | None:
    """The entity a callback belongs to, or None when it carries no company id."""
    company_id = payload.get("hq_target_company_id") or payload.get("company_id")
    if not company_id:
        return None
    return EntityRef(
        company_id=company_id,
        company_name=payload.get("hq_target_company_name") or payload.get("company_name"),
        company_domain=payload.get("hq_target_company_domain") or payload.get("company_domain"),
    )


async def continue_pipeline(company: EntityRef, last_completed_step: int) -> bool:
    """Start the next hop for one entity. Returns whether the pipeline moved on."""
    workflow_id = continuation_workflow_id(company.company_id, last_completed_step)
    try:
        client = await get_client()
        await client.start_workflow(
            OrchestrateWorkflow.run,
            OrchestrateRequest(companies=[company], last_completed_step=last_completed_step),
            id=workflow_id,
            task_queue=PIPELINE_MANAGER_QUEUE,
        )
    except WorkflowAlreadyStartedError:
        logger.info(f"Continuation {workflow_id} already running")
        return True
    except Exception as e:
        logger.error(f"Pipeline continuation {workflow_id} failed: {e}")
        return False

    logger.info(f"Started continuation {workflow_id}")
    return True
