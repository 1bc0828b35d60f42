"""Gateway routes — one endpoint per pipeline role.

  POST /orchestrate                   run one pipeline hop (Temporal workflow)
  POST /fetch                         records eligible for a step
  POST /receive                       provider callback → storage worker
  POST /store                         store one callback payload
  POST /log                           append one outcome to the results log
  POST /batches/{batch_id}/attempts   count one callback against a batch
  GET  /health                        liveness

/fetch, /log and the batch endpoint call the data-access activities directly;
they are plain async functions and need no worker to run in-process.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from enrich_data_access.activities import gather_step_records, log_result, record_attempt
from enrich_pipeline_manager.workflows.orchestrate import OrchestrateWorkflow
from enrich_shared.pipeline_models import (
    EntityRef,
    GatherRecordsRequest,
    LogResultRequest,
    OrchestrateRequest,
    RecordAttemptRequest,
)
from enrich_shared.task_queues import PIPELINE_MANAGER_QUEUE
from enrich_shared.temporal_client import get_client
from enrich_shared.workflow_models import WorkflowStep
from enrich_storage_engine.router import parse_body, route
from enrich_storage_engine.worker import store

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request bodies
# ============================================================================


class WorkflowRef(BaseModel):
    id: str


class OrchestrateBody(BaseModel):
    companies: list[EntityRef]
    workflow: WorkflowRef | None = None
    last_completed_step: int | None = None


class FetchBody(BaseModel):
    companies: list[EntityRef]
    workflow_config: WorkflowStep


class AttemptBody(BaseModel):
    succeeded: bool = True


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/health")
async def health():
    return {"status": "healthy"}


@router.post("/orchestrate")
async def orchestrate(body: OrchestrateBody) -> JSONResponse:
    """Run one hop and wait for it: select, fetch, dispatch."""
    request = OrchestrateRequest(
        companies=body.companies,
        workflow_id=body.workflow.id if body.workflow else None,
        last_completed_step=body.last_completed_step,
    )
    workflow_id = f"orchestrate-{uuid.uuid4().hex[:12]}"
    try:
        client = await get_client()
        result = await client.execute_workflow(
            OrchestrateWorkflow.run,
            request,
            id=workflow_id,
            task_queue=PIPELINE_MANAGER_QUEUE,
        )
    except Exception as e:
        logger.error(f"Orchestration {workflow_id} failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": f"Orchestration failed: {e}", "temporal_workflow_id": workflow_id},
        )

    return JSONResponse(status_code=result.status_code, content=result.model_dump(mode="json"))


@router.post("/fetch")
async def fetch(body: FetchBody) -> JSONResponse:
    result = await gather_step_records(
        GatherRecordsRequest(step=body.workflow_config, companies=body.companies)
    )
    status = 200 if result.success else 500
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))


@router.post("/receive")
async def receive(request: Request) -> JSONResponse:
    status, content = await route(await request.body())
    return JSONResponse(status_code=status, content=content)


@router.post("/store")
async def store_callback(request: Request) -> JSONResponse:
    payload = parse_body(await request.body())
    return JSONResponse(status_code=200, content=await store(payload))


@router.post("/log")
async def log(body: LogResultRequest) -> JSONResponse:
    result = await log_result(body)
    status = 200 if result.success else 500
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))


@router.post("/batches/{batch_id}/attempts")
async def batch_attempt(batch_id: str, body: AttemptBody = AttemptBody()) -> JSONResponse:
    result = await record_attempt(
        RecordAttemptRequest(batch_id=batch_id, succeeded=body.succeeded)
    )
    if result.success:
        status = 200
    elif result.message.startswith("Batch not found"):
        status = 404
    else:
        status = 500
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))
