"""Orchestrator — advance a set of entities one pipeline step.

States:

  SELECT_STEP ─┬─ explicit workflow id → lookup_step
               └─ otherwise            → find_next_step(last_completed_step or 0)
     │ none left, last_completed_step > 0 → PIPELINE_COMPLETE
     │ none at all                        → ERROR (404)
     │ no destination configured          → NO_DESTINATION
     ▼
  FETCHING ──── gather_step_records        (failure → ERROR 500, zero records → DONE)
     ▼
  DISPATCHING ─ open_batch, dispatch_records (failure → ERROR 500)
     ▼
  DONE

The orchestrator only decides. Every read and send goes through a
PipelineOperations bundle, so the same state machine runs inside
OrchestrateWorkflow (operations = Temporal activities) and in tests
(operations = plain async functions).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from enrich_shared.pipeline_models import (
    DispatchRequest,
    DispatchResult,
    GatherRecordsRequest,
    GatherRecordsResult,
    OpenBatchRequest,
    OpenBatchResult,
    OrchestrateRequest,
    OrchestrateResult,
    PipelineOutcome,
)
from enrich_shared.workflow_models import (
    FindNextStepRequest,
    FindNextStepResult,
    LookupStepRequest,
    LookupStepResult,
    WorkflowStep,
)

NO_DESTINATION_HINT = "Configure destination_endpoint_url to enable this workflow"


class OrchestratorState(StrEnum):
    SELECT_STEP = "select_step"
    NO_DESTINATION = "no_destination"
    FETCHING = "fetching"
    DISPATCHING = "dispatching"
    DONE = "done"
    PIPELINE_COMPLETE = "pipeline_complete"
    ERROR = "error"


TERMINAL_STATES = frozenset({
    OrchestratorState.NO_DESTINATION,
    OrchestratorState.DONE,
    OrchestratorState.PIPELINE_COMPLETE,
    OrchestratorState.ERROR,
})


@dataclass
class PipelineOperations:
    """The five calls the orchestrator needs from the rest of the system."""

    lookup_step: Callable[[LookupStepRequest], Awaitable[LookupStepResult]]
    find_next_step: Callable[[FindNextStepRequest], Awaitable[FindNextStepResult]]
    gather_step_records: Callable[[GatherRecordsRequest], Awaitable[GatherRecordsResult]]
    open_batch: Callable[[OpenBatchRequest], Awaitable[OpenBatchResult]]
    dispatch_records: Callable[[DispatchRequest], Awaitable[DispatchResult]]


class Orchestrator:
    """One run of the pipeline state machine. Not reusable across runs."""

    def __init__(self, ops: PipelineOperations, log: Any = None) -> None:
        self.ops = ops
        self.log = log or logging.getLogger(__name__)
        self.state = OrchestratorState.SELECT_STEP
        self.history: list[OrchestratorState] = [self.state]

    def _enter(self, state: OrchestratorState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Orchestrator already finished in state {self.state}")
        self.state = state
        self.history.append(state)

    def _finish(self, state: OrchestratorState, **fields: Any) -> OrchestrateResult:
        self._enter(state)
        outcome = {
            OrchestratorState.NO_DESTINATION: PipelineOutcome.NO_DESTINATION,
            OrchestratorState.DONE: PipelineOutcome.DONE,
            OrchestratorState.PIPELINE_COMPLETE: PipelineOutcome.PIPELINE_COMPLETE,
            OrchestratorState.ERROR: PipelineOutcome.ERROR,
        }[state]
        success = state != OrchestratorState.ERROR
        return OrchestrateResult(success=success, outcome=outcome, **fields)

    @staticmethod
    def _step_fields(step: WorkflowStep) -> dict[str, Any]:
        return {
            "workflow_id": step.id,
            "workflow_slug": step.workflow_slug,
            "step_number": step.overall_step_number,
            "phase_type": step.phase_type,
        }

    async def run(self, request: OrchestrateRequest) -> OrchestrateResult:
        companies_received = len(request.companies)
        if not request.companies:
            return self._finish(
                OrchestratorState.ERROR,
                status_code=400,
                message="companies array is required and must not be empty",
            )

        # -- SELECT_STEP --
        step, failure = await self._select_step(request)
        if failure is not None:
            return failure
        if step is None:
            self.log.info(
                f"Pipeline complete after step {request.last_completed_step} "
                f"for {companies_received} companies"
            )
            return self._finish(
                OrchestratorState.PIPELINE_COMPLETE,
                message="Pipeline complete",
                last_completed_step=request.last_completed_step,
                companies_received=companies_received,
            )

        step_fields = self._step_fields(step)

        if not step.destination_endpoint_url:
            return self._finish(
                OrchestratorState.NO_DESTINATION,
                message=f"Workflow '{step.workflow_slug}' has no destination configured",
                hint=NO_DESTINATION_HINT,
                companies_received=companies_received,
                **step_fields,
            )

        # -- FETCHING --
        self._enter(OrchestratorState.FETCHING)
        gathered = await self.ops.gather_step_records(
            GatherRecordsRequest(step=step, companies=request.companies)
        )
        if not gathered.success:
            self.log.error(f"Fetch for {step.workflow_slug} failed: {gathered.message}")
            return self._finish(
                OrchestratorState.ERROR,
                status_code=500,
                message=gathered.message,
                source_table=gathered.source_table,
                company_fk=gathered.company_fk,
                companies_received=companies_received,
                **step_fields,
            )

        if gathered.record_count == 0:
            return self._finish(
                OrchestratorState.DONE,
                message=f"No records found for {step.workflow_slug}",
                source_table=gathered.source_table,
                destination_url=step.destination_endpoint_url,
                companies_received=companies_received,
                **step_fields,
            )

        # -- DISPATCHING --
        self._enter(OrchestratorState.DISPATCHING)
        batch_id = await self._open_batch(step, gathered.record_count)
        dispatched = await self.ops.dispatch_records(
            DispatchRequest(step=step, records=gathered.records, batch_id=batch_id)
        )
        if not dispatched.success:
            return self._finish(
                OrchestratorState.ERROR,
                status_code=500,
                message=dispatched.message,
                source_table=gathered.source_table,
                destination_url=step.destination_endpoint_url,
                batch_id=batch_id,
                companies_received=companies_received,
                records_found=gathered.record_count,
                **step_fields,
            )

        self.log.info(
            f"{step.workflow_slug}: {dispatched.success_count} sent, "
            f"{dispatched.fail_count} failed"
        )
        return self._finish(
            OrchestratorState.DONE,
            message=dispatched.message,
            source_table=gathered.source_table,
            destination_url=dispatched.destination_url,
            batch_id=batch_id,
            companies_received=companies_received,
            records_found=dispatched.records_found,
            success_count=dispatched.success_count,
            fail_count=dispatched.fail_count,
            results=dispatched.results,
            **step_fields,
        )

    async def _select_step(
        self, request: OrchestrateRequest
    ) -> tuple[WorkflowStep | None, OrchestrateResult | None]:
        """Resolve the target step. Returns (step, None), (None, None) or (None, failure)."""
        if request.workflow_id:
            found = await self.ops.lookup_step(LookupStepRequest(workflow_id=request.workflow_id))
            if found.success and not found.found:
                return None, self._finish(
                    OrchestratorState.ERROR,
                    status_code=404,
                    message=found.message,
                    workflow_id=request.workflow_id,
                )
            if not found.success:
                return None, self._finish(
                    OrchestratorState.ERROR,
                    status_code=400 if found.found else 500,
                    message=found.message,
                    workflow_id=request.workflow_id,
                )
            return found.step, None

        after = request.last_completed_step or 0
        next_step = await self.ops.find_next_step(FindNextStepRequest(after_step_number=after))
        if not next_step.success:
            return None, self._finish(
                OrchestratorState.ERROR, status_code=500, message=next_step.message
            )
        if next_step.step is not None:
            return next_step.step, None
        if after > 0:
            return None, None
        return None, self._finish(
            OrchestratorState.ERROR, status_code=404, message="No active workflows found"
        )

    async def _open_batch(self, step: WorkflowStep, records_sent: int) -> str | None:
        """Open the batch for this dispatch. A tracking failure never blocks the send."""
        opened = await self.ops.open_batch(
            OpenBatchRequest(
                step_number=step.overall_step_number,
                step_name=step.title or step.workflow_slug,
                play_name=step.workflow_slug,
                provider=step.destination_type,
                records_sent=records_sent,
            )
        )
        if not opened.success:
            self.log.warning(
                f"Batch tracking unavailable for {step.workflow_slug}: {opened.message}"
            )
            return None
        return opened.batch_id
