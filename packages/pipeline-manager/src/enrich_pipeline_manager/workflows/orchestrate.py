"""OrchestrateWorkflow: Config Access → Data Access → Dispatch Engine.

Runs the Orchestrator state machine for one pipeline hop. Each operation the
state machine needs is an activity on the owning component's queue:

1. Config Access (config-access-queue): select the step
2. Data Access (data-access-queue): gather records, open the batch
3. Dispatch Engine (dispatch-engine-queue): send the records

The workflow runs on pipeline-manager-queue. It is started twice per hop: by
the gateway for an external trigger, and by the storage worker as the
continuation after a result is stored. Continuations use the workflow id
`pipeline-{company_id}-after-step-{N}`, so Temporal refuses a second
continuation for the same entity and step while the first is still running.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from enrich_config_access.activities import find_next_step, lookup_step
    from enrich_data_access.activities import gather_step_records, open_batch
    from enrich_dispatch_engine.activities import dispatch_records
    from enrich_pipeline_manager.orchestrator import Orchestrator, PipelineOperations
    from enrich_shared.pipeline_models import OrchestrateRequest, OrchestrateResult
    from enrich_shared.task_queues import (
        CONFIG_ACCESS_QUEUE,
        DATA_ACCESS_QUEUE,
        DISPATCH_ENGINE_QUEUE,
    )


def continuation_workflow_id(company_id: str, step_number: int) -> str:
    return f"pipeline-{company_id}-after-step-{step_number}"


@workflow.defn
class OrchestrateWorkflow:
    """Advances a set of entities one pipeline step across three worker queues."""

    def _operations(self) -> PipelineOperations:
        async def run_lookup_step(request):
            return await workflow.execute_activity(
                lookup_step,
                request,
                task_queue=CONFIG_ACCESS_QUEUE,
                start_to_close_timeout=timedelta(seconds=30),
            )

        async def run_find_next_step(request):
            return await workflow.execute_activity(
                find_next_step,
                request,
                task_queue=CONFIG_ACCESS_QUEUE,
                start_to_close_timeout=timedelta(seconds=30),
            )

        async def run_gather_step_records(request):
            return await workflow.execute_activity(
                gather_step_records,
                request,
                task_queue=DATA_ACCESS_QUEUE,
                start_to_close_timeout=timedelta(minutes=2),
            )

        async def run_open_batch(request):
            return await workflow.execute_activity(
                open_batch,
                request,
                task_queue=DATA_ACCESS_QUEUE,
                start_to_close_timeout=timedelta(seconds=30),
            )

        async def run_dispatch_records(request):
            # A single attempt: retrying would re-send records that already landed.
            return await workflow.execute_activity(
                dispatch_records,
                request,
                task_queue=DISPATCH_ENGINE_QUEUE,
                start_to_close_timeout=timedelta(hours=1),
                heartbeat_timeout=timedelta(minutes=2),
                retry_policy=RetryPolicy(maximum_attempts=1),
            )

        return PipelineOperations(
            lookup_step=run_lookup_step,
            find_next_step=run_find_next_step,
            gather_step_records=run_gather_step_records,
            open_batch=run_open_batch,
            dispatch_records=run_dispatch_records,
        )

    @workflow.run
    async def run(self, request: OrchestrateRequest) -> OrchestrateResult:
        orchestrator = Orchestrator(self._operations(), log=workflow.logger)
        result = await orchestrator.run(request)
        workflow.logger.info(
            f"Orchestration finished: {result.outcome} "
            f"({' → '.join(orchestrator.history)})"
        )
        return result
