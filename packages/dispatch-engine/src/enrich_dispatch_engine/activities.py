"""Dispatch Engine activities — Temporal activity functions for outbound sends.

These run on the dispatch-engine worker (DISPATCH_ENGINE_QUEUE). The Pipeline
Manager's OrchestrateWorkflow dispatches here once records for a step have
been gathered.

One activity:

  dispatch_records — POST each record to the step's destination, fixed delay
                     between sends, per-record outcome collected

The workflow calls this activity with a single attempt. Retrying the whole
activity would re-send records that already reached the destination.
"""

from temporalio import activity

from enrich_dispatch_engine.dispatcher import Dispatcher
from enrich_shared.pipeline_models import DispatchRequest, DispatchResult


@activity.defn
async def dispatch_records(request: DispatchRequest) -> DispatchResult:
    """Send a step's records to its destination and report per-record results."""
    activity.logger.info(
        f"Dispatching {len(request.records)} records for {request.step.workflow_slug} "
        f"to {request.step.destination_endpoint_url}"
    )
    dispatcher = Dispatcher()
    try:
        result = await dispatcher.dispatch(request.step, request.records, request.batch_id)
    except Exception as e:
        return DispatchResult(
            success=False,
            message=f"Dispatch failed: {e}",
            destination_url=request.step.destination_endpoint_url,
            records_found=len(request.records),
        )
    finally:
        await dispatcher.close()

    activity.logger.info(result.message)
    return result
