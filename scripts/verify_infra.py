"""Infrastructure verification script.

Starts every Temporal worker in the registry (one per component) in this
process, executes OrchestrateWorkflow for an unknown workflow id, and verifies
that the pipeline manager dispatched the step lookup onto the config-access
queue and mapped its outcome.

The lookup either misses (404, database reachable) or fails (500, database
unreachable or SOURCE_OF_TRUTH_DB_URL unset). Both prove the dispatch pattern
works; nothing is fetched, sent or stored.

Prerequisites:
  - Temporal dev server running: `temporal server start-dev`
    OR Temporal Cloud credentials in .env
  - Dependencies installed: `pip install -e .`

Usage:
  python scripts/verify_infra.py
"""

import asyncio
import logging
import uuid
from contextlib import AsyncExitStack

from dotenv import load_dotenv
from temporalio.worker import Worker

from enrich_pipeline_manager.workflows.orchestrate import OrchestrateWorkflow
from enrich_shared.pipeline_models import EntityRef, OrchestrateRequest, PipelineOutcome
from enrich_shared.task_queues import PIPELINE_MANAGER_QUEUE
from enrich_shared.temporal_client import connect
from enrich_workers.registry import COMPONENTS

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the full verification: start workers, execute workflow, check result."""
    load_dotenv()
    client = await connect()
    logger.info("Connected to Temporal server")

    # In production these are separate services; here we run them as
    # concurrent workers in one process to verify the dispatch pattern.
    async with AsyncExitStack() as stack:
        for name, config in COMPONENTS.items():
            await stack.enter_async_context(
                Worker(
                    client,
                    task_queue=config.task_queue,
                    workflows=config.workflows,
                    activities=config.activities,
                )
            )
            logger.info(f"Worker '{name}' polling {config.task_queue}")

        unknown_step = str(uuid.uuid4())
        result = await client.execute_workflow(
            OrchestrateWorkflow.run,
            OrchestrateRequest(
                companies=[EntityRef(company_id="verify-infra", company_domain="example.com")],
                workflow_id=unknown_step,
            ),
            id=f"verify-infra-{uuid.uuid4()}",
            task_queue=PIPELINE_MANAGER_QUEUE,
        )

        logger.info(f"Workflow result: {result.status_code} {result.message}")

        assert result.outcome == PipelineOutcome.ERROR, f"Unexpected outcome: {result}"
        assert result.status_code in (404, 500), f"Unexpected status: {result.status_code}"

        logger.info("VERIFICATION PASSED — step lookup dispatched across queues")


if __name__ == "__main__":
    asyncio.run(main())
