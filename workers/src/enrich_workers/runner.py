"""Start one Temporal worker for one pipeline component.

Usage:
  enrich-worker <component>
  COMPONENT=data-access enrich-worker

The pipeline runs as one process per component, all from the same install:
pipeline-manager (the orchestrate workflow), config-access and data-access
(the database lookups and writes), and dispatch-engine. The HTTP side is a
separate process, `enrich-gateway`, which the providers call back into.

dispatch-engine always runs in a process of its own. Its activity sleeps out
the send interval for a whole batch, so sharing a worker with the lookups
would starve the orchestrator of activity slots.

Database URLs and the Temporal address come from the environment, with a
local .env file loaded first. The worker runs until SIGINT/SIGTERM.
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from temporalio.worker import Worker

from enrich_shared.temporal_client import connect
from enrich_workers.registry import COMPONENTS

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run_worker(component_name: str) -> None:
    """Start a Temporal worker for the specified component."""
    if component_name not in COMPONENTS:
        available = ", ".join(sorted(COMPONENTS.keys()))
        logger.error(f"Unknown component '{component_name}'. Available: {available}")
        sys.exit(1)

    config = COMPONENTS[component_name]
    client = await connect()

    logger.info(
        f"Starting worker for '{component_name}' on queue '{config.task_queue}' "
        f"(workflows={len(config.workflows)}, activities={len(config.activities)})"
    )

    worker = Worker(
        client,
        task_queue=config.task_queue,
        workflows=config.workflows,
        activities=config.activities,
    )

    await worker.run()


def main() -> None:
    """CLI entrypoint — parse the component name and start the worker.

    Precedence: CLI argument > COMPONENT env var.
    """
    load_dotenv()
    component_name = sys.argv[1] if len(sys.argv) >= 2 else os.environ.get("COMPONENT", "")

    if not component_name:
        print("Usage: enrich-worker <component>")
        print("  or: COMPONENT=<component> enrich-worker")
        print(f"Components: {', '.join(sorted(COMPONENTS.keys()))}")
        sys.exit(1)

    asyncio.run(run_worker(component_name))


if __name__ == "__main__":
    main()
