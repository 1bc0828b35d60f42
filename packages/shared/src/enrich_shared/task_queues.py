"""Task queue name constants for each component.

Every component runs on its own Temporal worker with a dedicated task queue.
The dispatch engine in particular sleeps between sends to honor destination
rate limits, so it must never share a worker with the quick config and data
lookups the pipeline manager depends on.

These constants are the single source of truth for queue names. Both the worker
runner (which starts workers listening on the right queue) and the workflow
definitions (which dispatch activities to the right queue) reference these.
"""

# Manager: runs the orchestration workflow
PIPELINE_MANAGER_QUEUE = "pipeline-manager-queue"

# Engines: business logic activities
DISPATCH_ENGINE_QUEUE = "dispatch-engine-queue"

# Resource Access: storage abstraction activities
CONFIG_ACCESS_QUEUE = "config-access-queue"
DATA_ACCESS_QUEUE = "data-access-queue"
