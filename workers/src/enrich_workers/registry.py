"""Component registry: maps component names to their workflows and activities.

This is the central lookup table that the runner uses to determine what to
register on a worker based on the CLI argument. Each component entry specifies:

- task_queue: Which Temporal task queue this worker polls
- workflows: Workflow classes to register (only the Pipeline Manager has these)
- activities: Activity functions to register

The dispatch engine gets a worker of its own: a dispatch call sleeps between
sends for as long as the batch takes, and must not hold slots the quick
config and data lookups need.
"""

from dataclasses import dataclass, field
from typing import Any

from enrich_config_access.activities import find_next_step, lookup_provider_variant, lookup_step
from enrich_data_access.activities import (
    gather_step_records,
    log_result,
    open_batch,
    persist_record,
    record_attempt,
)
from enrich_dispatch_engine.activities import dispatch_records
from enrich_pipeline_manager.workflows.orchestrate import OrchestrateWorkflow
from enrich_shared.task_queues import (
    CONFIG_ACCESS_QUEUE,
    DATA_ACCESS_QUEUE,
    DISPATCH_ENGINE_QUEUE,
    PIPELINE_MANAGER_QUEUE,
)


@dataclass
class ComponentConfig:
    """Configuration for a single component's worker."""

    task_queue: str
    workflows: list[Any] = field(default_factory=list)
    activities: list[Any] = field(default_factory=list)


COMPONENTS: dict[str, ComponentConfig] = {
    "pipeline-manager": ComponentConfig(
        task_queue=PIPELINE_MANAGER_QUEUE,
        workflows=[OrchestrateWorkflow],
    ),
    "dispatch-engine": ComponentConfig(
        task_queue=DISPATCH_ENGINE_QUEUE,
        activities=[dispatch_records],
    ),
    "config-access": ComponentConfig(
        task_queue=CONFIG_ACCESS_QUEUE,
        activities=[lookup_step, find_next_step, lookup_provider_variant],
    ),
    "data-access": ComponentConfig(
        task_queue=DATA_ACCESS_QUEUE,
        activities=[gather_step_records, open_batch, record_attempt, log_result, persist_record],
    ),
}
