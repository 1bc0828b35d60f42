"""Pipeline boundary models — the contract between the Pipeline Manager, the
engines, Data Access and the HTTP gateway.

These types cross the Temporal activity boundary and the HTTP boundary.

Design choices:
  - Source records are `dict[str, Any]`. Their shape is whatever the step's
    `source_table_select_columns` says, so it is unknown at import time.
  - Entity references are passed by value through the whole pipeline and are
    never mutated.
  - All Results extend PlatformResult for consistent success/failure handling.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, field_validator

from enrich_shared.models import PlatformResult
from enrich_shared.workflow_models import InsertMode, WorkflowStep


class DatabaseTarget(StrEnum):
    """Which database a statement runs against.

    SOURCE_OF_TRUTH holds workflow config, batches and logs. WORKSPACE holds
    the enrichment data itself (source tables and destination tables).
    """

    SOURCE_OF_TRUTH = "source-of-truth"
    WORKSPACE = "workspace"


class EntityRef(BaseModel):
    """A company (or person) moving through the pipeline."""

    company_id: str
    company_name: str | None = None
    company_domain: str | None = None
    company_linkedin_url: str | None = None

    @field_validator("company_id", mode="before")
    @classmethod
    def _id_as_string(cls, v: Any) -> str:
        return str(v)


# ============================================================================
# Data Fetcher
# ============================================================================


class RecordKind(StrEnum):
    SOURCE_RECORDS = "source_records"
    COMPANY_DATA = "company_data"


class GatherRecordsRequest(BaseModel):
    """Input for gather_step_records: which records are eligible for a step."""

    step: WorkflowStep
    companies: list[EntityRef]


class GatherRecordsResult(PlatformResult):
    """Result of gather_step_records."""

    kind: RecordKind | None = None
    workflow_slug: str = ""
    source_table: str | None = None
    company_fk: str | None = None
    records: list[dict[str, Any]] = []
    record_count: int = 0


# ============================================================================
# Dispatcher
# ============================================================================


class RecordDispatchResult(BaseModel):
    """Outcome of sending one record to the destination."""

    record_id: str
    success: bool
    error: str | None = None
    status_code: int | None = None


class DispatchRequest(BaseModel):
    """Input for dispatch_records: send each record to the step's destination."""

    step: WorkflowStep
    records: list[dict[str, Any]]
    batch_id: str | None = None


class DispatchResult(PlatformResult):
    """Aggregate of one dispatch call. Partial failure is still success=True."""

    destination_url: str | None = None
    no_destination: bool = False
    records_found: int = 0
    success_count: int = 0
    fail_count: int = 0
    results: list[RecordDispatchResult] = []


# ============================================================================
# Orchestrator
# ============================================================================


class PipelineOutcome(StrEnum):
    """Terminal states of one orchestrator run."""

    NO_DESTINATION = "no_destination"
    DONE = "done"
    PIPELINE_COMPLETE = "pipeline_complete"
    ERROR = "error"


class OrchestrateRequest(BaseModel):
    """Input for OrchestrateWorkflow: advance a set of entities one step."""

    companies: list[EntityRef]
    workflow_id: str | None = None
    last_completed_step: int | None = None


class OrchestrateResult(PlatformResult):
    """Result of one orchestrator run, shaped for the HTTP response."""

    outcome: PipelineOutcome
    status_code: int = 200
    workflow_id: str | None = None
    workflow_slug: str | None = None
    step_number: int | None = None
    phase_type: str | None = None
    source_table: str | None = None
    company_fk: str | None = None
    destination_url: str | None = None
    batch_id: str | None = None
    companies_received: int = 0
    records_found: int = 0
    success_count: int = 0
    fail_count: int = 0
    results: list[RecordDispatchResult] = []
    last_completed_step: int | None = None
    hint: str | None = None


# ============================================================================
# Batch Tracker / Result Logger
# ============================================================================


class BatchStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LogStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    FAILED = "failed"


class OpenBatchRequest(BaseModel):
    """Input for open_batch: one batch per dispatch call."""

    step_number: int | None = None
    step_name: str | None = None
    play_name: str | None = None
    provider: str | None = None
    records_sent: int


class OpenBatchResult(PlatformResult):
    """Result of open_batch."""

    batch_id: str = ""


class RecordAttemptRequest(BaseModel):
    """Input for record_attempt: one callback arrived for a batch."""

    batch_id: str
    succeeded: bool = True


class RecordAttemptResult(PlatformResult):
    """Result of record_attempt — counters after the increment."""

    batch_id: str = ""
    records_received: int = 0
    records_sent: int = 0
    completed: bool = False


class LogResultRequest(BaseModel):
    """Input for log_result: append-only audit of one record's outcome."""

    company_id: str
    company_domain: str
    workflow_slug: str
    workflow_id: str | None = None
    workflow_title: str | None = None
    play_name: str | None = None
    step_number: int | None = None
    batch_id: str | None = None
    status: LogStatus = LogStatus.SUCCESS
    result_table: str | None = None
    result_record_id: str | None = None
    error_message: str | None = None

    @field_validator("company_id", mode="before")
    @classmethod
    def _id_as_string(cls, v: Any) -> str:
        return str(v)


class LogResultResult(PlatformResult):
    """Result of log_result."""

    log_id: str = ""
    completion_logged: bool = False


# ============================================================================
# Row persistence (storage worker)
# ============================================================================


class PersistRecordRequest(BaseModel):
    """Input for persist_record: insert or upsert one row into a named table."""

    target: DatabaseTarget = DatabaseTarget.WORKSPACE
    table: str
    record: dict[str, Any]
    mode: InsertMode = InsertMode.INSERT
    conflict_columns: list[str] = []
    returning_id: bool = True


class PersistRecordResult(PlatformResult):
    """Result of persist_record."""

    table: str = ""
    record_id: str | None = None
