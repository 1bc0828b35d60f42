"""Data Access activities — the pipeline's reads and writes against Postgres.

Run on DATA_ACCESS_QUEUE. Each activity uses the SQLAlchemy Core query builder
with asyncpg. The orchestrator workflow reaches them through Temporal; the
storage worker and the HTTP gateway call the same functions directly.

Five business verbs:

  gather_step_records — the Data Fetcher: records eligible for a step
  open_batch          — start tracking one dispatch call
  record_attempt      — count one callback against its batch (atomic)
  log_result          — append-only audit of one record's outcome
  persist_record      — insert or upsert one row into a config-named table
"""

from __future__ import annotations

from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import and_, case, func, insert, update
from temporalio import activity

from enrich_data_access.client import get_engine
from enrich_data_access.tables import (
    company_play_step_completions,
    enrichment_batches,
    enrichment_results_log,
    populate_statement,
    source_select,
)
from enrich_shared.errors import MissingCredentialsError
from enrich_shared.pipeline_models import (
    BatchStatus,
    DatabaseTarget,
    GatherRecordsRequest,
    GatherRecordsResult,
    LogResultRequest,
    LogResultResult,
    LogStatus,
    OpenBatchRequest,
    OpenBatchResult,
    PersistRecordRequest,
    PersistRecordResult,
    RecordAttemptRequest,
    RecordAttemptResult,
    RecordKind,
)


def _jsonable_row(row: Any) -> dict[str, Any]:
    """Rows cross Temporal and httpx as JSON — UUIDs and timestamps become strings."""
    return to_jsonable_python(dict(row))


# ============================================================================
# gather_step_records
# ============================================================================


@activity.defn
async def gather_step_records(request: GatherRecordsRequest) -> GatherRecordsResult:
    """Resolve which records are eligible for a step.

    With a source table configured, rows whose company FK is in the entity set
    are read from the workspace database. Without one, the entities themselves
    are the records (first-step "start fresh" stages).
    """
    step = request.step

    if not step.has_source_table:
        records = [
            {
                "company_id": c.company_id,
                "company_name": c.company_name,
                "company_domain": c.company_domain,
                "company_linkedin_url": c.company_linkedin_url,
            }
            for c in request.companies
        ]
        return GatherRecordsResult(
            success=True,
            message=f"Passing through {len(records)} companies",
            kind=RecordKind.COMPANY_DATA,
            workflow_slug=step.workflow_slug,
            records=records,
            record_count=len(records),
        )

    source_table = step.source_table_name
    company_fk = step.source_table_company_fk
    company_ids = [c.company_id for c in request.companies]

    try:
        engine = get_engine(DatabaseTarget.WORKSPACE)
    except MissingCredentialsError as e:
        return GatherRecordsResult(
            success=False,
            message=e.message,
            workflow_slug=step.workflow_slug,
            source_table=source_table,
            company_fk=company_fk,
        )

    try:
        async with engine.begin() as conn:
            result = await conn.execute(
                source_select(source_table, company_fk, step.select_columns, company_ids)
            )
            records = [_jsonable_row(row) for row in result.mappings().all()]
    except Exception as e:
        activity.logger.error(f"Query on {source_table}.{company_fk} failed: {e}")
        return GatherRecordsResult(
            success=False,
            message=f"Failed to query {source_table}: {e}",
            workflow_slug=step.workflow_slug,
            source_table=source_table,
            company_fk=company_fk,
        )

    activity.logger.info(
        f"Found {len(records)} records in {source_table} for {len(company_ids)} companies"
    )
    return GatherRecordsResult(
        success=True,
        message=f"Found {len(records)} records",
        kind=RecordKind.SOURCE_RECORDS,
        workflow_slug=step.workflow_slug,
        source_table=source_table,
        company_fk=company_fk,
        records=records,
        record_count=len(records),
    )


# ============================================================================
# open_batch
# ============================================================================


@activity.defn
async def open_batch(request: OpenBatchRequest) -> OpenBatchResult:
    """Create the batch row for one dispatch call."""
    try:
        async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
            result = await conn.execute(
                insert(enrichment_batches)
                .values(
                    play_name=request.play_name,
                    step_number=request.step_number,
                    step_name=request.step_name,
                    provider=request.provider,
                    records_sent=request.records_sent,
                    records_received=0,
                    status=BatchStatus.IN_PROGRESS.value,
                )
                .returning(enrichment_batches.c.id)
            )
            batch_id = str(result.scalar())
    except Exception as e:
        return OpenBatchResult(success=False, message=f"open_batch failed: {e}")

    activity.logger.info(f"Opened batch {batch_id} ({request.records_sent} records sent)")
    return OpenBatchResult(
        success=True,
        message=f"Batch opened with {request.records_sent} records",
        batch_id=batch_id,
    )


# ============================================================================
# record_attempt
# ============================================================================


@activity.defn
async def record_attempt(request: RecordAttemptRequest) -> RecordAttemptResult:
    """Count one callback against its batch.

    A single UPDATE increments the counter and decides completion in the same
    statement, so concurrent callbacks cannot lose increments. `completed_at`
    is stamped only on the transition, never re-stamped by later callbacks.
    """
    b = enrichment_batches.c
    received = func.coalesce(b.records_received, 0) + 1
    reaches_sent = received >= b.records_sent

    stmt = (
        update(enrichment_batches)
        .where(b.id == request.batch_id)
        .values(
            records_received=received,
            status=case((reaches_sent, BatchStatus.COMPLETED.value), else_=b.status),
            completed_at=case(
                (and_(b.status != BatchStatus.COMPLETED.value, reaches_sent), func.now()),
                else_=b.completed_at,
            ),
        )
        .returning(b.id, b.records_received, b.records_sent, b.status)
    )

    try:
        async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
            result = await conn.execute(stmt)
            row = result.mappings().fetchone()
    except Exception as e:
        return RecordAttemptResult(
            success=False, message=f"record_attempt failed: {e}", batch_id=request.batch_id
        )

    if row is None:
        return RecordAttemptResult(
            success=False,
            message=f"Batch not found: {request.batch_id}",
            batch_id=request.batch_id,
        )

    completed = row["status"] == BatchStatus.COMPLETED.value
    outcome = "succeeded" if request.succeeded else "failed"
    activity.logger.info(
        f"Batch {request.batch_id}: {row['records_received']}/{row['records_sent']} "
        f"received (last attempt {outcome})"
    )
    return RecordAttemptResult(
        success=True,
        message=f"Batch {row['records_received']}/{row['records_sent']}",
        batch_id=str(row["id"]),
        records_received=row["records_received"],
        records_sent=row["records_sent"],
        completed=completed,
    )


# ============================================================================
# log_result
# ============================================================================


@activity.defn
async def log_result(request: LogResultRequest) -> LogResultResult:
    """Append one outcome to the results log; on success, mark the step complete.

    The completion row is written in its own transaction. Failing to write it
    is logged and does not undo the results-log row.
    """
    try:
        async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
            result = await conn.execute(
                insert(enrichment_results_log)
                .values(
                    batch_id=request.batch_id,
                    company_id=request.company_id,
                    company_domain=request.company_domain,
                    workflow_id=request.workflow_id,
                    workflow_slug=request.workflow_slug,
                    play_name=request.play_name or request.workflow_slug,
                    step_number=request.step_number,
                    status=request.status.value,
                    result_table=request.result_table,
                    result_record_id=request.result_record_id,
                    error_message=request.error_message,
                )
                .returning(enrichment_results_log.c.id)
            )
            log_id = str(result.scalar())
    except Exception as e:
        return LogResultResult(success=False, message=f"log_result failed: {e}")

    completion_logged = False
    if request.status == LogStatus.SUCCESS:
        try:
            async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
                await conn.execute(
                    insert(company_play_step_completions).values(
                        company_id=request.company_id,
                        play_name=request.play_name or request.workflow_slug,
                        step_number=request.step_number,
                        workflow_slug=request.workflow_slug,
                    )
                )
            completion_logged = True
        except Exception as e:
            activity.logger.warning(
                f"Step completion for {request.company_id} ({request.workflow_slug}) "
                f"not recorded: {e}"
            )

    return LogResultResult(
        success=True,
        message=f"Logged {request.status.value} for {request.company_domain}",
        log_id=log_id,
        completion_logged=completion_logged,
    )


# ============================================================================
# persist_record
# ============================================================================


@activity.defn
async def persist_record(request: PersistRecordRequest) -> PersistRecordResult:
    """Insert (or upsert) one row into a table named by workflow config."""
    if not request.record:
        return PersistRecordResult(
            success=False, message="Nothing to persist: record is empty", table=request.table
        )

    try:
        stmt = populate_statement(
            request.table,
            request.record,
            mode=request.mode,
            conflict_columns=request.conflict_columns,
            returning_id=request.returning_id,
        )
    except ValueError as e:
        return PersistRecordResult(success=False, message=str(e), table=request.table)

    try:
        async with get_engine(request.target).begin() as conn:
            result = await conn.execute(stmt)
            record_id = result.scalar() if request.returning_id else None
    except MissingCredentialsError as e:
        return PersistRecordResult(success=False, message=e.message, table=request.table)
    except Exception as e:
        return PersistRecordResult(
            success=False, message=f"Insert into {request.table} failed: {e}", table=request.table
        )

    return PersistRecordResult(
        success=True,
        message=f"Stored row in {request.table}",
        table=request.table,
        record_id=str(record_id) if record_id is not None else None,
    )
