"""SQLAlchemy Core table definitions — bookkeeping tables plus dynamic data tables.

The bookkeeping tables (batches, results log, step completions) live in the
source-of-truth database and have fixed columns, so they are mirrored here.

Source and destination tables are named by workflow config, so their shape is
not known at import time. `source_select` and `populate_statement` build
statements against them from validated identifiers only.
"""

from __future__ import annotations

from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
    bindparam,
    column,
    func,
    insert,
    literal_column,
    select,
    table,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.dialects.postgresql import insert as pg_insert

from enrich_shared.workflow_models import InsertMode, is_identifier

metadata = MetaData()

# ============================================================================
# Bookkeeping Tables
# ============================================================================

enrichment_batches = Table(
    "enrichment_batches",
    metadata,
    Column("id", UUID(as_uuid=False), primary_key=True, server_default="gen_random_uuid()"),
    Column("play_name", Text),
    Column("step_number", Integer),
    Column("step_name", Text),
    Column("provider", Text),
    Column("records_sent", Integer, nullable=False, server_default="0"),
    Column("records_received", Integer, nullable=False, server_default="0"),
    Column("status", Text, nullable=False, server_default="in_progress"),
    Column("created_at", DateTime(timezone=True), server_default="now()"),
    Column("completed_at", DateTime(timezone=True)),
)

enrichment_results_log = Table(
    "enrichment_results_log",
    metadata,
    Column("id", UUID(as_uuid=False), primary_key=True, server_default="gen_random_uuid()"),
    Column("batch_id", UUID(as_uuid=False)),
    Column("company_id", Text, nullable=False),
    Column("company_domain", Text, nullable=False),
    Column("workflow_id", Text),
    Column("workflow_slug", Text),
    Column("play_name", Text),
    Column("step_number", Integer),
    Column("status", Text, nullable=False),
    Column("result_table", Text),
    Column("result_record_id", Text),
    Column("error_message", Text),
    Column("stored_at", DateTime(timezone=True), server_default="now()"),
)

company_play_step_completions = Table(
    "company_play_step_completions",
    metadata,
    Column("id", UUID(as_uuid=False), primary_key=True, server_default="gen_random_uuid()"),
    Column("company_id", Text, nullable=False),
    Column("play_name", Text),
    Column("step_number", Integer),
    Column("workflow_slug", Text, nullable=False),
    Column("completed_at", DateTime(timezone=True), server_default="now()"),
)


# ============================================================================
# Dynamic tables (named by workflow config)
# ============================================================================


def _require_identifiers(*names: str) -> None:
    for name in names:
        if not is_identifier(name):
            raise ValueError(f"'{name}' is not a valid SQL identifier")


def source_select(table_name: str, company_fk: str, columns: list[str], company_ids: list[str]):
    """SELECT <columns or *> FROM <table> WHERE <company_fk> IN (<company_ids>)."""
    _require_identifiers(table_name, company_fk, *columns)
    source = table(table_name, column(company_fk))
    selected = [column(c) for c in columns] if columns else [literal_column("*")]
    return (
        select(*selected)
        .select_from(source)
        .where(source.c[company_fk].in_(company_ids))
    )


def populate_statement(
    table_name: str,
    record: dict[str, Any],
    mode: InsertMode = InsertMode.INSERT,
    conflict_columns: list[str] | None = None,
    returning_id: bool = True,
):
    """INSERT (or upsert) one JSON record into a table named by config.

    The record is bound as a single JSONB parameter and expanded with
    jsonb_populate_record, so Postgres coerces each value to the column's
    declared type. Provider payloads carry dates, numbers and nested objects
    as plain JSON; binding them one by one would make the driver reject any
    value whose Python type does not match the column exactly.
    """
    columns = list(record)
    conflict_columns = conflict_columns or []
    _require_identifiers(table_name, *columns, *conflict_columns)

    target = table(table_name, column("id"), *[column(c) for c in columns if c != "id"])
    payload = bindparam("record", value=to_jsonable_python(record), type_=JSONB)
    expanded = func.jsonb_populate_record(
        literal_column(f"NULL::{table_name}"), payload
    ).table_valued(*columns)
    rows = select(*[expanded.c[c] for c in columns])

    if mode == InsertMode.UPSERT and conflict_columns:
        stmt = pg_insert(target).from_select(columns, rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={c: stmt.excluded[c] for c in columns},
        )
    else:
        stmt = insert(target).from_select(columns, rows)

    if returning_id:
        stmt = stmt.returning(target.c.id)
    return stmt
