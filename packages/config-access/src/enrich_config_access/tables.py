"""SQLAlchemy Core table definitions for the workflow config store.

Python-side mirror of the two config tables in the source-of-truth database.
The admin dashboard owns these rows; the engine only reads them.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID

metadata = MetaData()

workflows = Table(
    "db_driven_enrichment_workflows",
    metadata,
    Column("id", UUID(as_uuid=False), primary_key=True, server_default="gen_random_uuid()"),
    Column("workflow_slug", Text, unique=True, nullable=False),
    Column("title", Text),
    Column("overall_step_number", Integer),
    Column("phase_type", Text),
    Column("status", Text, nullable=False, server_default="draft"),
    Column("source_table_name", Text),
    Column("source_table_company_fk", Text),
    Column("source_table_select_columns", Text),
    Column("destination_endpoint_url", Text),
    Column("destination_type", Text),
    Column("receiver_function_url", Text),
    Column("destination_table_name", Text),
    Column("destination_field_mappings", JSONB),
    Column("destination_insert_mode", Text),
    Column("destination_on_conflict", Text),
    Column("array_field_configs", JSONB),
    Column("source_record_array_field", Text),
    Column("raw_payload_table_name", Text),
    Column("raw_payload_field", Text),
    Column("storage_worker_function_url", Text),
    Column("global_logger_function_url", Text),
    Column("created_at", DateTime(timezone=True), server_default="now()"),
    Column("updated_at", DateTime(timezone=True), server_default="now()"),
)

provider_configs = Table(
    "workflow_provider_configs",
    metadata,
    Column("id", UUID(as_uuid=False), primary_key=True, server_default="gen_random_uuid()"),
    Column(
        "workflow_id",
        UUID(as_uuid=False),
        ForeignKey("db_driven_enrichment_workflows.id"),
        nullable=False,
    ),
    Column("enrichment_provider", Text, nullable=False),
    Column("destination_table_name", Text),
    Column("destination_field_mappings", JSONB),
    Column("array_field_configs", JSONB),
    Column("raw_payload_table_name", Text),
    Column("raw_payload_field", Text),
    Column("created_at", DateTime(timezone=True), server_default="now()"),
    UniqueConstraint("workflow_id", "enrichment_provider"),
)

# Everything the engine reads from a step row (timestamps are dashboard-only).
STEP_COLUMNS = [c for c in workflows.c if c.name not in ("created_at", "updated_at")]
VARIANT_COLUMNS = [c for c in provider_configs.c if c.name != "created_at"]
