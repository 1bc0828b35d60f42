"""Config Access boundary models — workflow step definitions and their lookups.

A workflow step row drives every other component: what to fetch, where to send
it, where the callback result lands, and how nested arrays explode into child
tables. The row is edited by the admin dashboard as loose JSON, so it is
validated here, once, when it is loaded. Table and column names are
interpolated into SQL as identifiers, so anything that is not a plain
identifier is rejected before a single record is dispatched.

Design choices:
  - Field mappings are `source_field -> column` maps (provider field name on the
    left, destination column on the right).
  - `status` is a closed enum. Only `active` steps with a step number take part
    in pipeline ordering; `deprecated` is never selected.
  - Provider variants (waterfall enrichment) override only storage-related
    fields; routing and logging stay on the workflow row.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, field_validator

from enrich_shared.models import PlatformResult

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Marker in a destination URL that means "another function of ours", which
# must be called with the service credential.
INTERNAL_FUNCTION_MARKER = "/functions/v1/"

DEFAULT_RAW_PAYLOAD_FIELD = "linkedin_person_raw_payload"
DEFAULT_CONFLICT_COLUMNS = "company_domain"


def is_identifier(value: str) -> bool:
    return bool(_IDENTIFIER.match(value))


def _check_identifier(value: str, what: str) -> str:
    if not is_identifier(value):
        raise ValueError(f"{what} '{value}' is not a valid SQL identifier")
    return value


def _split_columns(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class StepStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"
    DEPRECATED = "deprecated"


class InsertMode(StrEnum):
    INSERT = "insert"
    UPSERT = "upsert"


class ArrayFieldConfig(BaseModel):
    """Explode one array of the provider payload into a child table."""

    source_array_field: str
    destination_table: str
    parent_fk_field: str
    field_mappings: dict[str, str] = {}

    @field_validator("destination_table")
    @classmethod
    def _table_is_identifier(cls, v: str) -> str:
        return _check_identifier(v, "destination_table")

    @field_validator("parent_fk_field")
    @classmethod
    def _fk_is_identifier(cls, v: str) -> str:
        return _check_identifier(v, "parent_fk_field")

    @field_validator("field_mappings")
    @classmethod
    def _columns_are_identifiers(cls, v: dict[str, str]) -> dict[str, str]:
        for column in v.values():
            _check_identifier(column, "mapped column")
        return v


def _check_mapping_columns(mapping: dict[str, str] | None) -> None:
    for column in (mapping or {}).values():
        _check_identifier(column, "mapped column")


class WorkflowStep(BaseModel):
    """One configured stage of the enrichment pipeline."""

    id: str
    workflow_slug: str
    title: str | None = None
    overall_step_number: int | None = None
    phase_type: str | None = None
    status: StepStatus = StepStatus.DRAFT

    # Where eligible records come from (unset = the entities themselves)
    source_table_name: str | None = None
    source_table_company_fk: str | None = None
    source_table_select_columns: str | None = None

    # Where records are sent
    destination_endpoint_url: str | None = None
    destination_type: str | None = None
    receiver_function_url: str | None = None

    # Where callback results are stored
    destination_table_name: str | None = None
    destination_field_mappings: dict[str, str] | None = None
    destination_insert_mode: InsertMode = InsertMode.INSERT
    destination_on_conflict: str | None = None
    array_field_configs: list[ArrayFieldConfig] = []
    source_record_array_field: str | None = None
    raw_payload_table_name: str | None = None
    raw_payload_field: str | None = None

    # Function URLs
    storage_worker_function_url: str | None = None
    global_logger_function_url: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, v: Any) -> str:
        return str(v)

    @field_validator("array_field_configs", mode="before")
    @classmethod
    def _null_array_configs(cls, v: Any) -> Any:
        return v or []

    @field_validator("destination_insert_mode", mode="before")
    @classmethod
    def _default_insert_mode(cls, v: Any) -> Any:
        return v or InsertMode.INSERT

    @field_validator("source_table_name", "source_table_company_fk", "destination_table_name",
                     "raw_payload_table_name")
    @classmethod
    def _names_are_identifiers(cls, v: str | None) -> str | None:
        if v:
            _check_identifier(v, "table/column name")
        return v

    @field_validator("source_table_select_columns", "destination_on_conflict")
    @classmethod
    def _column_lists_are_identifiers(cls, v: str | None) -> str | None:
        if v and v.strip() != "*":
            for column in _split_columns(v):
                _check_identifier(column, "column")
        return v

    @field_validator("destination_field_mappings")
    @classmethod
    def _mapping_columns_are_identifiers(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        _check_mapping_columns(v)
        return v

    @property
    def is_pipeline_step(self) -> bool:
        return self.status == StepStatus.ACTIVE and self.overall_step_number is not None

    @property
    def has_source_table(self) -> bool:
        return bool(self.source_table_name and self.source_table_company_fk)

    @property
    def select_columns(self) -> list[str]:
        """Columns to select from the source table; empty means all."""
        raw = (self.source_table_select_columns or "*").strip()
        if raw == "*":
            return []
        return _split_columns(raw)

    @property
    def conflict_columns(self) -> list[str]:
        return _split_columns(self.destination_on_conflict or DEFAULT_CONFLICT_COLUMNS)

    @property
    def nested_payload_field(self) -> str:
        return self.raw_payload_field or DEFAULT_RAW_PAYLOAD_FIELD

    def with_provider_variant(self, variant: ProviderVariant) -> WorkflowStep:
        """Return a copy whose storage config comes from a provider variant."""
        return self.model_copy(
            update={
                "destination_table_name": variant.destination_table_name,
                "destination_field_mappings": variant.destination_field_mappings,
                "array_field_configs": variant.array_field_configs,
                "raw_payload_table_name": variant.raw_payload_table_name,
                "raw_payload_field": variant.raw_payload_field,
            }
        )


class ProviderVariant(BaseModel):
    """Storage override for one enrichment provider of a waterfall workflow."""

    id: str = ""
    workflow_id: str
    enrichment_provider: str
    destination_table_name: str | None = None
    destination_field_mappings: dict[str, str] | None = None
    array_field_configs: list[ArrayFieldConfig] = []
    raw_payload_table_name: str | None = None
    raw_payload_field: str | None = None

    @field_validator("id", "workflow_id", mode="before")
    @classmethod
    def _ids_as_string(cls, v: Any) -> str:
        return str(v)

    @field_validator("array_field_configs", mode="before")
    @classmethod
    def _null_array_configs(cls, v: Any) -> Any:
        return v or []

    @field_validator("destination_table_name", "raw_payload_table_name")
    @classmethod
    def _names_are_identifiers(cls, v: str | None) -> str | None:
        if v:
            _check_identifier(v, "table name")
        return v

    @field_validator("destination_field_mappings")
    @classmethod
    def _mapping_columns_are_identifiers(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        _check_mapping_columns(v)
        return v


# ============================================================================
# Activity Request/Result Pairs
# ============================================================================


class LookupStepRequest(BaseModel):
    """Input for lookup_step: load one step by id."""

    workflow_id: str


class LookupStepResult(PlatformResult):
    """Result of lookup_step.

    `success=True, found=False` is a clean miss. `found=True, success=False`
    means the row exists but failed validation. `success=False, found=False`
    means the lookup itself failed.
    """

    found: bool = False
    step: WorkflowStep | None = None


class FindNextStepRequest(BaseModel):
    """Input for find_next_step: first active step after a step number."""

    after_step_number: int = 0


class FindNextStepResult(PlatformResult):
    """Result of find_next_step. `step=None` with success means no step remains."""

    step: WorkflowStep | None = None


class LookupProviderVariantRequest(BaseModel):
    """Input for lookup_provider_variant."""

    workflow_id: str
    enrichment_provider: str


class LookupProviderVariantResult(PlatformResult):
    """Result of lookup_provider_variant. `variant=None` means use the workflow row."""

    variant: ProviderVariant | None = None
