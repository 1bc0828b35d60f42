"""Payload → row mapping for callback results.

Pure functions, no I/O. The router uses them to split an array-mode callback
into per-item payloads; the storage worker uses them to build the primary row
and the child rows of each exploded array.

Design choices:
  - Field lookups prefer the nested provider object (`raw_payload_field`) and
    fall back to the top-level payload, which carries the routing fields the
    dispatcher added.
  - With `destination_field_mappings` the primary row is exactly the mapped
    columns plus `enriched_at`; the operator declared the table's shape.
    Without mappings, every top-level scalar is copied except routing fields,
    plus the context fields.
  - `None` context values are left out so a row never names a column just to
    set it to NULL.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from enrich_shared.workflow_models import ArrayFieldConfig, WorkflowStep

# Top-level payload fields that describe routing or nested structures, never row data.
EXCLUDED_FIELDS = frozenset({
    "receiver_function_url",
    "batch_id",
    "experience",
    "education",
    "certifications",
    "current_experience",
})

PRIMARY_CONTEXT_FIELDS = (
    "source_record_id",
    "hq_target_company_id",
    "hq_target_company_name",
    "hq_target_company_domain",
)

CHILD_CONTEXT_FIELDS = (
    "source_record_id",
    "hq_target_company_id",
    "hq_target_company_name",
    "hq_target_company_domain",
    "extracted_buyer_company",
)


def get_nested_value(obj: Any, path: str) -> Any:
    """Follow a dot path (`data.people`) through nested dicts; None when absent."""
    current = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def is_scalar(value: Any) -> bool:
    return not isinstance(value, (dict, list))


def nested_object(payload: dict[str, Any], field: str) -> dict[str, Any] | None:
    value = payload.get(field)
    return value if isinstance(value, dict) else None


def lookup(field: str, payload: dict[str, Any], nested: dict[str, Any] | None) -> Any:
    """Value of `field`, preferring the nested provider object."""
    if nested is not None:
        value = get_nested_value(nested, field)
        if value is not None:
            return value
    return get_nested_value(payload, field)


# ============================================================================
# Array mode (router)
# ============================================================================


def array_context(payload: dict[str, Any], array_path: str) -> dict[str, Any]:
    """Top-level fields shared by every item: everything that is not a list,
    minus the array's root key."""
    root_key = array_path.split(".")[0]
    return {
        key: value
        for key, value in payload.items()
        if key != root_key and not isinstance(value, list)
    }


def item_payload(
    context: dict[str, Any], item: Any, nested_field: str
) -> dict[str, Any]:
    """One storage call's payload: context, then the item's own fields, then
    the item itself under the nested field so the worker sees it as the
    provider object."""
    fields = item if isinstance(item, dict) else {}
    return {**context, **fields, nested_field: item}


# ============================================================================
# Storage worker
# ============================================================================


def _context(
    payload: dict[str, Any], names: tuple[str, ...], step: WorkflowStep
) -> dict[str, Any]:
    context = {name: payload.get(name) for name in names}
    context["workflow_id"] = payload.get("workflow_id") or step.id
    context["workflow_slug"] = step.workflow_slug
    return {k: v for k, v in context.items() if v is not None}


def build_primary_record(
    step: WorkflowStep,
    payload: dict[str, Any],
    nested: dict[str, Any] | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    record: dict[str, Any] = {"enriched_at": now or datetime.now(UTC)}

    if step.destination_field_mappings:
        for source_field, column in step.destination_field_mappings.items():
            value = lookup(source_field, payload, nested)
            if value is not None:
                record[column] = value
        return record

    source = nested if nested is not None else payload
    for key, value in source.items():
        if key in EXCLUDED_FIELDS or not is_scalar(value):
            continue
        record[key] = value
    record.update(_context(payload, PRIMARY_CONTEXT_FIELDS, step))
    return record


def build_raw_record(
    step: WorkflowStep, payload: dict[str, Any], nested: dict[str, Any]
) -> dict[str, Any]:
    """The provider object as received, for the audit table."""
    record = {
        "source_record_id": payload.get("source_record_id"),
        "contact_linkedin_url": lookup("linkedin_url", payload, nested),
        "name": lookup("name", payload, nested),
        "raw_payload": nested,
        "workflow_id": payload.get("workflow_id") or step.id,
        "workflow_slug": step.workflow_slug,
    }
    return {k: v for k, v in record.items() if v is not None}


def array_items(
    config: ArrayFieldConfig, payload: dict[str, Any], nested: dict[str, Any] | None
) -> list[Any] | None:
    """The list to explode for one array config, or None when the payload has none."""
    items = lookup(config.source_array_field, payload, nested)
    return items if isinstance(items, list) else None


def build_child_record(
    config: ArrayFieldConfig,
    step: WorkflowStep,
    item: dict[str, Any],
    parent_id: str,
    payload: dict[str, Any],
    nested: dict[str, Any] | None,
) -> dict[str, Any]:
    record = _context(payload, CHILD_CONTEXT_FIELDS, step)
    person_name = lookup("name", payload, nested)
    if person_name is not None:
        record["person_name"] = person_name

    if config.field_mappings:
        for source_field, column in config.field_mappings.items():
            value = get_nested_value(item, source_field)
            if value is not None:
                record[column] = value
    else:
        record.update({k: v for k, v in item.items() if is_scalar(v)})
    record[config.parent_fk_field] = parent_id
    return record
