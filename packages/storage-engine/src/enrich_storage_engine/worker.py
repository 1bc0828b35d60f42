"""Storage Worker — write one provider result where its workflow config says.

Steps, in order:

  1. resolve the step by `workflow_id`; apply the provider variant when the
     payload names an `enrichment_provider` (waterfall enrichment)
  2. persist the raw provider object to the audit table (best-effort)
  3. build and insert the primary row (fatal on failure)
  4. explode configured arrays into child rows (per-row failures counted)
  5. log success
  6. continue the pipeline for the entity (best-effort)

Only step 3 can fail the call. Everything after it happens to a row that is
already stored, so it is reported but never turns the response into an error.
"""

from __future__ import annotations

import logging
from typing import Any

from enrich_config_access.activities import lookup_provider_variant, lookup_step
from enrich_data_access.activities import persist_record
from enrich_shared.errors import (
    ConfigurationError,
    InvalidPayloadError,
    NotFoundError,
    PipelineError,
    StorageFailure,
)
from enrich_shared.pipeline_models import LogStatus, PersistRecordRequest
from enrich_shared.workflow_models import (
    InsertMode,
    LookupProviderVariantRequest,
    LookupStepRequest,
    WorkflowStep,
)
from enrich_storage_engine.continuation import continue_pipeline, entity_from_payload
from enrich_storage_engine.mapping import (
    array_items,
    build_child_record,
    build_primary_record,
    build_raw_record,
    nested_object,
)
from enrich_storage_engine.result_logger import log_outcome

logger = logging.getLogger(__name__)


async def load_step(workflow_id: str) -> WorkflowStep:
    """Load a step by id: 404 when missing, 400 when malformed, 500 when unreachable."""
    found = await lookup_step(LookupStepRequest(workflow_id=workflow_id))
    if not found.success:
        if found.found:
            raise ConfigurationError(found.message, workflow_id=workflow_id)
        raise PipelineError(found.message, workflow_id=workflow_id)
    if found.step is None:
        raise NotFoundError("Workflow not found", workflow_id=workflow_id)
    return found.step


async def resolve_step(workflow_id: str, provider: str | None = None) -> tuple[WorkflowStep, str]:
    """Load the step and apply its provider variant. Returns (step, config_source)."""
    step = await load_step(workflow_id)
    if not provider:
        return step, "workflow"

    variant = await lookup_provider_variant(
        LookupProviderVariantRequest(workflow_id=workflow_id, enrichment_provider=provider)
    )
    if not variant.success:
        raise ConfigurationError(variant.message, workflow_id=workflow_id, provider=provider)
    if variant.variant is None:
        return step, "workflow"
    return step.with_provider_variant(variant.variant), "provider_config"


async def _store_raw_payload(
    step: WorkflowStep, payload: dict[str, Any], nested: dict[str, Any]
) -> None:
    result = await persist_record(
        PersistRecordRequest(
            table=step.raw_payload_table_name,
            record=build_raw_record(step, payload, nested),
            returning_id=False,
        )
    )
    if not result.success:
        logger.warning(f"Raw payload for {step.workflow_slug} not stored: {result.message}")


async def _explode_arrays(
    step: WorkflowStep,
    payload: dict[str, Any],
    nested: dict[str, Any] | None,
    parent_id: str | None,
) -> dict[str, dict[str, Any]]:
    """Insert child rows for every configured array. Returns {field: {count, errors}}."""
    array_results: dict[str, dict[str, Any]] = {}
    for config in step.array_field_configs:
        outcome: dict[str, Any] = {"count": 0, "errors": []}
        array_results[config.source_array_field] = outcome

        items = array_items(config, payload, nested)
        if items is None:
            continue
        if parent_id is None:
            outcome["errors"].append("Parent record id unavailable; children not stored")
            continue

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            result = await persist_record(
                PersistRecordRequest(
                    table=config.destination_table,
                    record=build_child_record(config, step, item, parent_id, payload, nested),
                    returning_id=False,
                )
            )
            if result.success:
                outcome["count"] += 1
            else:
                outcome["errors"].append(f"[{index}] {result.message}")

        if outcome["errors"]:
            logger.warning(
                f"{config.source_array_field} → {config.destination_table}: "
                f"{len(outcome['errors'])} rows failed"
            )
    return array_results


async def store(payload: dict[str, Any]) -> dict[str, Any]:
    """Store one callback payload. Raises PipelineError subclasses on failure."""
    workflow_id = payload.get("workflow_id")
    if not workflow_id:
        raise InvalidPayloadError("workflow_id is required")
    company_id = payload.get("hq_target_company_id") or payload.get("company_id")
    company_domain = payload.get("hq_target_company_domain") or payload.get("company_domain")
    if not company_id and not company_domain:
        missing = ["hq_target_company_id", "hq_target_company_domain"]
        raise InvalidPayloadError(
            f"Missing required fields: {', '.join(missing)}", missing=missing
        )

    provider = payload.get("enrichment_provider")
    step, config_source = await resolve_step(str(workflow_id), provider)

    table = step.destination_table_name
    if not table:
        raise ConfigurationError(
            "Workflow has no destination_table_name configured",
            workflow_id=step.id,
            workflow_slug=step.workflow_slug,
        )

    nested = nested_object(payload, step.nested_payload_field)
    if step.raw_payload_table_name and nested is not None:
        await _store_raw_payload(step, payload, nested)

    stored = await persist_record(
        PersistRecordRequest(
            table=table,
            record=build_primary_record(step, payload, nested),
            mode=step.destination_insert_mode,
            conflict_columns=(
                step.conflict_columns if step.destination_insert_mode == InsertMode.UPSERT else []
            ),
        )
    )
    if not stored.success:
        await log_outcome(
            step, payload, LogStatus.ERROR, result_table=table, error_message=stored.message
        )
        raise StorageFailure(
            f"Failed to insert into {table}",
            destination_table=table,
            workflow_slug=step.workflow_slug,
            cause=stored.message,
        )

    record_id = stored.record_id
    array_results = await _explode_arrays(step, payload, nested, record_id)

    await log_outcome(
        step, payload, LogStatus.SUCCESS, result_table=table, result_record_id=record_id
    )

    # Deprecated steps continue too; find_next_step never selects them.
    pipeline_continued = False
    entity = entity_from_payload(payload)
    if step.overall_step_number is not None and entity is not None:
        pipeline_continued = await continue_pipeline(entity, step.overall_step_number)

    logger.info(f"Stored {step.workflow_slug} result in {table} ({record_id})")
    return {
        "success": True,
        "destination_table": table,
        "record_id": record_id,
        "workflow_slug": step.workflow_slug,
        "overall_step_number": step.overall_step_number,
        "enrichment_provider": provider,
        "config_source": config_source,
        "array_results": array_results,
        "pipeline_continued": pipeline_continued,
    }
