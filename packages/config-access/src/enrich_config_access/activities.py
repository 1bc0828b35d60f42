"""Config Access activities — read-only business verbs over the workflow config store.

Run on CONFIG_ACCESS_QUEUE. The orchestrator workflow dispatches here to decide
which step a set of entities runs next; the callback router and storage worker
call the same functions directly from the HTTP gateway.

Three activities:

  lookup_step             — load one step by id
  find_next_step          — first active step after a given step number
  lookup_provider_variant — storage override for one provider of a waterfall step

Every row is validated into a WorkflowStep before it leaves this module. A row
that fails validation is reported as a failure, never returned half-parsed.
"""

from __future__ import annotations

import uuid

from pydantic import ValidationError
from sqlalchemy import select
from temporalio import activity

from enrich_config_access.tables import STEP_COLUMNS, VARIANT_COLUMNS, provider_configs, workflows
from enrich_data_access.client import get_engine
from enrich_shared.pipeline_models import DatabaseTarget
from enrich_shared.workflow_models import (
    FindNextStepRequest,
    FindNextStepResult,
    LookupProviderVariantRequest,
    LookupProviderVariantResult,
    LookupStepRequest,
    LookupStepResult,
    ProviderVariant,
    StepStatus,
    WorkflowStep,
)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


# ============================================================================
# lookup_step
# ============================================================================


@activity.defn
async def lookup_step(request: LookupStepRequest) -> LookupStepResult:
    """Load one workflow step by id.

    `success` says whether the lookup ran; `found` says whether the row exists.
    An id that is not a UUID cannot match any row, so it is reported as not
    found without a round trip (Postgres would reject the cast instead).
    """
    if not _is_uuid(request.workflow_id):
        return LookupStepResult(
            success=True, message=f"Workflow not found: {request.workflow_id}"
        )

    try:
        async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
            result = await conn.execute(
                select(*STEP_COLUMNS).where(workflows.c.id == request.workflow_id)
            )
            row = result.mappings().fetchone()
    except Exception as e:
        return LookupStepResult(success=False, message=f"lookup_step failed: {e}")

    if row is None:
        return LookupStepResult(
            success=True, message=f"Workflow not found: {request.workflow_id}"
        )

    try:
        step = WorkflowStep.model_validate(dict(row))
    except ValidationError as e:
        activity.logger.error(f"Workflow {request.workflow_id} has malformed config: {e}")
        return LookupStepResult(
            success=False,
            found=True,
            message=f"Malformed workflow config for {request.workflow_id}: {e}",
        )

    return LookupStepResult(
        success=True,
        found=True,
        message=f"Loaded workflow {step.workflow_slug}",
        step=step,
    )


# ============================================================================
# find_next_step
# ============================================================================


@activity.defn
async def find_next_step(request: FindNextStepRequest) -> FindNextStepResult:
    """Return the first active step with a step number above `after_step_number`.

    Deprecated, draft and inactive steps are never returned, whatever their
    number. `step=None` on a successful result means no step remains.
    """
    try:
        async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
            result = await conn.execute(
                select(*STEP_COLUMNS)
                .where(
                    workflows.c.status == StepStatus.ACTIVE.value,
                    workflows.c.overall_step_number > request.after_step_number,
                )
                .order_by(workflows.c.overall_step_number.asc())
                .limit(1)
            )
            row = result.mappings().fetchone()
    except Exception as e:
        return FindNextStepResult(success=False, message=f"find_next_step failed: {e}")

    if row is None:
        return FindNextStepResult(
            success=True,
            message=f"No active step after step {request.after_step_number}",
        )

    try:
        step = WorkflowStep.model_validate(dict(row))
    except ValidationError as e:
        return FindNextStepResult(
            success=False, message=f"Malformed workflow config for {row['id']}: {e}"
        )

    # The query already filters these; a row that slips through means the
    # mirror and the database disagree on types, which must not pass silently.
    if not step.is_pipeline_step or step.overall_step_number <= request.after_step_number:
        return FindNextStepResult(
            success=False,
            message=f"Step query returned ineligible workflow {step.workflow_slug}",
        )

    activity.logger.info(
        f"Next step after {request.after_step_number}: "
        f"{step.overall_step_number} ({step.workflow_slug})"
    )
    return FindNextStepResult(
        success=True,
        message=f"Next step is {step.overall_step_number} ({step.workflow_slug})",
        step=step,
    )


# ============================================================================
# lookup_provider_variant
# ============================================================================


@activity.defn
async def lookup_provider_variant(
    request: LookupProviderVariantRequest,
) -> LookupProviderVariantResult:
    """Load the storage override for (workflow, provider), if one exists.

    A missing variant is not an error — the workflow-level config applies.
    """
    if not _is_uuid(request.workflow_id):
        return LookupProviderVariantResult(
            success=True, message="No provider variant (workflow id is not a UUID)"
        )

    try:
        async with get_engine(DatabaseTarget.SOURCE_OF_TRUTH).begin() as conn:
            result = await conn.execute(
                select(*VARIANT_COLUMNS).where(
                    provider_configs.c.workflow_id == request.workflow_id,
                    provider_configs.c.enrichment_provider == request.enrichment_provider,
                )
            )
            row = result.mappings().fetchone()
    except Exception as e:
        return LookupProviderVariantResult(
            success=False, message=f"lookup_provider_variant failed: {e}"
        )

    if row is None:
        return LookupProviderVariantResult(
            success=True,
            message=(
                f"No variant for provider '{request.enrichment_provider}', "
                "using workflow config"
            ),
        )

    try:
        variant = ProviderVariant.model_validate(dict(row))
    except ValidationError as e:
        return LookupProviderVariantResult(
            success=False,
            message=f"Malformed provider config for '{request.enrichment_provider}': {e}",
        )

    return LookupProviderVariantResult(
        success=True,
        message=f"Using provider config for '{request.enrichment_provider}'",
        variant=variant,
    )
