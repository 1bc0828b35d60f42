"""Result logging from the storage path — best-effort, never raises.

A step may name a `global_logger_function_url`; the outcome is then POSTed
there (the gateway's /log endpoint, or any compatible function). Without one,
the log_result activity is called in-process. Either way a logging failure is
written to the process log and swallowed: the row it describes is already
stored.

Transport errors are retried with exponential backoff via tenacity. HTTP error
responses are not; a 4xx from the logger will not improve on a second try.
"""

from __future__ import annotations

import logging
import os

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from enrich_data_access.activities import log_result
from enrich_shared.pipeline_models import LogResultRequest, LogStatus
from enrich_shared.workflow_models import INTERNAL_FUNCTION_MARKER, WorkflowStep

logger = logging.getLogger(__name__)


def build_log_request(
    step: WorkflowStep,
    payload: dict,
    status: LogStatus,
    result_table: str | None = None,
    result_record_id: str | None = None,
    error_message: str | None = None,
) -> LogResultRequest | None:
    """Log entry for one stored callback, or None when the entity is unknown."""
    company_id = payload.get("hq_target_company_id") or payload.get("company_id")
    company_domain = payload.get("hq_target_company_domain") or payload.get("company_domain")
    if not company_id or not company_domain:
        return None
    return LogResultRequest(
        company_id=company_id,
        company_domain=company_domain,
        workflow_slug=step.workflow_slug,
        workflow_id=step.id,
        workflow_title=step.title,
        play_name=step.workflow_slug,
        step_number=step.overall_step_number,
        batch_id=payload.get("batch_id"),
        status=status,
        result_table=result_table,
        result_record_id=result_record_id,
        error_message=error_message,
    )


@retry(
    retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    stop=stop_after_attempt(3),
    reraise=True,
)
async def _post_log(
    url: str, request: LogResultRequest, transport: httpx.AsyncBaseTransport | None = None
) -> None:
    headers = {}
    if INTERNAL_FUNCTION_MARKER in url:
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
        headers = {"Authorization": f"Bearer {key}", "apikey": key}
    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        response = await client.post(url, json=request.model_dump(mode="json"), headers=headers)
        response.raise_for_status()


async def log_outcome(
    step: WorkflowStep,
    payload: dict,
    status: LogStatus,
    result_table: str | None = None,
    result_record_id: str | None = None,
    error_message: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Record one outcome. Returns whether it was recorded; never raises."""
    request = build_log_request(
        step, payload, status, result_table, result_record_id, error_message
    )
    if request is None:
        logger.warning(
            f"Not logging {status.value} for {step.workflow_slug}: "
            "payload has no company id/domain"
        )
        return False

    try:
        if step.global_logger_function_url:
            await _post_log(step.global_logger_function_url, request, transport)
            return True
        result = await log_result(request)
    except Exception as e:
        logger.error(f"Result logging for {step.workflow_slug} failed: {e}")
        return False

    if not result.success:
        logger.error(f"Result logging for {step.workflow_slug} failed: {result.message}")
    return result.success
