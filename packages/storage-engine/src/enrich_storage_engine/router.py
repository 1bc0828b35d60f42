"""Callback Router — the public endpoint providers call back into.

Providers know nothing about our tables; the only routing key is the
`workflow_id` the dispatcher put in the outbound payload. The router resolves
the step, finds its storage worker, and forwards:

  single mode — the raw body, verbatim, once
  array mode  — when the step declares `source_record_array_field` and the
                payload holds a list there, one storage call per element,
                each carrying the parent's non-list context fields

Array mode answers 200 when every element was stored and 207 when some were
not, so the caller can tell total from partial failure.

When the payload carries a `batch_id`, the callback is counted against its
batch once storage has been attempted (best-effort).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx

from enrich_data_access.activities import record_attempt
from enrich_shared.errors import ConfigurationError, InvalidPayloadError
from enrich_shared.pipeline_models import RecordAttemptRequest
from enrich_shared.workflow_models import INTERNAL_FUNCTION_MARKER, WorkflowStep
from enrich_storage_engine.mapping import array_context, get_nested_value, item_payload
from enrich_storage_engine.worker import load_step

logger = logging.getLogger(__name__)

STORAGE_TIMEOUT_SECONDS = 30.0


def parse_body(body: bytes) -> dict[str, Any]:
    if not body or not body.strip():
        raise InvalidPayloadError("Request body is empty")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise InvalidPayloadError(f"Invalid JSON body: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Request body must be a JSON object")
    return payload


async def resolve_route(workflow_id: str) -> WorkflowStep:
    """The step a callback belongs to; it must name a storage worker."""
    step = await load_step(workflow_id)
    if not step.storage_worker_function_url:
        raise ConfigurationError(
            "No storage_worker_function_url configured for this workflow",
            workflow_id=workflow_id,
            workflow_slug=step.workflow_slug,
        )
    return step


def _headers(url: str) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if INTERNAL_FUNCTION_MARKER in url:
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
        headers["Authorization"] = f"Bearer {key}"
        headers["apikey"] = key
    return headers


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


async def forward(client: httpx.AsyncClient, url: str, content: bytes) -> tuple[int, Any]:
    """POST one payload to the storage worker. Returns (status, body)."""
    try:
        response = await client.post(url, content=content, headers=_headers(url))
    except httpx.HTTPError as e:
        logger.error(f"Storage worker {url} unreachable: {e}")
        return 502, {"error": f"Storage worker unreachable: {type(e).__name__}: {e}"}
    return response.status_code, _response_body(response)


async def _count_attempt(batch_id: Any, succeeded: bool) -> None:
    try:
        result = await record_attempt(
            RecordAttemptRequest(batch_id=str(batch_id), succeeded=succeeded)
        )
    except Exception as e:
        logger.warning(f"Batch {batch_id} not updated: {e}")
        return
    if not result.success:
        logger.warning(f"Batch {batch_id} not updated: {result.message}")


async def route(
    body: bytes, client: httpx.AsyncClient | None = None
) -> tuple[int, dict[str, Any]]:
    """Route one callback. Returns (status_code, response body).

    Raises PipelineError subclasses for a bad payload, an unknown workflow or
    a workflow without a storage worker.
    """
    payload = parse_body(body)
    workflow_id = payload.get("workflow_id")
    if not workflow_id:
        raise InvalidPayloadError("workflow_id is required")

    step = await resolve_route(str(workflow_id))

    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(timeout=STORAGE_TIMEOUT_SECONDS)
    try:
        array_path = step.source_record_array_field
        items = get_nested_value(payload, array_path) if array_path else None
        if isinstance(items, list):
            status, response = await _route_array(client, step, payload, array_path, items)
        else:
            status, response = await _route_single(client, step, body)
    finally:
        if own_client:
            await client.aclose()

    batch_id = payload.get("batch_id")
    if batch_id:
        await _count_attempt(batch_id, succeeded=status == 200)
    return status, response


async def _route_single(
    client: httpx.AsyncClient, step: WorkflowStep, body: bytes
) -> tuple[int, dict[str, Any]]:
    status, response = await forward(client, step.storage_worker_function_url, body)
    ok = 200 <= status < 300
    return (200 if ok else status), {
        "routed": True,
        "workflow_id": step.id,
        "workflow_slug": step.workflow_slug,
        "storage_worker_status": status,
        "storage_worker_response": response,
    }


async def _route_array(
    client: httpx.AsyncClient,
    step: WorkflowStep,
    payload: dict[str, Any],
    array_path: str,
    items: list[Any],
) -> tuple[int, dict[str, Any]]:
    context = array_context(payload, array_path)
    results = []
    for index, item in enumerate(items):
        content = json.dumps(item_payload(context, item, step.nested_payload_field)).encode()
        status, response = await forward(client, step.storage_worker_function_url, content)
        results.append({"index": index, "status": status, "response": response})

    success_count = sum(1 for r in results if 200 <= r["status"] < 300)
    all_ok = success_count == len(results)
    if not all_ok:
        logger.warning(
            f"{step.workflow_slug}: {len(results) - success_count} of {len(results)} "
            "array items failed to store"
        )
    return (200 if all_ok else 207), {
        "routed": True,
        "array_mode": True,
        "workflow_id": step.id,
        "workflow_slug": step.workflow_slug,
        "total_items": len(items),
        "success_count": success_count,
        "results": results,
    }
