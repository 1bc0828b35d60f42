"""Rate-limited dispatcher — one POST per eligible record to a step's destination.

Sends are strictly sequential and spaced by a FixedDelayThrottle. Each record's
outcome is collected; nothing is retried. A destination that already received a
record may have started paid work on it, so a retry could double-bill or
double-write. Failed records are reported so an operator can re-drive exactly
that subset.

Design choices:
  - Success is any 2xx. Everything else, including a timeout or a connection
    error, is a failed record with the reason attached.
  - Destinations that are our own functions (URL contains INTERNAL_FUNCTION_MARKER)
    get the service credential. Third-party destinations get no auth header;
    their secret lives in the webhook URL itself.
  - Delay and timeout come from DISPATCH_DELAY_MS / DISPATCH_TIMEOUT_SECONDS.
"""

from __future__ import annotations

import contextlib
import logging
import os
from typing import Any

import httpx
from temporalio import activity

from enrich_dispatch_engine.throttle import FixedDelayThrottle
from enrich_shared.pipeline_models import DispatchResult, RecordDispatchResult
from enrich_shared.workflow_models import INTERNAL_FUNCTION_MARKER, WorkflowStep

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 100
DEFAULT_TIMEOUT_SECONDS = 30.0
SERVICE_KEY_ENV_VAR = "SUPABASE_SERVICE_ROLE_KEY"


def delay_from_env() -> float:
    """Gap between sends in seconds."""
    return int(os.environ.get("DISPATCH_DELAY_MS", DEFAULT_DELAY_MS)) / 1000


def timeout_from_env() -> float:
    return float(os.environ.get("DISPATCH_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))


def is_internal(url: str) -> bool:
    return INTERNAL_FUNCTION_MARKER in url


def record_id_of(record: dict[str, Any]) -> str:
    """The id a callback will carry back as `source_record_id`."""
    value = record.get("id", record.get("company_id"))
    return "" if value is None else str(value)


def build_payload(
    step: WorkflowStep, record: dict[str, Any], batch_id: str | None = None
) -> dict[str, Any]:
    """Record fields plus the routing fields a callback needs to find its way back."""
    payload = {
        **record,
        "source_record_id": record_id_of(record),
        "workflow_id": step.id,
        "workflow_slug": step.workflow_slug,
        "receiver_function_url": step.receiver_function_url,
    }
    if batch_id:
        payload["batch_id"] = batch_id
    return payload


class Dispatcher:
    """Sends records one at a time to a step's destination."""

    def __init__(
        self,
        delay: float | None = None,
        timeout: float | None = None,
        service_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.throttle = FixedDelayThrottle(delay if delay is not None else delay_from_env())
        self.timeout = timeout if timeout is not None else timeout_from_env()
        self.service_key = (
            service_key if service_key is not None else os.environ.get(SERVICE_KEY_ENV_VAR, "")
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.request_count: int = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self, url: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if is_internal(url):
            headers["Authorization"] = f"Bearer {self.service_key}"
            headers["apikey"] = self.service_key
        return headers

    async def _send(
        self, url: str, headers: dict[str, str], payload: dict[str, Any]
    ) -> RecordDispatchResult:
        record_id = payload["source_record_id"]
        await self.throttle.acquire()
        self.request_count += 1
        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
        except httpx.TimeoutException:
            return RecordDispatchResult(
                record_id=record_id,
                success=False,
                error=f"Timed out after {self.timeout:g}s",
            )
        except httpx.HTTPError as e:
            return RecordDispatchResult(
                record_id=record_id, success=False, error=f"{type(e).__name__}: {e}"
            )

        if response.is_success:
            return RecordDispatchResult(
                record_id=record_id, success=True, status_code=response.status_code
            )
        return RecordDispatchResult(
            record_id=record_id,
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.text[:200]}",
        )

    async def dispatch(
        self,
        step: WorkflowStep,
        records: list[dict[str, Any]],
        batch_id: str | None = None,
    ) -> DispatchResult:
        """Send every record to the step's destination and aggregate the outcomes.

        Exactly one destination call is made per record, whatever the outcome
        of the others. Partial failure is still `success=True`; the counts and
        per-record results carry the detail.
        """
        url = step.destination_endpoint_url
        if not url:
            return DispatchResult(
                success=True,
                message=f"No destination configured for {step.workflow_slug}",
                no_destination=True,
                records_found=len(records),
            )

        if is_internal(url) and not self.service_key:
            return DispatchResult(
                success=False,
                message=f"{SERVICE_KEY_ENV_VAR} is not set; cannot call internal function {url}",
                destination_url=url,
                records_found=len(records),
            )

        headers = self._headers(url)
        results: list[RecordDispatchResult] = []
        for i, record in enumerate(records, start=1):
            result = await self._send(url, headers, build_payload(step, record, batch_id))
            if not result.success:
                logger.warning(f"Dispatch of {result.record_id} to {url} failed: {result.error}")
            results.append(result)

            # No-op outside an activity context.
            with contextlib.suppress(Exception):
                activity.heartbeat(f"Dispatched {i}/{len(records)}")

        success_count = sum(1 for r in results if r.success)
        return DispatchResult(
            success=True,
            message=f"Dispatched {success_count} of {len(records)} records",
            destination_url=url,
            records_found=len(records),
            success_count=success_count,
            fail_count=len(records) - success_count,
            results=results,
        )
