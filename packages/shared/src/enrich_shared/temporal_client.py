"""Temporal client connection factory.

Handles the two connection modes transparently:

1. **Local dev**: Connect to `TEMPORAL_ADDRESS` (default `localhost:7233`) —
   the dev server started by `temporal server start-dev`. No auth needed.

2. **Temporal Cloud**: Connect using TEMPORAL_REGIONAL_ENDPOINT, TEMPORAL_NAMESPACE,
   and TEMPORAL_API_KEY environment variables. Uses API key authentication with TLS.

Workers call `connect()` once at startup. The HTTP gateway and the storage
worker's pipeline continuation call `get_client()`, which connects lazily and
reuses the connection for the life of the process.

Every activity and workflow argument in this codebase is a Pydantic model, so
the client always uses the Pydantic data converter.
"""

from __future__ import annotations

import os

from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter

_client: Client | None = None


async def connect() -> Client:
    """Create a connected Temporal client.

    Checks for TEMPORAL_API_KEY in the environment to decide the mode:
    - If set, connects to Temporal Cloud via the regional endpoint with TLS.
    - If unset, connects to TEMPORAL_ADDRESS (local dev server).
    """
    namespace = os.environ.get("TEMPORAL_NAMESPACE", "default")
    api_key = os.environ.get("TEMPORAL_API_KEY")

    if api_key:
        address = os.environ.get("TEMPORAL_REGIONAL_ENDPOINT")
        if not address:
            raise ValueError(
                "TEMPORAL_API_KEY is set but TEMPORAL_REGIONAL_ENDPOINT is missing. "
                "Set it to the regional endpoint from the Temporal Cloud 'Connect' dialog "
                "(e.g., us-east-1.aws.api.temporal.io:7233)."
            )
        return await Client.connect(
            address,
            namespace=namespace,
            api_key=api_key,
            tls=True,
            data_converter=pydantic_data_converter,
        )

    address = os.environ.get("TEMPORAL_ADDRESS", "localhost:7233")
    return await Client.connect(
        address, namespace=namespace, data_converter=pydantic_data_converter
    )


async def get_client() -> Client:
    """Return a lazily-connected client singleton."""
    global _client
    if _client is None:
        _client = await connect()
    return _client


def reset_client() -> None:
    """Reset the client singleton — used in tests to inject mocks."""
    global _client
    _client = None
