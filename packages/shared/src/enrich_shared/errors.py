"""Error taxonomy for the pipeline engine.

Activities report expected failures through result envelopes. These exceptions
are for the synchronous HTTP path (callback router, storage worker, fetcher),
where a failure must become a response with a status code and enough context
for an operator to re-drive the failed step.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class — carries an HTTP status and structured details."""

    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class ConfigurationError(PipelineError):
    """Missing credentials, missing destination/storage URL, malformed config.

    Always fatal, never retried.
    """

    status_code = 400


class MissingCredentialsError(ConfigurationError):
    """A database or service credential is not present in the environment."""

    status_code = 500


class NotFoundError(PipelineError):
    """Unknown workflow id or missing source row."""

    status_code = 404


class StorageFailure(PipelineError):
    """Insert into a destination table failed."""

    status_code = 500


class InvalidPayloadError(PipelineError):
    """Request body is not JSON or lacks a required field."""

    status_code = 400
