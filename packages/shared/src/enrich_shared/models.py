"""Result envelope shared by every activity.

Activities never raise for expected failures (a missing row, an unreachable
destination, a malformed config). They return a PlatformResult subclass with
`success=False` and a message an operator can act on. Exceptions are left for
bugs and for Temporal's own timeouts.

The orchestrator branches on `success`; the gateway turns it into a status
code; the storage path logs the message and carries on.
"""

from pydantic import BaseModel


class PlatformResult(BaseModel):
    """Base of every activity result: did it work, and what happened."""

    success: bool
    message: str
