"""
Render job data types.

A job moves Submitted -> {Queued, Processing}* -> {Done | Failed}.
Timeout is a terminal state imposed by the caller's attempt budget or
deadline, never reported by a provider.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class JobStatus(str, Enum):
    """Normalized status of a render job."""
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    # Produced by the tracker, not the provider
    CHECK_FAILED = "check_failed"  # transient status-check failure
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED, JobStatus.TIMEOUT})


@dataclass
class RenderStatus:
    """One observation of a render job."""
    handle: str
    status: JobStatus
    provider_status: Optional[str] = None  # raw vendor label
    url: Optional[str] = None
    error: Optional[str] = None
    attempt: int = 0
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Wire format shared by the HTTP service and the SSE stream."""
        data: dict[str, Any] = {
            "id": self.handle,
            "status": self.status.value,
        }
        if self.provider_status:
            data["provider_status"] = self.provider_status
        if self.url:
            data["url"] = self.url
        if self.error:
            data["error"] = self.error
        if self.attempt:
            data["attempt"] = self.attempt
        data["timestamp"] = self.observed_at.isoformat()
        return data
