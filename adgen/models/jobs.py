from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from adgen.models.campaigns import utcnow


class JobStatus(str, Enum):
    """High-level lifecycle states for a background job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, Enum):
    GENERATE_ADS = "generate_ads"
    REGENERATE_BACKGROUND = "regenerate_background"


@dataclass(slots=True)
class Job:
    """
    Internal record of one queued orchestrator run.

    The job runner is the only writer. `error` carries the message of the
    exception that ended a failed run.
    """

    id: str
    kind: JobKind
    campaign_id: str
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
