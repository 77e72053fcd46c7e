"""Domain events for the mirroring pipeline.

Events represent state changes that flow through the EventBus, decoupling the
pipeline from console reporting. They are published from worker threads as
well as from the orchestrator thread.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import List
from pydantic import BaseModel, Field
from .models import JobOutcome, MirrorJob, RunSummary


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class AdmissionFinished(Event):
    """Emitted once the job set for a run has been decided."""

    jobs: int
    already_converted: int = 0
    unreadable: int = 0


class JobEvent(Event):
    """Base class for events related to a specific job."""

    job: MirrorJob


class JobStarted(JobEvent):
    """Emitted when a worker picks the job up (before the stability wait)."""

    pass


class JobFinished(JobEvent):
    """Base class for terminal job events."""

    outcome: JobOutcome
    processed: int
    total: int

    @property
    def percent_done(self) -> float:
        if self.total <= 0:
            return 100.0
        return (self.processed / self.total) * 100.0


class JobCompleted(JobFinished):
    pass


class JobSkipped(JobFinished):
    pass


class JobFailed(JobFinished):
    pass


class ReconcileFinished(Event):
    """Emitted after each reconciliation pass."""

    deleted: List[Path] = Field(default_factory=list)
    failed: List[Path] = Field(default_factory=list)
    final: bool = False


class WatchdogTriggered(Event):
    """Emitted by the watchdog sweep just before the process is terminated."""

    overrun: List[Path] = Field(default_factory=list)
    deleted: List[Path] = Field(default_factory=list)


class RunFinished(Event):
    summary: RunSummary
