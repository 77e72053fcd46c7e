import threading
from pathlib import Path
from typing import Dict, List, Optional
from mediamirror.domain.models import JobOutcome, JobStatus, MirrorJob
from mediamirror.pipeline.registry import JobRegistry


class RunContext:
    """Per-run mutable state shared by the pool, watchdog and orchestrator.

    Created by the orchestrator for one run and dropped afterwards; nothing in
    here outlives the run.
    """

    def __init__(self, total_jobs: int = 0, started_at: float = 0.0):
        self.registry = JobRegistry()
        self.total_jobs = total_jobs
        self.started_at = started_at
        self._lock = threading.Lock()
        self._processed = 0
        self._outcomes: Dict[Path, JobOutcome] = {}
        self._jobs: Dict[Path, MirrorJob] = {}

    def record(self, job: MirrorJob, outcome: JobOutcome) -> int:
        """Stores a job's outcome and returns the number of processed jobs so far."""
        with self._lock:
            self._outcomes[job.source_path] = outcome
            self._jobs[job.source_path] = job
            self._processed += 1
            return self._processed

    @property
    def processed(self) -> int:
        with self._lock:
            return self._processed

    def outcome_for(self, source_path: Path) -> Optional[JobOutcome]:
        with self._lock:
            return self._outcomes.get(source_path)

    def outcomes(self) -> Dict[Path, JobOutcome]:
        with self._lock:
            return dict(self._outcomes)

    def count(self, status: JobStatus) -> int:
        with self._lock:
            return sum(1 for o in self._outcomes.values() if o.status is status)

    def failed_destinations(self) -> List[Path]:
        with self._lock:
            return [
                self._jobs[path].destination
                for path, outcome in self._outcomes.items()
                if outcome.status is JobStatus.FAILED
            ]

    def failure_messages(self) -> List[str]:
        with self._lock:
            return [
                f"{path.name}: {outcome.error_message}"
                for path, outcome in self._outcomes.items()
                if outcome.status is JobStatus.FAILED
            ]
