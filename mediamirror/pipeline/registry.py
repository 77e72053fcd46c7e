import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List
from mediamirror.domain.errors import DuplicateJobError
from mediamirror.domain.models import JobOutcome, MirrorJob


@dataclass(frozen=True)
class RegistryEntry:
    job: MirrorJob
    future: "Future[JobOutcome]"


class JobRegistry:
    """Source path -> outstanding job handle for the current run.

    Written by the pool (insert on submit, remove on completion) and read by
    the watchdog sweep and the drain loop; every access takes the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Path, RegistryEntry] = {}

    def register(self, job: MirrorJob, future: "Future[JobOutcome]") -> None:
        with self._lock:
            current = self._entries.get(job.source_path)
            if current is not None and not current.future.done():
                raise DuplicateJobError(job.source_path)
            self._entries[job.source_path] = RegistryEntry(job=job, future=future)

    def discard(self, job: MirrorJob, future: "Future[JobOutcome]") -> None:
        """Removes the entry only if it still refers to this future."""
        with self._lock:
            current = self._entries.get(job.source_path)
            if current is not None and current.future is future:
                del self._entries[job.source_path]

    def snapshot(self) -> List[RegistryEntry]:
        with self._lock:
            return list(self._entries.values())

    def outstanding(self) -> List[RegistryEntry]:
        return [entry for entry in self.snapshot() if not entry.future.done()]

    def __contains__(self, source_path: Path) -> bool:
        with self._lock:
            return source_path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
