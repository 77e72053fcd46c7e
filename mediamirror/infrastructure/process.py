import os
import signal
import subprocess
import threading
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

TAIL_LINES = 40


@dataclass
class ProcessResult:
    command: List[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessTracker:
    """Keeps track of live encoder processes so they can be signalled on overrun."""

    def __init__(self):
        self._lock = threading.Lock()
        self._processes: Dict[int, subprocess.Popen] = {}
        self.logger = logging.getLogger(__name__)

    def add(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes[process.pid] = process

    def discard(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes.pop(process.pid, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def terminate_all(self, sig: int = signal.SIGTERM) -> int:
        """Signals the process group of every live process. Returns how many were signalled."""
        with self._lock:
            processes = list(self._processes.values())
        signalled = 0
        for process in processes:
            if process.poll() is not None:
                continue
            try:
                if hasattr(os, "killpg"):
                    os.killpg(process.pid, sig)
                else:
                    process.send_signal(sig)
                signalled += 1
                self.logger.warning(f"Sent signal {sig} to encoder process group {process.pid}")
            except (ProcessLookupError, PermissionError) as e:
                self.logger.warning(f"Could not signal encoder process {process.pid}: {e}")
        return signalled


class ProcessRunner:
    """Runs external tools with their combined stdout/stderr drained while they run.

    stderr is merged into stdout and a reader thread consumes the single pipe,
    so a chatty encoder can never block on a full pipe buffer. Each process
    gets its own session (process group) and is registered with the tracker
    for its lifetime.
    """

    def __init__(self, tracker: Optional[ProcessTracker] = None):
        self.tracker = tracker
        self.logger = logging.getLogger(__name__)

    def run(self, command: List[str], capture_all: bool = False) -> ProcessResult:
        """Runs command to completion.

        Raises OSError when the executable cannot be started. With
        ``capture_all`` the full output is kept, otherwise only the last lines.
        """
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            universal_newlines=True,
            errors="replace",
            start_new_session=True,
        )
        if self.tracker is not None:
            self.tracker.add(process)

        lines: Deque[str] = deque() if capture_all else deque(maxlen=TAIL_LINES)

        def _reader():
            if not process.stdout:
                return
            for line in process.stdout:
                lines.append(line)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()
        try:
            reader_thread.join()
            returncode = process.wait()
        finally:
            if process.stdout:
                process.stdout.close()
            if self.tracker is not None:
                self.tracker.discard(process)

        return ProcessResult(command=list(command), returncode=returncode, output="".join(lines))
