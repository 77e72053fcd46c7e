import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from mediamirror.domain.errors import FilesystemError
from mediamirror.infrastructure.clock import Clock, SystemClock
from mediamirror.infrastructure.filesystem import LocalFilesystem

DEFAULT_WINDOW_S = 10.0
MIN_SLEEP_S = 0.01


@dataclass(frozen=True)
class StabilityReading:
    stable: bool
    size: int  # -1 when the file could not be stat'ed
    checked_at: float


class StabilityGate:
    """Decides whether a file has stopped growing.

    A file is stable when its size is unchanged after the quiescence window has
    elapsed since the size was captured. The sleep happens on the calling
    worker thread and holds no lock.
    """

    def __init__(
        self,
        window_s: float = DEFAULT_WINDOW_S,
        clock: Optional[Clock] = None,
        fs: Optional[LocalFilesystem] = None,
    ):
        self.window_s = window_s
        self.clock = clock or SystemClock()
        self.fs = fs or LocalFilesystem()
        self.logger = logging.getLogger(__name__)

    def check(self, path: Path, captured_size: int, captured_at: float) -> StabilityReading:
        """Waits out the window and re-reads the size.

        The returned reading carries the new baseline, so an unstable file can
        be re-checked with ``check(path, reading.size, reading.checked_at)``.
        """
        elapsed = self.clock.monotonic() - captured_at
        remaining = self.window_s - elapsed
        if remaining > MIN_SLEEP_S:
            self.clock.sleep(remaining)

        try:
            size = self.fs.size(path)
        except FilesystemError as e:
            self.logger.info(f"File disappeared while waiting for stability: {path} ({e})")
            return StabilityReading(stable=False, size=-1, checked_at=self.clock.monotonic())

        checked_at = self.clock.monotonic()
        if size != captured_size:
            self.logger.info(f"Filesize changed for file: {path}...{captured_size}/{size}")
            return StabilityReading(stable=False, size=size, checked_at=checked_at)
        return StabilityReading(stable=True, size=size, checked_at=checked_at)

    def is_stable(self, path: Path, captured_size: int, captured_at: float) -> bool:
        return self.check(path, captured_size, captured_at).stable

    def wait_until_stable(
        self,
        path: Path,
        captured_size: int,
        captured_at: float,
        retries: int = 0,
    ) -> StabilityReading:
        """Re-arms the gate with each new baseline up to ``retries`` extra times."""
        reading = self.check(path, captured_size, captured_at)
        attempts = 0
        while not reading.stable and reading.size >= 0 and attempts < retries:
            attempts += 1
            self.logger.debug(f"STABILITY_RETRY: {path.name} attempt {attempts}/{retries}")
            reading = self.check(path, reading.size, reading.checked_at)
        return reading
