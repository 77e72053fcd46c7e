"""Exception taxonomy for the mirroring pipeline.

Fatal conditions (``AdmissionError``, ``WatchdogOverrun``) end the run. Everything
else is recorded against a single job or reconciliation pass and never aborts
sibling work.
"""

from pathlib import Path
from typing import List, Optional


class MirrorError(Exception):
    """Base class for all mediamirror errors."""


class AdmissionError(MirrorError):
    """Source or destination directory failed a run precondition."""


class ConverterUnavailableError(MirrorError):
    """Requested converter is unknown or its executable cannot be found."""


class DuplicateJobError(MirrorError):
    """A second job was registered while one is still outstanding for the same source."""

    def __init__(self, source_path: Path):
        super().__init__(f"Job already outstanding for {source_path}")
        self.source_path = source_path


class FilesystemError(MirrorError):
    """A filesystem query or mutation failed."""

    def __init__(self, message: str, path: Path):
        super().__init__(message)
        self.path = path


class FileAccessError(FilesystemError):
    pass


class ListingError(FilesystemError):
    pass


class CopyError(FilesystemError):
    pass


class DeleteError(FilesystemError):
    pass


class EncodeFailure(MirrorError):
    """External encoder exited non-zero (or could not be started)."""

    def __init__(
        self,
        source_path: Path,
        returncode: Optional[int],
        command: Optional[List[str]] = None,
        output_tail: str = "",
    ):
        if returncode is None:
            message = f"Encoder could not be started for {source_path}"
        else:
            message = f"Encoder exited with code {returncode} for {source_path}"
        super().__init__(message)
        self.source_path = source_path
        self.returncode = returncode
        self.command = command or []
        self.output_tail = output_tail


class WatchdogOverrun(MirrorError):
    """Global run deadline elapsed with jobs still incomplete."""

    def __init__(self, overrun: List[Path], deleted: List[Path], deadline_s: float):
        super().__init__(
            f"Run exceeded {deadline_s:.0f}s deadline with {len(overrun)} job(s) still running"
        )
        self.overrun = overrun
        self.deleted = deleted
        self.deadline_s = deadline_s
