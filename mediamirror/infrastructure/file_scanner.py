import os
from pathlib import Path
from typing import List, Optional
from mediamirror.domain.errors import ListingError
from mediamirror.domain.models import SourceEntry
from mediamirror.infrastructure.clock import Clock, SystemClock

class DirectoryScanner:
    """Takes single-level snapshots of a directory.

    Entries are returned sorted by name. Directories are included (flagged
    ``is_dir``) so callers decide what to skip. An entry that cannot be stat'ed
    is reported as unreadable with size 0 rather than dropped.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def list_directory(self, directory: Path) -> List[SourceEntry]:
        try:
            with os.scandir(directory) as it:
                dir_entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise ListingError(f"Cannot list directory {directory}: {e}", directory) from e

        entries: List[SourceEntry] = []
        base = Path(directory).absolute()
        for dir_entry in dir_entries:
            path = base / dir_entry.name
            try:
                is_dir = dir_entry.is_dir()
                size = 0 if is_dir else dir_entry.stat().st_size
                readable = os.access(path, os.R_OK)
            except OSError:
                entries.append(SourceEntry(path=path, captured_at=self.clock.monotonic(), readable=False))
                continue
            entries.append(SourceEntry(
                path=path,
                size_bytes=size,
                captured_at=self.clock.monotonic(),
                readable=readable,
                is_dir=is_dir,
            ))
        return entries
