import logging
import threading
from pathlib import Path
from typing import Iterable, Optional
from mediamirror.domain.errors import FilesystemError
from mediamirror.domain.events import ReconcileFinished
from mediamirror.domain.models import ReconcileReport, SourceEntry
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.infrastructure.file_scanner import DirectoryScanner
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.pipeline.path_mapper import destination_path


class Reconciler:
    """Deletes destination files whose source no longer exists.

    Each pass takes fresh listings of both directories. Destination
    subdirectories and protected paths are never touched. Passes are
    serialized, so the periodic task and the final pass cannot interleave.

    ``retained`` is the valid source list from admission. When given, a source
    the fresh scan reports as unreadable only keeps its destination if
    admission retained it.
    """

    def __init__(
        self,
        source_dir: Path,
        dest_dir: Path,
        produced_extension: str,
        scanner: Optional[DirectoryScanner] = None,
        fs: Optional[LocalFilesystem] = None,
        event_bus: Optional[EventBus] = None,
        protected: Iterable[Path] = (),
        retained: Optional[Iterable[SourceEntry]] = None,
    ):
        self.source_dir = source_dir
        self.dest_dir = dest_dir
        self.produced_extension = produced_extension
        self.scanner = scanner or DirectoryScanner()
        self.fs = fs or LocalFilesystem()
        self.event_bus = event_bus
        self.protected = {Path(p).absolute() for p in protected}
        self.retained = None if retained is None else {entry.path for entry in retained}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def reconcile(self, stale: Iterable[Path] = (), final: bool = False) -> ReconcileReport:
        """Runs one pass.

        Args:
            stale: Destinations to remove even though their source still exists
                (leftovers of failed jobs), so the file is retried next run.
            final: Marks the end-of-run pass in the published event.
        """
        with self._lock:
            report = self._reconcile(set(stale))
        if report.deleted or report.failed:
            self.logger.info(
                f"Reconcile: deleted={len(report.deleted)}, failed={len(report.failed)}"
            )
        if self.event_bus is not None:
            self.event_bus.publish(ReconcileFinished(
                deleted=report.deleted, failed=report.failed, final=final
            ))
        return report

    def _reconcile(self, stale: set) -> ReconcileReport:
        report = ReconcileReport()
        try:
            # source listing is fresh: files removed during the run must count as gone
            sources = self.scanner.list_directory(self.source_dir)
            dest_entries = self.scanner.list_directory(self.dest_dir)
        except FilesystemError as e:
            self.logger.error(f"Reconcile skipped, listing failed: {e}")
            return report

        expected = {
            destination_path(entry.path, self.produced_extension, self.dest_dir)
            for entry in sources
            if not entry.is_dir and self._counts_as_source(entry)
        }

        for entry in dest_entries:
            if entry.is_dir or entry.path in self.protected:
                continue
            if entry.path in expected and entry.path not in stale:
                continue
            if entry.path in stale:
                self.logger.info(f"Deleting partial output of failed job: {entry.path}")
            else:
                self.logger.info(f"Deleting file: {entry.path}")
            try:
                if self.fs.delete(entry.path):
                    report.deleted.append(entry.path)
            except FilesystemError as e:
                self.logger.error(f"Failed to delete file: {entry.path} ({e})")
                report.failed.append(entry.path)
        return report

    def _counts_as_source(self, entry: SourceEntry) -> bool:
        if entry.readable or self.retained is None:
            return True
        return entry.path in self.retained
