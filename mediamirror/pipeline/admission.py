import os
import logging
from pathlib import Path
from typing import Iterable, Optional
from mediamirror.domain.errors import AdmissionError, FilesystemError
from mediamirror.domain.models import AdmissionResult, MirrorJob, SourceEntry
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.pipeline.path_mapper import destination_path


def prepare_directories(source_dir: Path, dest_dir: Path, fs: Optional[LocalFilesystem] = None) -> None:
    """Checks run preconditions; creates the destination when missing."""
    fs = fs or LocalFilesystem()
    if not source_dir.exists():
        raise AdmissionError(f"Source folder does not exist: {source_dir}")
    if not source_dir.is_dir():
        raise AdmissionError(f"Source folder is not a folder: {source_dir}")
    if not os.access(source_dir, os.R_OK | os.X_OK):
        raise AdmissionError(f"Source folder is not readable: {source_dir}")
    if not dest_dir.exists():
        try:
            fs.ensure_directory(dest_dir)
        except FilesystemError as e:
            raise AdmissionError(f"Could not make destination folder: {dest_dir} ({e})") from e
    elif not dest_dir.is_dir():
        raise AdmissionError(f"Destination folder is not a folder: {dest_dir}")


class JobAdmission:
    """Turns one snapshot of the source and destination listings into jobs.

    Admission never touches the filesystem: both listings must come from a
    single scan taken at the start of the run.
    """

    def __init__(self, produced_extension: str):
        self.produced_extension = produced_extension
        self.logger = logging.getLogger(__name__)

    def admit(
        self,
        source_listing: Iterable[SourceEntry],
        dest_listing: Iterable[SourceEntry],
        dest_dir: Path,
    ) -> AdmissionResult:
        existing = {entry.path for entry in dest_listing}
        result = AdmissionResult()
        admitted = set()

        for entry in source_listing:
            if entry.is_dir:
                continue
            new_file = destination_path(entry.path, self.produced_extension, dest_dir)

            if not entry.readable:
                result.unreadable += 1
                if new_file in existing:
                    self.logger.warning(
                        f"Can not read file: {entry.path}"
                        f"...will not remove already converted file: {new_file}"
                    )
                    # keep it so the already converted file is not removed
                    result.valid_sources.append(entry)
                else:
                    self.logger.warning(f"Can not read file: {entry.path}")
                continue

            result.valid_sources.append(entry)
            if new_file in existing:
                result.already_converted += 1
                continue
            if new_file in admitted:
                # e.g. "clip.mkv" and "clip.mov" both map to "clip.avi"
                self.logger.warning(
                    f"Skipping {entry.path}: destination {new_file} already claimed by another source"
                )
                continue
            admitted.add(new_file)
            result.jobs.append(MirrorJob(source=entry, destination=new_file))

        self.logger.info(
            f"Admission finished: jobs={len(result.jobs)}, "
            f"already_converted={result.already_converted}, unreadable={result.unreadable}"
        )
        return result
