import os
import shutil
from pathlib import Path
from mediamirror.domain.errors import CopyError, DeleteError, FileAccessError, FilesystemError


class LocalFilesystem:
    """Filesystem operations used by the pipeline; failures raise FilesystemError subclasses."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def size(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError as e:
            raise FileAccessError(f"Cannot stat {path}: {e}", path) from e

    def is_readable(self, path: Path) -> bool:
        return os.access(path, os.R_OK)

    def ensure_directory(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Could not make directory {path}: {e}", path) from e

    def copy(self, source: Path, destination: Path) -> int:
        """Copies source to destination and returns the size of the written file."""
        try:
            shutil.copyfile(source, destination)
            return destination.stat().st_size
        except OSError as e:
            raise CopyError(f"Copy {source} -> {destination} failed: {e}", destination) from e

    def delete(self, path: Path) -> bool:
        """Deletes a file; returns False when it was already absent."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise DeleteError(f"Failed to delete file {path}: {e}", path) from e
        return True
