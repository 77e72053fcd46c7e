import os
import shutil
from pathlib import Path
from typing import Iterable, Optional


def find_executable(names: Iterable[str], search_paths: Iterable[str] = ()) -> Optional[Path]:
    """Returns the first executable found for any of ``names``.

    PATH is tried first for each name, then the explicit search paths.
    """
    search_paths = list(search_paths)
    for name in names:
        found = shutil.which(name)
        if found:
            return Path(found)
        for directory in search_paths:
            candidate = Path(directory) / name
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return candidate
    return None
