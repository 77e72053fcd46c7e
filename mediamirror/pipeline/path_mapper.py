from pathlib import Path
from typing import Optional, Union


def normalize_extension(extension: str) -> str:
    return extension if extension.startswith(".") else f".{extension}"


def get_extension(name: str) -> str:
    """Returns the last ``.ext`` suffix including the dot, or "" when there is none.

    A leading dot (hidden file) does not start an extension.
    """
    index = name.rfind(".")
    if index > 0:
        return name[index:]
    return ""


def maybe_replace_ext(name: str, desired_extension: str) -> str:
    desired_extension = normalize_extension(desired_extension)
    if get_extension(name).lower() == desired_extension.lower():
        return name
    index = name.rfind(".")
    if index > 0:
        return name[:index] + desired_extension
    return name + desired_extension


def destination_path(
    source_path: Union[str, Path],
    desired_extension: str,
    dest_dir: Optional[Path] = None,
) -> Path:
    """Maps a source file to the path its converted counterpart should have.

    Without ``dest_dir`` the result stays next to the source.
    """
    source_path = Path(source_path)
    new_name = maybe_replace_ext(source_path.name, desired_extension)
    parent = dest_dir if dest_dir is not None else source_path.parent
    return Path(parent) / new_name
