"""Converter capability set and helpers shared by the concrete backends.

A converter is anything providing ``produced_extension``, ``decide`` and
``perform``; backends do not inherit from a common class.
"""

import logging
import time
from pathlib import Path
from typing import List, Protocol
from mediamirror.domain.errors import CopyError, EncodeFailure
from mediamirror.domain.models import ConversionResult, ConvertAction
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.process import ProcessRunner

logger = logging.getLogger(__name__)


class ConverterStrategy(Protocol):
    name: str

    def produced_extension(self) -> str: ...

    def decide(self, source: Path) -> ConvertAction: ...

    def perform(self, action: ConvertAction, source: Path, destination: Path) -> ConversionResult: ...


def copy_source(fs: LocalFilesystem, action: ConvertAction, source: Path, destination: Path) -> ConversionResult:
    """Byte-copies source and verifies the copy matches the source's final length."""
    start = time.monotonic()
    written = fs.copy(source, destination)
    expected = fs.size(source)
    if written != expected:
        raise CopyError(
            f"Copied {written} bytes but {source} is now {expected} bytes", destination
        )
    return ConversionResult(
        action=action,
        destination=destination,
        bytes_written=written,
        elapsed_seconds=time.monotonic() - start,
    )


def run_encoder(
    runner: ProcessRunner,
    command: List[str],
    action: ConvertAction,
    source: Path,
    destination: Path,
) -> ConversionResult:
    """Runs an encode command; a non-zero exit raises EncodeFailure."""
    start = time.monotonic()
    logger.debug(f"ENCODER_CMD: {' '.join(command)}")
    try:
        result = runner.run(command)
    except OSError as e:
        raise EncodeFailure(source, None, command, str(e)) from e
    if not result.ok:
        raise EncodeFailure(source, result.returncode, command, result.output)
    return ConversionResult(
        action=action,
        destination=destination,
        elapsed_seconds=time.monotonic() - start,
    )
