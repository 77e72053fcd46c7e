from pathlib import Path
from typing import List, Optional
from mediamirror.config.models import MencoderConfig
from mediamirror.converters.base import copy_source, run_encoder
from mediamirror.domain.models import ActionKind, ConversionResult, ConvertAction
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.process import ProcessRunner
from mediamirror.pipeline.path_mapper import get_extension, normalize_extension


class MencoderConverter:
    """Produces xvid/mp3 AVI files with mencoder; existing AVI sources are copied as-is."""

    name = "mencoder"

    def __init__(
        self,
        config: MencoderConfig,
        runner: ProcessRunner,
        fs: Optional[LocalFilesystem] = None,
        executable: Optional[str] = None,
    ):
        self.config = config
        self.runner = runner
        self.fs = fs or LocalFilesystem()
        self.executable = executable or config.executable

    def produced_extension(self) -> str:
        return normalize_extension(self.config.extension)

    def decide(self, source: Path) -> ConvertAction:
        extension = get_extension(source.name)
        if extension.lower() == self.produced_extension().lower():
            return ConvertAction.verbatim(description="Copying file")
        return ConvertAction.encode(
            self.config.flags, description=f"Encoding {extension or 'extensionless'} file"
        )

    def build_command(self, action: ConvertAction, source: Path, destination: Path) -> List[str]:
        return [self.executable, str(source), *action.flags, "-o", str(destination)]

    def perform(self, action: ConvertAction, source: Path, destination: Path) -> ConversionResult:
        if action.kind is ActionKind.COPY:
            return copy_source(self.fs, action, source, destination)
        command = self.build_command(action, source, destination)
        return run_encoder(self.runner, command, action, source, destination)
