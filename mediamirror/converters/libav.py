import re
import logging
from pathlib import Path
from typing import List, Optional
from mediamirror.config.models import LibavConfig
from mediamirror.converters.base import copy_source, run_encoder
from mediamirror.domain.errors import EncodeFailure
from mediamirror.domain.models import ActionKind, ConversionResult, ConvertAction
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.process import ProcessRunner
from mediamirror.pipeline.path_mapper import get_extension, normalize_extension


class LibavConverter:
    """Produces h264/ac3 MP4 files with avconv (or ffmpeg).

    The source is probed first so only the streams that are not already in the
    desired codec get re-encoded.
    """

    name = "libav"

    def __init__(
        self,
        config: LibavConfig,
        runner: ProcessRunner,
        executable: Path,
        fs: Optional[LocalFilesystem] = None,
    ):
        self.config = config
        self.runner = runner
        self.executable = executable
        self.fs = fs or LocalFilesystem()
        self.logger = logging.getLogger(__name__)
        self._video_regex = re.compile(rf"Video: {re.escape(config.desired_video)}\b")
        self._audio_regex = re.compile(rf"Audio: {re.escape(config.desired_audio)}\b")

    def produced_extension(self) -> str:
        return normalize_extension(self.config.extension)

    def _global_flags(self) -> List[str]:
        return ["-threads", str(self.config.threads)]

    def _video_flags(self, encode: bool) -> List[str]:
        return ["-vcodec", self.config.video_codec if encode else "copy"]

    def _audio_flags(self, encode: bool) -> List[str]:
        if encode:
            return ["-acodec", self.config.audio_codec, "-ab", self.config.audio_bitrate]
        return ["-acodec", "copy"]

    def probe(self, source: Path) -> str:
        """Returns the tool's stream description for source (exit status is ignored)."""
        command = [str(self.executable), "-i", str(source)]
        try:
            return self.runner.run(command, capture_all=True).output
        except OSError as e:
            raise EncodeFailure(source, None, command, str(e)) from e

    def is_desired_video_codec(self, info: str) -> bool:
        return bool(self._video_regex.search(info))

    def is_desired_audio_codec(self, info: str) -> bool:
        return bool(self._audio_regex.search(info))

    def decide(self, source: Path) -> ConvertAction:
        info = self.probe(source)
        video_ok = self.is_desired_video_codec(info)
        audio_ok = self.is_desired_audio_codec(info)
        extension = get_extension(source.name)

        if video_ok and audio_ok:
            if extension.lower() == self.produced_extension().lower():
                return ConvertAction.verbatim(description="Copying file")
            return ConvertAction.encode(
                self._global_flags() + self._video_flags(False) + self._audio_flags(False),
                description=f"Copying codec data for {extension or 'extensionless'} file",
            )
        if video_ok:
            return ConvertAction.encode(
                self._global_flags() + self._video_flags(False) + self._audio_flags(True),
                description="Encoding audio",
            )
        if audio_ok:
            return ConvertAction.encode(
                self._global_flags() + self._video_flags(True) + self._audio_flags(False),
                description="Encoding video",
            )
        return ConvertAction.encode(
            self._global_flags() + self._video_flags(True) + self._audio_flags(True),
            description="Encoding",
        )

    def build_command(self, action: ConvertAction, source: Path, destination: Path) -> List[str]:
        return [str(self.executable), "-i", str(source), *action.flags, str(destination)]

    def perform(self, action: ConvertAction, source: Path, destination: Path) -> ConversionResult:
        if action.kind is ActionKind.COPY:
            return copy_source(self.fs, action, source, destination)
        command = self.build_command(action, source, destination)
        return run_encoder(self.runner, command, action, source, destination)
