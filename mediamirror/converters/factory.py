from mediamirror.config.models import AppConfig, validate_converter_name
from mediamirror.converters.base import ConverterStrategy
from mediamirror.converters.libav import LibavConverter
from mediamirror.converters.mencoder import MencoderConverter
from mediamirror.domain.errors import ConverterUnavailableError
from mediamirror.infrastructure.executables import find_executable
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.process import ProcessRunner


def build_converter(
    name: str,
    config: AppConfig,
    runner: ProcessRunner,
    fs: LocalFilesystem,
) -> ConverterStrategy:
    """Selects and constructs the converter backend once per run."""
    try:
        converter_type = validate_converter_name(name)
    except ValueError as e:
        raise ConverterUnavailableError(str(e)) from e

    if converter_type == "mencoder":
        executable = find_executable([config.mencoder.executable])
        if executable is None:
            raise ConverterUnavailableError(
                f"Could not find mencoder executable: {config.mencoder.executable}"
            )
        return MencoderConverter(config.mencoder, runner, fs=fs, executable=str(executable))

    executable = find_executable(config.libav.executables, config.libav.search_paths)
    if executable is None:
        raise ConverterUnavailableError(
            f"Could not find libav executable (tried {', '.join(config.libav.executables)})"
        )
    return LibavConverter(config.libav, runner, executable, fs=fs)
