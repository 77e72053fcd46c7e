import typer
import traceback
from pathlib import Path
from typing import Optional
from pydantic import ValidationError
from mediamirror.config.loader import load_config_or_default
from mediamirror.config.models import AppConfig, GeneralConfig
from mediamirror.converters.factory import build_converter
from mediamirror.domain.errors import AdmissionError, ConverterUnavailableError
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.logging import default_log_file, setup_logging
from mediamirror.infrastructure.process import ProcessRunner, ProcessTracker
from mediamirror.pipeline.orchestrator import Orchestrator
from mediamirror.ui.reporter import ConsoleReporter

app = typer.Typer(help="Media Mirror - keep a transcoded copy of a directory in sync")


def apply_overrides(config: AppConfig, **overrides) -> AppConfig:
    """Returns a copy of config with non-None CLI overrides validated into ``general``."""
    general = config.general.model_dump()
    general.update({key: value for key, value in overrides.items() if value is not None})
    encode_threads = overrides.get("encode_threads")
    if encode_threads is not None and overrides.get("threads") is None:
        # pool must be at least as large as the requested encode parallelism
        general["threads"] = max(general["threads"], encode_threads)
    return config.model_copy(update={"general": GeneralConfig(**general)})


@app.command()
def mirror(
    source_dir: Path = typer.Argument(..., help="Directory to mirror from"),
    dest_dir: Path = typer.Argument(..., help="Directory to mirror into (created if missing)"),
    converter: Optional[str] = typer.Argument(None, help="Converter backend: mencoder or libav"),
    encode_parallelism: Optional[int] = typer.Argument(
        None, min=1, help="Maximum number of conversions running at once"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", min=1, help="Override total worker threads"),
    max_run_time: Optional[float] = typer.Option(
        None, "--max-run-time", help="Seconds before the watchdog aborts the run"
    ),
    stability_window: Optional[float] = typer.Option(
        None, "--stability-window", help="Seconds a source file must keep its size before conversion"
    ),
    reconcile_interval: Optional[float] = typer.Option(
        None, "--reconcile-interval", help="Seconds between reconciliation passes"
    ),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print failures"),
):
    """Mirror SOURCE_DIR into DEST_DIR, converting every file that has no counterpart yet."""
    try:
        config = apply_overrides(
            load_config_or_default(config_path),
            converter=converter,
            encode_threads=encode_parallelism,
            threads=threads,
            max_run_time_s=max_run_time,
            stability_window_s=stability_window,
            reconcile_interval_s=reconcile_interval,
            log_path=str(log_path) if log_path is not None else None,
            debug=True if debug else None,
        )
    except (FileNotFoundError, ValueError, ValidationError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    source_dir = source_dir.absolute()
    dest_dir = dest_dir.absolute()
    if not source_dir.is_dir():
        typer.secho(f"Error: Source directory does not exist: {source_dir}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    general = config.general
    log_file = Path(general.log_path).absolute() if general.log_path else default_log_file(dest_dir)
    logger = setup_logging(dest_dir, debug=general.debug, log_path=log_file)
    logger.info(f"Mirroring {source_dir} -> {dest_dir} with {general.converter}")
    logger.info(
        f"Threads: {general.threads} (encode: {general.encode_threads}), "
        f"max run time: {general.max_run_time_s:.0f}s"
    )

    try:
        fs = LocalFilesystem()
        tracker = ProcessTracker()
        runner = ProcessRunner(tracker=tracker)
        backend = build_converter(general.converter, config, runner, fs)

        bus = EventBus()
        ConsoleReporter(bus, quiet=quiet)

        orchestrator = Orchestrator(
            config,
            backend,
            event_bus=bus,
            fs=fs,
            process_tracker=tracker,
            protected_paths=[log_file],
        )
        summary = orchestrator.run(source_dir, dest_dir)
        if summary.failed:
            typer.secho(
                f"{summary.failed} file(s) failed and will be retried next run",
                fg=typer.colors.YELLOW,
                err=True,
            )

    except (AdmissionError, ConverterUnavailableError) as e:
        logger.error(str(e))
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        typer.secho("\nMirroring stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        with open("error.log", "a") as f:
            traceback.print_exc(file=f)
        logger.exception("Fatal error")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
