import logging
from pathlib import Path
from typing import Optional

def default_log_file(dest_dir: Path) -> Path:
    """Log file sits beside the destination so reconciliation never lists it."""
    return dest_dir.with_name(f"{dest_dir.name}_mirror.log")

def setup_logging(dest_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for a mirroring run.

    Writes to ``<dest>_mirror.log`` next to the destination directory unless
    ``log_path`` is given. Returns configured logger instance.

    Args:
        dest_dir: Destination directory of the run
        debug: If True, enable DEBUG level logging with per-job timings
        log_path: Optional path to log file (overrides the default location)
    """
    log_file = Path(log_path) if log_path else default_log_file(dest_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
