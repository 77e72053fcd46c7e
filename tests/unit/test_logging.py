"""Unit tests for logging infrastructure."""
import logging
from mediamirror.infrastructure.logging import default_log_file, setup_logging


def flush(logger):
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_default_log_file_is_beside_destination(tmp_path):
    dest = tmp_path / "mirror"
    assert default_log_file(dest) == tmp_path / "mirror_mirror.log"


def test_setup_logging_creates_log_file(tmp_path):
    """Test that setup_logging creates log file outside the destination."""
    dest = tmp_path / "dest"
    dest.mkdir()

    logger = setup_logging(dest, debug=False)

    assert isinstance(logger, logging.Logger)
    assert default_log_file(dest).exists()
    assert list(dest.iterdir()) == []


def test_setup_logging_custom_path(tmp_path):
    log_path = tmp_path / "logs" / "run.log"

    logger = setup_logging(tmp_path / "dest", log_path=log_path)
    logger.info("custom path message")
    flush(logger)

    assert "custom path message" in log_path.read_text()


def test_setup_logging_debug_mode(tmp_path):
    logger = setup_logging(tmp_path / "dest", debug=True)
    assert logger.getEffectiveLevel() == logging.DEBUG


def test_setup_logging_normal_mode(tmp_path):
    logger = setup_logging(tmp_path / "dest", debug=False)
    assert logger.getEffectiveLevel() == logging.INFO


def test_setup_logging_format_includes_level(tmp_path):
    dest = tmp_path / "dest"
    logger = setup_logging(dest, debug=False)

    logger.info("Info message")
    logger.warning("Warning message")
    logger.error("Error message")
    flush(logger)

    content = default_log_file(dest).read_text()
    assert " - INFO - Info message" in content
    assert " - WARNING - Warning message" in content
    assert " - ERROR - Error message" in content
    assert "Logging initialized" in content


def test_setup_logging_debug_messages(tmp_path):
    """Debug messages only appear in debug mode."""
    dest = tmp_path / "dest"

    normal = setup_logging(dest, debug=False)
    normal.debug("Debug message in normal mode")
    flush(normal)
    assert "Debug message in normal mode" not in default_log_file(dest).read_text()

    debug = setup_logging(dest, debug=True)
    debug.debug("Debug message in debug mode")
    flush(debug)
    assert "Debug message in debug mode" in default_log_file(dest).read_text()
