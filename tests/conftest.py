import pytest
import threading
import time
import yaml
from pathlib import Path
from typing import Dict, List, Optional, Set
from mediamirror.config.models import AppConfig
from mediamirror.domain.errors import EncodeFailure
from mediamirror.domain.models import ActionKind, ConversionResult, ConvertAction
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.infrastructure.file_scanner import DirectoryScanner
from mediamirror.pipeline.path_mapper import get_extension

# ============================================================================
# Test Doubles
# ============================================================================

class FakeClock:
    """Manual clock: sleep() advances time instantly and is recorded."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []
        self.on_sleep = None
        self._lock = threading.Lock()

    def monotonic(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(seconds)

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class FakeConverter:
    """In-process converter: 'encodes' by writing a marker, copies same-extension files.

    Sources listed in ``fail`` write a partial file and raise EncodeFailure.
    Sources listed in ``block`` write a partial file, then wait on ``release``.
    """

    name = "fake"

    def __init__(
        self,
        extension: str = ".avi",
        fail: Optional[Set[str]] = None,
        block: Optional[Set[str]] = None,
        delay: float = 0.0,
    ):
        self.extension = extension
        self.fail = fail or set()
        self.block = block or set()
        self.delay = delay
        self.release = threading.Event()
        self.started = threading.Event()
        self.performed: List[Path] = []
        self.max_concurrent = 0
        self._active = 0
        self._lock = threading.Lock()

    def produced_extension(self) -> str:
        return self.extension

    def decide(self, source: Path) -> ConvertAction:
        if get_extension(source.name).lower() == self.extension:
            return ConvertAction.verbatim()
        return ConvertAction.encode(["-fake"])

    def perform(self, action: ConvertAction, source: Path, destination: Path) -> ConversionResult:
        with self._lock:
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)
            self.performed.append(source)
        try:
            if self.delay:
                time.sleep(self.delay)
            if source.name in self.block:
                destination.write_bytes(b"partial")
                self.started.set()
                self.release.wait(timeout=10)
            if source.name in self.fail:
                destination.write_bytes(b"partial")
                raise EncodeFailure(source, 1, ["fake", str(source)], "boom")
            if action.kind is ActionKind.COPY:
                destination.write_bytes(source.read_bytes())
            else:
                destination.write_bytes(b"encoded:" + source.read_bytes())
            return ConversionResult(action=action, destination=destination)
        finally:
            with self._lock:
                self._active -= 1


class LockedScanner(DirectoryScanner):
    """Reports entries named in ``locked`` as unreadable, whatever the process privileges."""

    def __init__(self, locked: Set[str], clock=None):
        super().__init__(clock=clock)
        self.locked = locked

    def list_directory(self, directory: Path):
        return [
            entry.model_copy(update={"readable": False}) if entry.path.name in self.locked else entry
            for entry in super().list_directory(directory)
        ]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_converter():
    return FakeConverter()


@pytest.fixture
def make_converter():
    """Returns the FakeConverter class for tests needing failing or blocking sources."""
    return FakeConverter


@pytest.fixture
def locked_scanner():
    """Returns the LockedScanner class."""
    return LockedScanner

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def fast_config():
    """AppConfig tuned for tests: no stability wait, short progress interval."""
    return AppConfig(
        general={
            "threads": 4,
            "encode_threads": 2,
            "stability_window_s": 0,
            "reconcile_interval_s": 3600,
            "progress_interval_s": 0.05,
            "kill_encoders_on_overrun": False,
        }
    )


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mediamirror.yaml"

    content = {
        'general': {
            'threads': 6,
            'encode_threads': 3,
            'max_run_time_s': 3600,
            'stability_window_s': 5,
            'converter': 'LIBAV',
            'debug': False,
        },
        'libav': {
            'threads': 4,
            'audio_bitrate': '384k',
        }
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Subscribes to every event and returns the list they are appended to."""
    from mediamirror.domain.events import Event
    received: List[Event] = []
    event_bus.subscribe(Event, received.append)
    return received

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def source_dir(tmp_path):
    """Creates a test source directory."""
    directory = tmp_path / "source"
    directory.mkdir()
    return directory


@pytest.fixture
def dest_dir(tmp_path):
    """Creates a test destination directory."""
    directory = tmp_path / "dest"
    directory.mkdir()
    return directory


@pytest.fixture
def write_files():
    """Returns a helper writing {name: bytes} into a directory."""
    def _write(directory: Path, files: Dict[str, bytes]) -> List[Path]:
        paths = []
        for name, content in files.items():
            path = directory / name
            path.write_bytes(content)
            paths.append(path)
        return paths
    return _write

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (real subprocesses, timers)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
