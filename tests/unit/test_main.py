import pytest
from pydantic import ValidationError
from typer.testing import CliRunner

from mediamirror import main as mirror_main
from mediamirror.config.models import AppConfig
from mediamirror.domain.errors import ConverterUnavailableError
from mediamirror.domain.models import RunSummary


def test_main_missing_source_dir_exits(tmp_path):
    runner = CliRunner()
    result = runner.invoke(mirror_main.app, [str(tmp_path / "missing"), str(tmp_path / "dest")])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_main_requires_destination(tmp_path):
    result = CliRunner().invoke(mirror_main.app, [str(tmp_path)])

    assert result.exit_code == 2


def test_main_unknown_converter_exits(tmp_path):
    source = tmp_path / "src"
    source.mkdir()

    result = CliRunner().invoke(mirror_main.app, [str(source), str(tmp_path / "dst"), "handbrake"])

    assert result.exit_code == 1
    assert "Unknown converter type" in result.output


def test_main_encode_parallelism_must_be_positive(tmp_path):
    source = tmp_path / "src"
    source.mkdir()

    result = CliRunner().invoke(mirror_main.app, [str(source), str(tmp_path / "dst"), "mencoder", "0"])

    assert result.exit_code == 2


def test_main_missing_converter_executable(tmp_path, monkeypatch):
    source = tmp_path / "src"
    source.mkdir()

    def unavailable(name, config, runner, fs):
        raise ConverterUnavailableError("Could not find mencoder executable: mencoder")

    monkeypatch.setattr(mirror_main, "build_converter", unavailable)
    result = CliRunner().invoke(mirror_main.app, [str(source), str(tmp_path / "dst")])

    assert result.exit_code == 1
    assert "Could not find mencoder" in result.output


def test_main_applies_overrides_and_runs(tmp_path, monkeypatch, fake_converter):
    source = tmp_path / "src"
    source.mkdir()
    dest = tmp_path / "dst"
    created = {}

    def fake_build_converter(name, config, runner, fs):
        created["converter_name"] = name
        return fake_converter

    class DummyOrchestrator:
        def __init__(self, config, converter, event_bus, fs, process_tracker, protected_paths):
            created["config"] = config
            created["protected"] = protected_paths

        def run(self, source_dir, dest_dir):
            created["run"] = (source_dir, dest_dir)
            return RunSummary(source_dir=source_dir, dest_dir=dest_dir)

    monkeypatch.setattr(mirror_main, "build_converter", fake_build_converter)
    monkeypatch.setattr(mirror_main, "Orchestrator", DummyOrchestrator)

    result = CliRunner().invoke(
        mirror_main.app,
        [
            str(source),
            str(dest),
            "LIBAV",
            "6",
            "--max-run-time", "120",
            "--stability-window", "2.5",
            "--reconcile-interval", "30",
            "--debug",
        ],
    )

    assert result.exit_code == 0, result.output
    general = created["config"].general
    assert created["converter_name"] == "libav"
    assert general.encode_threads == 6
    # pool grows to fit the requested encode parallelism
    assert general.threads == 8
    assert general.max_run_time_s == 120
    assert general.stability_window_s == 2.5
    assert general.reconcile_interval_s == 30
    assert general.debug is True
    assert created["run"] == (source.absolute(), dest.absolute())
    assert created["protected"] == [tmp_path / "dst_mirror.log"]


def test_apply_overrides_raises_threads_to_fit():
    config = mirror_main.apply_overrides(AppConfig(), encode_threads=12)

    assert config.general.encode_threads == 12
    assert config.general.threads == 12


def test_apply_overrides_explicit_threads_still_validated():
    with pytest.raises(ValidationError):
        mirror_main.apply_overrides(AppConfig(), encode_threads=6, threads=2)


def test_main_reports_failed_jobs(tmp_path, monkeypatch, fake_converter):
    source = tmp_path / "src"
    source.mkdir()

    class FailingRunOrchestrator:
        def __init__(self, *args, **kwargs):
            pass

        def run(self, source_dir, dest_dir):
            return RunSummary(source_dir=source_dir, dest_dir=dest_dir, failures=["a.mkv: boom"])

    monkeypatch.setattr(mirror_main, "build_converter", lambda *a: fake_converter)
    monkeypatch.setattr(mirror_main, "Orchestrator", FailingRunOrchestrator)

    result = CliRunner().invoke(mirror_main.app, [str(source), str(tmp_path / "dst"), "--quiet"])

    assert result.exit_code == 0
    assert "1 file(s) failed" in result.output
