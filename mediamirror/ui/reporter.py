import threading
from typing import Optional
from rich.console import Console
from rich.table import Table
from mediamirror.domain.events import (
    AdmissionFinished,
    JobCompleted,
    JobFailed,
    JobSkipped,
    ReconcileFinished,
    RunFinished,
    WatchdogTriggered,
)
from mediamirror.domain.models import RunSummary
from mediamirror.infrastructure.event_bus import EventBus


class ConsoleReporter:
    """Prints pipeline events to the terminal with rich.

    Events arrive from worker threads; printing is serialized with a lock.
    """

    def __init__(self, bus: EventBus, console: Optional[Console] = None, quiet: bool = False):
        self.console = console or Console()
        self.quiet = quiet
        self._lock = threading.Lock()
        bus.subscribe(AdmissionFinished, self.on_admission_finished)
        bus.subscribe(JobCompleted, self.on_job_completed)
        bus.subscribe(JobSkipped, self.on_job_skipped)
        bus.subscribe(JobFailed, self.on_job_failed)
        bus.subscribe(ReconcileFinished, self.on_reconcile_finished)
        bus.subscribe(WatchdogTriggered, self.on_watchdog_triggered)
        bus.subscribe(RunFinished, self.on_run_finished)

    def _print(self, message: str, force: bool = False):
        if self.quiet and not force:
            return
        with self._lock:
            self.console.print(message, highlight=False)

    @staticmethod
    def _progress(event) -> str:
        return f"[dim]({event.processed}/{event.total}, {event.percent_done:.1f}%)[/dim]"

    def on_admission_finished(self, event: AdmissionFinished):
        self._print(
            f"Admitted [bold]{event.jobs}[/bold] job(s); "
            f"{event.already_converted} already converted, {event.unreadable} unreadable"
        )

    def on_job_completed(self, event: JobCompleted):
        self._print(f"[green]✓[/green] {event.job.destination.name} {self._progress(event)}")

    def on_job_skipped(self, event: JobSkipped):
        reason = event.outcome.skip_reason.value if event.outcome.skip_reason else "skipped"
        self._print(f"[yellow]-[/yellow] {event.job.source_path.name}: {reason} {self._progress(event)}")

    def on_job_failed(self, event: JobFailed):
        self._print(
            f"[red]✗[/red] {event.job.source_path.name}: {event.outcome.error_message} {self._progress(event)}",
            force=True,
        )

    def on_reconcile_finished(self, event: ReconcileFinished):
        for path in event.deleted:
            self._print(f"[cyan]Deleted[/cyan] {path}")
        for path in event.failed:
            self._print(f"[red]Failed to delete[/red] {path}", force=True)

    def on_watchdog_triggered(self, event: WatchdogTriggered):
        self._print(
            f"[bold red]Run deadline exceeded[/bold red]: {len(event.overrun)} job(s) still running, "
            f"{len(event.deleted)} partial file(s) removed",
            force=True,
        )

    def on_run_finished(self, event: RunFinished):
        if not self.quiet:
            self.print_summary(event.summary)

    def print_summary(self, summary: RunSummary):
        table = Table(title="Mirror summary", show_header=False)
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Source", str(summary.source_dir))
        table.add_row("Destination", str(summary.dest_dir))
        table.add_row("Jobs", str(summary.jobs_total))
        table.add_row("Succeeded", f"[green]{summary.succeeded}[/green]")
        table.add_row("Skipped", str(summary.skipped))
        table.add_row("Failed", f"[red]{summary.failed}[/red]" if summary.failed else "0")
        table.add_row("Already converted", str(summary.already_converted))
        table.add_row("Unreadable", str(summary.unreadable))
        table.add_row("Deleted", str(len(summary.deleted)))
        table.add_row("Elapsed", f"{summary.elapsed_seconds:.1f}s")
        with self._lock:
            self.console.print(table)
            for failure in summary.failures:
                self.console.print(f"  [red]•[/red] {failure}", highlight=False)
