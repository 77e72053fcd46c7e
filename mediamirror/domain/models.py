from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class JobStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

class SkipReason(str, Enum):
    UNSTABLE_FILE = "unstable-file"
    ALREADY_CONVERTED = "already-converted"

class ActionKind(str, Enum):
    COPY = "COPY"
    ENCODE = "ENCODE"

class SourceEntry(BaseModel):
    """One directory entry as observed by a single scan."""
    model_config = ConfigDict(frozen=True)

    path: Path
    size_bytes: int = 0
    captured_at: float = 0.0  # clock.monotonic() when size_bytes was read
    readable: bool = True
    is_dir: bool = False

class MirrorJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: SourceEntry
    destination: Path

    @property
    def source_path(self) -> Path:
        return self.source.path

class JobOutcome(BaseModel):
    status: JobStatus
    skip_reason: Optional[SkipReason] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None

    @classmethod
    def succeeded(cls, duration_seconds: Optional[float] = None) -> "JobOutcome":
        return cls(status=JobStatus.SUCCEEDED, duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, cause: str, duration_seconds: Optional[float] = None) -> "JobOutcome":
        return cls(status=JobStatus.FAILED, error_message=cause, duration_seconds=duration_seconds)

    @classmethod
    def skipped(cls, reason: SkipReason) -> "JobOutcome":
        return cls(status=JobStatus.SKIPPED, skip_reason=reason)

class ConvertAction(BaseModel):
    """What a converter intends to do with one source file."""
    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    flags: List[str] = Field(default_factory=list)
    description: str = ""

    @classmethod
    def verbatim(cls, description: str = "copy") -> "ConvertAction":
        return cls(kind=ActionKind.COPY, description=description)

    @classmethod
    def encode(cls, flags: List[str], description: str = "encode") -> "ConvertAction":
        return cls(kind=ActionKind.ENCODE, flags=list(flags), description=description)

class ConversionResult(BaseModel):
    action: ConvertAction
    destination: Path
    bytes_written: Optional[int] = None
    elapsed_seconds: float = 0.0

class AdmissionResult(BaseModel):
    jobs: List[MirrorJob] = Field(default_factory=list)
    valid_sources: List[SourceEntry] = Field(default_factory=list)
    already_converted: int = 0
    unreadable: int = 0

class ReconcileReport(BaseModel):
    deleted: List[Path] = Field(default_factory=list)
    failed: List[Path] = Field(default_factory=list)

class RunSummary(BaseModel):
    source_dir: Path
    dest_dir: Path
    jobs_total: int = 0
    succeeded: int = 0
    skipped: int = 0
    already_converted: int = 0
    unreadable: int = 0
    failures: List[str] = Field(default_factory=list)
    deleted: List[Path] = Field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.failures)
