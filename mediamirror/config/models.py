from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

CONVERTER_NAMES = ("mencoder", "libav")
TWO_DAYS_S = 60 * 60 * 24 * 2

def validate_converter_name(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in CONVERTER_NAMES:
        raise ValueError(f"Unknown converter type: {value}. Use one of {list(CONVERTER_NAMES)}")
    return normalized

class GeneralConfig(BaseModel):
    threads: int = Field(default=8, gt=0)
    encode_threads: int = Field(default=4, gt=0)
    max_run_time_s: float = Field(default=TWO_DAYS_S, gt=0)
    stability_window_s: float = Field(default=10.0, ge=0)
    stability_retries: int = Field(default=0, ge=0)
    reconcile_interval_s: float = Field(default=600.0, gt=0)
    progress_interval_s: float = Field(default=1.0, gt=0)
    converter: str = "mencoder"
    kill_encoders_on_overrun: bool = True
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("converter")
    @classmethod
    def validate_converter(cls, v: str) -> str:
        return validate_converter_name(v)

    @model_validator(mode="after")
    def validate_encode_ceiling(self):
        if self.encode_threads > self.threads:
            raise ValueError(
                f"encode_threads ({self.encode_threads}) must be <= threads ({self.threads})"
            )
        return self

class MencoderConfig(BaseModel):
    executable: str = "mencoder"
    flags: List[str] = Field(
        default_factory=lambda: [
            "-oac", "mp3lame",
            "-ovc", "xvid",
            "-xvidencopts", "fixed_quant=2",
            "-sws", "8",
        ]
    )
    extension: str = ".avi"

class LibavConfig(BaseModel):
    executables: List[str] = Field(default_factory=lambda: ["avconv", "ffmpeg"])
    search_paths: List[str] = Field(default_factory=lambda: ["/usr/bin", "/usr/local/bin"])
    threads: int = Field(default=2, gt=0)
    video_codec: str = "libx264"
    audio_codec: str = "ac3"
    audio_bitrate: str = "512k"
    desired_video: str = "h264"
    desired_audio: str = "ac3"
    extension: str = ".mp4"

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    mencoder: MencoderConfig = Field(default_factory=MencoderConfig)
    libav: LibavConfig = Field(default_factory=LibavConfig)
