# Datenmodell fuer einen Konvertierungs-Job und seine Ergebnisse.

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from ts2mp4.models.files import InputFile

DEFAULT_CRF = 20
DEFAULT_PRESET = "medium"
DEFAULT_AUDIO_BITRATE = "192k"

MP4_CONTENT_TYPE = "video/mp4"
ZIP_CONTENT_TYPE = "application/zip"


class WorkerState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class JobState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureKind(Enum):
    INIT = "init"
    CRASH = "crash"
    CONVERSION = "conversion"
    MARSHAL = "marshal"
    PACKAGING = "packaging"


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class ConversionOptions:
    """Encoder settings forwarded to the worker.

    Values are passed through as given; only missing or empty values are
    replaced by the defaults. Range checks are left to ffmpeg.
    """

    crf: Union[int, float, str, None] = DEFAULT_CRF
    preset: Optional[str] = DEFAULT_PRESET
    audio_bitrate: Optional[str] = DEFAULT_AUDIO_BITRATE

    def to_dict(self) -> dict:
        crf = DEFAULT_CRF if _is_blank(self.crf) else self.crf
        preset = DEFAULT_PRESET if _is_blank(self.preset) else self.preset
        abitrate = DEFAULT_AUDIO_BITRATE if _is_blank(self.audio_bitrate) else self.audio_bitrate
        return {"crf": str(crf).strip(), "preset": str(preset), "abitrate": str(abitrate)}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> ConversionOptions:
        data = data or {}
        return cls(
            crf=data.get("crf"),
            preset=data.get("preset"),
            audio_bitrate=data.get("abitrate"),
        )


@dataclass
class OutputItem:
    name: str
    data: bytes


@dataclass
class Deliverable:
    """Single artifact handed to the user: one MP4 or a ZIP of several."""

    filename: str
    data: bytes
    content_type: str = MP4_CONTENT_TYPE


@dataclass
class Job:
    files: list[InputFile]
    options: ConversionOptions = field(default_factory=ConversionOptions)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: float = field(default_factory=time.time)
    state: JobState = JobState.SUBMITTING
    progress: float = 0.0
    error: Optional[str] = None

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at
