"""Core data models for the client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    FAILED = "FAILED"


class OrchestratorState(str, Enum):
    IDLE = "IDLE"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"


class OperationKind(str, Enum):
    SUBMIT = "submit"
    CONTINUE = "continue"
    RETRY = "retry"
    UPDATE_CROP = "update_crop"


class ConnectionEventKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    PROGRESS = "progress"
    AUDIO_RESULT = "audio_result"
    CROP_ACK = "crop_ack"


@dataclass(frozen=True)
class AudioClip:
    """Raw interleaved little-endian PCM frames plus their format."""

    data: bytes
    sample_rate: int = 32000
    channels: int = 1
    bit_depth: int = 16

    @property
    def bytes_per_sample(self) -> int:
        return self.bit_depth // 8

    @property
    def frame_size(self) -> int:
        return self.bytes_per_sample * self.channels

    @property
    def frame_count(self) -> int:
        return len(self.data) // self.frame_size

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / float(self.sample_rate)


@dataclass
class Operation:
    kind: OperationKind
    seq: int
    model_name: str = ""
    prompt_duration: int = 0
    clip: Optional[AudioClip] = None


@dataclass
class ConnectionEvent:
    kind: ConnectionEventKind
    result_kind: Optional[OperationKind] = None
    audio_base64: str = ""
    session_id: Optional[str] = None
    percent: int = 0
    code: str = ""
    message: str = ""


@dataclass
class OperationResult:
    kind: OperationKind
    success: bool
    result_path: Optional[Path] = None
    session_id: Optional[str] = None
    message: str = ""
