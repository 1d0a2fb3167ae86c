"""Pure transformations applied to recorded audio before it is sent.

Clips hold raw PCM frames. Decoding of compressed containers and
re-encoding (channel mix-down, resampling, bit-depth change) go through
pydub; WAV framing for the wire uses the stdlib ``wave`` module.
"""

from __future__ import annotations

import base64
import io
import logging
import math
import wave
from pathlib import Path
from typing import Union

from pydub import AudioSegment

from errors import ConversionError, EmptyCropError
from models import AudioClip

logger = logging.getLogger(__name__)

CANONICAL_SAMPLE_RATE = 32000
CANONICAL_CHANNELS = 1
CANONICAL_BIT_DEPTH = 16
DEFAULT_PAD_SECONDS = 30.0

_SUPPORTED_BIT_DEPTHS = (8, 16, 24, 32)


def load_clip(path: Union[str, Path]) -> AudioClip:
    """Decode an audio file of any supported container into raw PCM."""
    try:
        segment = AudioSegment.from_file(str(path))
    except Exception as exc:
        raise ConversionError(f"cannot read {path}: {exc}") from exc
    return _segment_to_clip(segment)


def convert_to_canonical_pcm(clip: AudioClip) -> AudioClip:
    """Re-encode ``clip`` as 16-bit mono PCM at 32 kHz."""
    if clip.bit_depth not in _SUPPORTED_BIT_DEPTHS:
        raise ConversionError(f"unsupported bit depth: {clip.bit_depth}")
    if clip.channels < 1 or clip.sample_rate <= 0:
        raise ConversionError(
            f"invalid format: {clip.channels} channels at {clip.sample_rate} Hz"
        )
    try:
        segment = AudioSegment(
            data=clip.data[: clip.frame_count * clip.frame_size],
            sample_width=clip.bytes_per_sample,
            frame_rate=clip.sample_rate,
            channels=clip.channels,
        )
        segment = (
            segment.set_channels(CANONICAL_CHANNELS)
            .set_frame_rate(CANONICAL_SAMPLE_RATE)
            .set_sample_width(CANONICAL_BIT_DEPTH // 8)
        )
    except Exception as exc:
        raise ConversionError(f"encoder failed: {exc}") from exc
    converted = _segment_to_clip(segment)
    logger.debug(
        "converted %.2fs clip from %d Hz/%d ch/%d bit to canonical PCM",
        clip.duration_seconds,
        clip.sample_rate,
        clip.channels,
        clip.bit_depth,
    )
    return converted


def pad_to_duration(clip: AudioClip, target_seconds: float = DEFAULT_PAD_SECONDS) -> AudioClip:
    """Append silence so the clip lasts ``target_seconds``; never truncates."""
    if clip.duration_seconds >= target_seconds:
        return clip
    # round() guards against float noise such as 30 * 32000 = 960000.0000001
    target_frames = math.ceil(round(target_seconds * clip.sample_rate, 6))
    missing = target_frames - clip.frame_count
    if missing <= 0:
        return clip
    body = clip.data[: clip.frame_count * clip.frame_size]
    silence = bytes(missing * clip.frame_size)
    return AudioClip(
        data=body + silence,
        sample_rate=clip.sample_rate,
        channels=clip.channels,
        bit_depth=clip.bit_depth,
    )


def crop_at_playback_position(clip: AudioClip, elapsed_seconds: float) -> AudioClip:
    """Keep frames ``[0, elapsed * sample_rate)``, clamped to the clip length."""
    if math.isnan(elapsed_seconds):
        raise EmptyCropError("cannot crop at an undefined position")
    if elapsed_seconds >= clip.duration_seconds and clip.frame_count > 0:
        return clip
    if math.isinf(elapsed_seconds):
        raise EmptyCropError(f"cannot crop at {elapsed_seconds}s")
    # Same float-noise guard as pad_to_duration, rounding the other way.
    end_frame = math.floor(round(elapsed_seconds * clip.sample_rate, 6))
    end_frame = max(0, min(end_frame, clip.frame_count))
    if end_frame == 0:
        raise EmptyCropError(f"cannot crop at {elapsed_seconds:.3f}s")
    return AudioClip(
        data=clip.data[: end_frame * clip.frame_size],
        sample_rate=clip.sample_rate,
        channels=clip.channels,
        bit_depth=clip.bit_depth,
    )


def to_wav_bytes(clip: AudioClip) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(clip.channels)
        wf.setsampwidth(clip.bytes_per_sample)
        wf.setframerate(clip.sample_rate)
        wf.writeframes(clip.data)
    return buf.getvalue()


def from_wav_bytes(data: bytes) -> AudioClip:
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            frames = wf.readframes(wf.getnframes())
            return AudioClip(
                data=frames,
                sample_rate=wf.getframerate(),
                channels=wf.getnchannels(),
                bit_depth=wf.getsampwidth() * 8,
            )
    except (wave.Error, EOFError) as exc:
        raise ConversionError(f"invalid WAV data: {exc}") from exc


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _segment_to_clip(segment: AudioSegment) -> AudioClip:
    return AudioClip(
        data=segment.raw_data,
        sample_rate=segment.frame_rate,
        channels=segment.channels,
        bit_depth=segment.sample_width * 8,
    )
