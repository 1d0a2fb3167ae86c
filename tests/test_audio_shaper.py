"""Tests for the audio buffer shaping functions."""

from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest

from audio_shaper import (
    CANONICAL_SAMPLE_RATE,
    convert_to_canonical_pcm,
    crop_at_playback_position,
    from_wav_bytes,
    load_clip,
    pad_to_duration,
    to_wav_bytes,
)
from errors import ConversionError, EmptyCropError
from models import AudioClip


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _silence(seconds: float, sample_rate: int = 32000, channels: int = 1) -> AudioClip:
    frames = int(seconds * sample_rate)
    return AudioClip(data=b"\x00\x00" * frames * channels, sample_rate=sample_rate, channels=channels)


def _ramp(frames: int, channels: int = 1, sample_rate: int = 32000) -> AudioClip:
    samples = np.arange(frames * channels, dtype="<i2")
    return AudioClip(data=samples.tobytes(), sample_rate=sample_rate, channels=channels)


def _sine(seconds: float, sample_rate: int, channels: int) -> AudioClip:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    mono = (np.sin(2 * np.pi * 440.0 * t) * 12000).astype("<i2")
    interleaved = np.repeat(mono[:, None], channels, axis=1)
    return AudioClip(data=interleaved.tobytes(), sample_rate=sample_rate, channels=channels)


# ---------------------------------------------------------------
# pad_to_duration
# ---------------------------------------------------------------

def test_pad_short_clip_to_target_length() -> None:
    clip = _silence(10.0)
    padded = pad_to_duration(clip, 30.0)

    assert len(padded.data) == 30 * 32000 * 2
    assert padded.duration_seconds == pytest.approx(30.0)
    assert padded.data[: len(clip.data)] == clip.data
    assert set(padded.data[len(clip.data):]) == {0}


def test_pad_keeps_format() -> None:
    clip = _ramp(100, channels=2, sample_rate=44100)
    padded = pad_to_duration(clip, 1.0)

    assert (padded.sample_rate, padded.channels, padded.bit_depth) == (44100, 2, 16)
    assert padded.frame_count == 44100
    assert padded.data.startswith(clip.data)


@pytest.mark.parametrize("target, sample_rate", [(1.5, 44100), (0.00005, 22050), (2.7, 32000)])
def test_pad_length_rounds_up_to_whole_frames(target: float, sample_rate: int) -> None:
    clip = _ramp(1, sample_rate=sample_rate)
    padded = pad_to_duration(clip, target)

    expected_frames = math.ceil(target * sample_rate)
    assert abs(len(padded.data) - expected_frames * 2) <= 2


def test_pad_long_enough_clip_is_unchanged() -> None:
    clip = _silence(31.0)
    assert pad_to_duration(clip, 30.0) is clip

    exact = _silence(30.0)
    assert pad_to_duration(exact, 30.0) is exact


def test_pad_is_idempotent() -> None:
    once = pad_to_duration(_silence(4.0), 30.0)
    twice = pad_to_duration(once, 30.0)

    assert twice == once


# ---------------------------------------------------------------
# crop_at_playback_position
# ---------------------------------------------------------------

@pytest.mark.parametrize("clip", [_silence(1.0), _ramp(10, channels=2), _silence(0.001, 8000)])
def test_crop_at_zero_is_rejected(clip: AudioClip) -> None:
    with pytest.raises(EmptyCropError):
        crop_at_playback_position(clip, 0)


def test_crop_at_negative_position_is_rejected() -> None:
    with pytest.raises(EmptyCropError):
        crop_at_playback_position(_silence(1.0), -2.0)


def test_crop_below_one_frame_is_rejected() -> None:
    with pytest.raises(EmptyCropError):
        crop_at_playback_position(_silence(1.0, sample_rate=8000), 0.0001)


def test_crop_past_end_returns_whole_clip() -> None:
    clip = _ramp(32000)
    assert crop_at_playback_position(clip, clip.duration_seconds) == clip
    assert crop_at_playback_position(clip, 99.0) == clip


@pytest.mark.parametrize("frames, sample_rate", [(1001, 32000), (15, 44100), (27, 48000), (7, 22050)])
def test_crop_at_exact_duration_keeps_every_frame(frames: int, sample_rate: int) -> None:
    clip = _ramp(frames, sample_rate=sample_rate)

    cropped = crop_at_playback_position(clip, clip.duration_seconds)

    assert cropped.frame_count == clip.frame_count
    assert cropped == clip


def test_crop_at_float_noisy_position_keeps_intended_frames() -> None:
    clip = _ramp(2000, sample_rate=32000)

    cropped = crop_at_playback_position(clip, 1001 / 32000)

    assert cropped.frame_count == 1001


def test_crop_at_infinity_returns_whole_clip() -> None:
    clip = _ramp(15, sample_rate=44100)
    assert crop_at_playback_position(clip, float("inf")) == clip


@pytest.mark.parametrize("position", [float("nan"), float("-inf")])
def test_crop_at_undefined_position_is_rejected(position: float) -> None:
    with pytest.raises(EmptyCropError):
        crop_at_playback_position(_ramp(100), position)


def test_crop_keeps_leading_frames() -> None:
    clip = _ramp(1000, channels=2, sample_rate=1000)
    cropped = crop_at_playback_position(clip, 0.25)

    assert cropped.frame_count == 250
    assert cropped.channels == 2
    assert cropped.sample_rate == 1000
    assert cropped.data == clip.data[: 250 * 4]


# ---------------------------------------------------------------
# convert_to_canonical_pcm
# ---------------------------------------------------------------

def test_convert_stereo_44k_to_mono_32k() -> None:
    clip = _sine(1.0, 44100, 2)
    converted = convert_to_canonical_pcm(clip)

    assert converted.sample_rate == CANONICAL_SAMPLE_RATE
    assert converted.channels == 1
    assert converted.bit_depth == 16
    assert converted.duration_seconds == pytest.approx(1.0, abs=0.01)
    samples = np.frombuffer(converted.data, dtype="<i2")
    assert np.abs(samples).max() > 10000


def test_convert_canonical_clip_keeps_samples() -> None:
    clip = _sine(0.5, 32000, 1)
    assert convert_to_canonical_pcm(clip).data == clip.data


def test_convert_rejects_unsupported_bit_depth() -> None:
    clip = AudioClip(data=b"\x00" * 12, bit_depth=12)
    with pytest.raises(ConversionError):
        convert_to_canonical_pcm(clip)


def test_convert_rejects_invalid_sample_rate() -> None:
    clip = AudioClip(data=b"\x00\x00" * 10, sample_rate=0)
    with pytest.raises(ConversionError):
        convert_to_canonical_pcm(clip)


# ---------------------------------------------------------------
# Containers
# ---------------------------------------------------------------

def test_wav_container_preserves_clip() -> None:
    clip = _ramp(300, channels=2, sample_rate=22050)
    wav = to_wav_bytes(clip)

    assert wav[:4] == b"RIFF"
    assert from_wav_bytes(wav) == clip


def test_from_wav_bytes_rejects_garbage() -> None:
    with pytest.raises(ConversionError):
        from_wav_bytes(b"definitely not a wav file")


def test_load_clip_reads_wav_file(tmp_path: Path) -> None:
    clip = _sine(0.25, 16000, 1)
    path = tmp_path / "take.wav"
    path.write_bytes(to_wav_bytes(clip))

    loaded = load_clip(path)
    assert loaded.sample_rate == 16000
    assert loaded.frame_count == clip.frame_count


def test_load_clip_missing_file_raises_conversion_error(tmp_path: Path) -> None:
    with pytest.raises(ConversionError):
        load_clip(tmp_path / "missing.m4a")
