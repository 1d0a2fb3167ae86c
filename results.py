"""On-disk store of generated clips, newest first."""

from __future__ import annotations

import logging
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

RESULT_PREFIX = "processedAudio_"
CROPPED_PREFIX = RESULT_PREFIX + "cropped_"


def default_results_dir() -> Path:
    return Path(tempfile.gettempdir()) / "gary_results"


class DiskResultStore:
    """Files are named ``processedAudio_[cropped_]<ns>_<hex>.wav``.

    The nanosecond stamp orders results by creation, so the most recently
    saved file is always the latest one even on coarse-mtime filesystems.
    """

    def __init__(self, directory: Path | None = None) -> None:
        self._dir = directory or default_results_dir()
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._last_stamp = 0

    @property
    def directory(self) -> Path:
        return self._dir

    def save(self, data: bytes, cropped: bool = False) -> Path:
        prefix = CROPPED_PREFIX if cropped else RESULT_PREFIX
        with self._lock:
            stamp = max(time.time_ns(), self._last_stamp + 1)
            self._last_stamp = stamp
        path = self._dir / f"{prefix}{stamp:020d}_{uuid.uuid4().hex[:8]}.wav"
        path.write_bytes(data)
        logger.info("saved result %s (%d bytes)", path.name, len(data))
        return path

    def list(self) -> list[Path]:
        files = [
            p
            for p in self._dir.glob(f"{RESULT_PREFIX}*.wav")
            if p.is_file() and not p.name.startswith(".")
        ]
        return sorted(files, key=_creation_stamp, reverse=True)

    def latest(self) -> Optional[Path]:
        files = self.list()
        return files[0] if files else None

    def read_latest(self) -> Optional[bytes]:
        path = self.latest()
        if path is None:
            return None
        return path.read_bytes()

    def delete(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    def clear(self) -> int:
        removed = 0
        for path in self._dir.glob(f"{RESULT_PREFIX}*"):
            try:
                path.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("could not remove %s: %s", path, exc)
        return removed


def _creation_stamp(path: Path) -> tuple[int, float]:
    name = path.stem
    if name.startswith(CROPPED_PREFIX):
        name = name[len(CROPPED_PREFIX):]
    else:
        name = name[len(RESULT_PREFIX):]
    stamp, _, _ = name.partition("_")
    try:
        return int(stamp), 0.0
    except ValueError:
        # Foreign file following the prefix convention; fall back to mtime.
        return 0, path.stat().st_mtime
