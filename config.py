"""Simple JSON-based settings store."""

from __future__ import annotations

import json
import os
from pathlib import Path

from connection import DEFAULT_SERVER_URL
from results import default_results_dir

DEFAULT_MODEL_NAME = "thepatch/vanya_ai_dnb_0.1"
DEFAULT_PROMPT_DURATION = 6
MIN_PROMPT_DURATION = 1
MAX_PROMPT_DURATION = 15

SERVER_URL_ENV = "GARY_SERVER_URL"


def clamp_prompt_duration(seconds: int) -> int:
    return max(MIN_PROMPT_DURATION, min(MAX_PROMPT_DURATION, int(seconds)))


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "gary_beatbox" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_server_url(self) -> str:
        env = os.getenv(SERVER_URL_ENV, "")
        if env:
            return env
        data = self._read_all()
        return str(data.get("server_url", DEFAULT_SERVER_URL))

    def set_server_url(self, url: str) -> None:
        data = self._read_all()
        data["server_url"] = url
        self._write_all(data)

    def get_model_name(self) -> str:
        data = self._read_all()
        return str(data.get("model_name", DEFAULT_MODEL_NAME)) or DEFAULT_MODEL_NAME

    def set_model_name(self, name: str) -> None:
        data = self._read_all()
        data["model_name"] = name.strip()
        self._write_all(data)

    def get_prompt_duration(self) -> int:
        data = self._read_all()
        try:
            return clamp_prompt_duration(data.get("prompt_duration", DEFAULT_PROMPT_DURATION))
        except (TypeError, ValueError):
            return DEFAULT_PROMPT_DURATION

    def set_prompt_duration(self, seconds: int) -> None:
        data = self._read_all()
        data["prompt_duration"] = clamp_prompt_duration(seconds)
        self._write_all(data)

    def get_results_dir(self) -> Path:
        data = self._read_all()
        value = data.get("results_dir")
        return Path(value) if value else default_results_dir()

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
