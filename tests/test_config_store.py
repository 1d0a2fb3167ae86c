from __future__ import annotations

from pathlib import Path

from config import (
    DEFAULT_MODEL_NAME,
    DEFAULT_PROMPT_DURATION,
    SERVER_URL_ENV,
    JsonConfigStore,
)
from connection import DEFAULT_SERVER_URL


def test_config_read_write(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.delenv(SERVER_URL_ENV, raising=False)
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_server_url() == DEFAULT_SERVER_URL
    assert store.get_model_name() == DEFAULT_MODEL_NAME
    assert store.get_prompt_duration() == DEFAULT_PROMPT_DURATION

    store.set_server_url("http://localhost:8000")
    store.set_model_name("  thepatch/bleeps-medium ")
    store.set_prompt_duration(10)

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_server_url() == "http://localhost:8000"
    assert reloaded.get_model_name() == "thepatch/bleeps-medium"
    assert reloaded.get_prompt_duration() == 10


def test_prompt_duration_is_clamped(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")

    store.set_prompt_duration(0)
    assert store.get_prompt_duration() == 1

    store.set_prompt_duration(99)
    assert store.get_prompt_duration() == 15


def test_hand_edited_prompt_duration_is_clamped(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"prompt_duration": 40}', encoding="utf-8")
    assert JsonConfigStore(path=path).get_prompt_duration() == 15

    path.write_text('{"prompt_duration": "six"}', encoding="utf-8")
    assert JsonConfigStore(path=path).get_prompt_duration() == DEFAULT_PROMPT_DURATION


def test_server_url_env_override(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set_server_url("http://stored")

    monkeypatch.setenv(SERVER_URL_ENV, "http://from-env")
    assert store.get_server_url() == "http://from-env"


def test_results_dir_setting(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"results_dir": "%s"}' % (tmp_path / "out").as_posix(), encoding="utf-8")

    assert JsonConfigStore(path=path).get_results_dir() == tmp_path / "out"


def test_config_invalid_json_fallback(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.delenv(SERVER_URL_ENV, raising=False)
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_server_url() == DEFAULT_SERVER_URL
    assert store.get_model_name() == DEFAULT_MODEL_NAME
    assert store.get_prompt_duration() == DEFAULT_PROMPT_DURATION
