"""Command-line entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from audio_shaper import load_clip
from config import JsonConfigStore
from connection import SocketIOConnection
from errors import GaryError
from models import AudioClip, OperationResult
from orchestrator import ProcessingOrchestrator
from recorder import SoundDeviceRecorder
from results import DiskResultStore

logger = logging.getLogger("gary")


class _Session:
    """Runs orchestrator operations one after another, blocking on each."""

    def __init__(self, config: JsonConfigStore, timeout_s: float) -> None:
        self._timeout_s = timeout_s
        self._done = threading.Event()
        self._result: Optional[OperationResult] = None
        self.store = DiskResultStore(config.get_results_dir())
        self.orchestrator = ProcessingOrchestrator(
            connection=SocketIOConnection(config.get_server_url()),
            result_store=self.store,
            response_timeout_s=timeout_s,
            on_progress=self._on_progress,
            on_complete=self._on_complete,
            on_error=lambda code, message: logger.error("%s: %s", code, message),
        )

    def _on_progress(self, percent: int) -> None:
        print(f"\rprocessing: {percent:3d}%", end="", file=sys.stderr, flush=True)

    def _on_complete(self, result: OperationResult) -> None:
        self._result = result
        self._done.set()

    def run(self, action: Callable[[], object]) -> OperationResult:
        self._done.clear()
        self._result = None
        action()
        # The orchestrator times out on its own; the margin only covers callback delivery.
        if not self._done.wait(timeout=self._timeout_s + 5.0) or self._result is None:
            raise SystemExit("no response from server")
        print(file=sys.stderr)
        if not self._result.success:
            raise SystemExit(self._result.message or "operation failed")
        if self._result.result_path is not None:
            print(self._result.result_path)
        return self._result


def _process(args: argparse.Namespace, config: JsonConfigStore, clip: AudioClip) -> int:
    model = args.model or config.get_model_name()
    duration = args.prompt_duration or config.get_prompt_duration()
    session = _Session(config, args.timeout)
    orch = session.orchestrator
    try:
        orch.start()
        session.run(lambda: orch.submit(clip, model, duration))
        if args.retry:
            session.run(lambda: orch.retry(model, duration))
        for _ in range(args.continue_count):
            session.run(lambda: orch.continue_music(model, duration))
        if args.crop is not None:
            session.run(lambda: orch.crop_latest(args.crop))
    finally:
        orch.shutdown()
    return 0


def _cmd_submit(args: argparse.Namespace, config: JsonConfigStore) -> int:
    return _process(args, config, load_clip(args.file))


def _cmd_record(args: argparse.Namespace, config: JsonConfigStore) -> int:
    recorder = SoundDeviceRecorder()
    recorder.start()
    print(f"recording for {args.seconds:.1f}s...", file=sys.stderr)
    time.sleep(args.seconds)
    return _process(args, config, recorder.stop())


def _cmd_results(args: argparse.Namespace, config: JsonConfigStore) -> int:
    store = DiskResultStore(config.get_results_dir())
    if args.clear:
        print(f"removed {store.clear()} file(s)")
        return 0
    for path in store.list():
        print(path)
    return 0


def _cmd_config(args: argparse.Namespace, config: JsonConfigStore) -> int:
    if args.model:
        config.set_model_name(args.model)
    if args.prompt_duration:
        config.set_prompt_duration(args.prompt_duration)
    if args.server_url:
        config.set_server_url(args.server_url)
    print(f"server_url:      {config.get_server_url()}")
    print(f"model_name:      {config.get_model_name()}")
    print(f"prompt_duration: {config.get_prompt_duration()}")
    print(f"results_dir:     {config.get_results_dir()}")
    return 0


def _add_processing_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", help="model name, defaults to the stored setting")
    parser.add_argument("--prompt-duration", type=int, help="prompt duration in seconds (1-15)")
    parser.add_argument("--continue", dest="continue_count", type=int, default=0, metavar="N",
                        help="continue the result N times")
    parser.add_argument("--retry", action="store_true", help="retry the first result once")
    parser.add_argument("--crop", type=float, metavar="SECONDS",
                        help="crop the final result at this position and send it back")
    parser.add_argument("--timeout", type=float, default=300.0, help="seconds to wait per response")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gary", description="Generative music client")
    parser.add_argument("--config", type=Path, help="path to config.json")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="send an audio file")
    submit.add_argument("file", type=Path)
    _add_processing_args(submit)
    submit.set_defaults(func=_cmd_submit)

    record = sub.add_parser("record", help="record from the microphone and send")
    record.add_argument("seconds", type=float)
    _add_processing_args(record)
    record.set_defaults(func=_cmd_record)

    results = sub.add_parser("results", help="list generated clips")
    results.add_argument("--clear", action="store_true", help="delete all generated clips")
    results.set_defaults(func=_cmd_results)

    cfg = sub.add_parser("config", help="show or change settings")
    cfg.add_argument("--model")
    cfg.add_argument("--prompt-duration", type=int)
    cfg.add_argument("--server-url")
    cfg.set_defaults(func=_cmd_config)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = JsonConfigStore(args.config)
    try:
        return args.func(args, config)
    except GaryError as exc:
        logger.error("%s", exc.message)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
