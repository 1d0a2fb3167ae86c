"""Protocol interfaces used by ProcessingOrchestrator."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from models import ConnectionEvent, ConnectionState, OperationKind


class Connection(Protocol):
    @property
    def state(self) -> ConnectionState: ...

    def set_listener(self, listener: Optional[Callable[[ConnectionEvent], None]]) -> None: ...

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def send(self, kind: OperationKind, payload: dict[str, Any]) -> None: ...


class ResultStore(Protocol):
    def save(self, data: bytes, cropped: bool = False) -> Path: ...

    def latest(self) -> Optional[Path]: ...

    def read_latest(self) -> Optional[bytes]: ...
