"""Socket.IO adapter for the generative-music service.

One persistent connection carries every request kind. The service does not
echo a request id, so responses are told apart by event name only. Callers
must keep at most one request outstanding; this adapter only translates
transport callbacks into :class:`ConnectionEvent` values for a single
listener.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError
from socketio.exceptions import SocketIOError

from errors import CONNECTION_ERROR, DISCONNECTED, PROTOCOL_ERROR, NotConnectedError, TransportError
from models import ConnectionEvent, ConnectionEventKind, ConnectionState, OperationKind

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://g4l.thecollabagepatch.com"

REQUEST_EVENTS = {
    OperationKind.SUBMIT: "process_audio_request",
    OperationKind.CONTINUE: "continue_music_request",
    OperationKind.RETRY: "retry_music_request",
    OperationKind.UPDATE_CROP: "update_cropped_audio",
}

RESULT_EVENTS = {
    "audio_processed": OperationKind.SUBMIT,
    "music_continued": OperationKind.CONTINUE,
    "music_retried": OperationKind.RETRY,
}

CROP_ACK_EVENT = "update_cropped_audio_complete"
PROGRESS_EVENT = "progress_update"

Listener = Callable[[ConnectionEvent], None]


def _default_client_factory() -> Any:
    return socketio.Client(reconnection=True, logger=False)


class SocketIOConnection:
    def __init__(
        self,
        url: str = DEFAULT_SERVER_URL,
        client_factory: Callable[[], Any] = _default_client_factory,
        transports: tuple[str, ...] = ("websocket",),
        connect_timeout_s: float = 10.0,
    ) -> None:
        self._url = url
        self._client_factory = client_factory
        self._transports = list(transports)
        self._connect_timeout_s = connect_timeout_s
        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._client: Any = None
        self._listener: Optional[Listener] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    def set_listener(self, listener: Optional[Listener]) -> None:
        with self._lock:
            self._listener = listener

    def connect(self) -> None:
        with self._lock:
            if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                logger.info("socket already %s, not reconnecting", self._state.value.lower())
                return
            self._state = ConnectionState.CONNECTING
            if self._client is None:
                self._client = self._client_factory()
                self._register_handlers(self._client)
            client = self._client

        logger.info("connecting to %s", self._url)
        # The client fires its own handlers while connecting, so no lock here.
        try:
            client.connect(
                self._url,
                transports=self._transports,
                wait_timeout=self._connect_timeout_s,
            )
        except SocketIOConnectionError as exc:
            with self._lock:
                # connect_error normally fires first and has already reported it.
                reported = self._state == ConnectionState.FAILED
                self._state = ConnectionState.FAILED
            if not reported:
                self._emit(
                    ConnectionEvent(kind=ConnectionEventKind.ERROR, code=CONNECTION_ERROR, message=str(exc))
                )
            raise TransportError(f"cannot connect to {self._url}: {exc}") from exc

        # Handlers normally flip the state already; cover clients that connect silently.
        with self._lock:
            if self._state == ConnectionState.CONNECTING and getattr(client, "connected", False):
                self._state = ConnectionState.CONNECTED

    def disconnect(self) -> None:
        with self._lock:
            self._listener = None
            client = self._client
            self._client = None
            self._state = ConnectionState.DISCONNECTED
        if client is None:
            return
        try:
            client.disconnect()
        except Exception:
            logger.exception("socket teardown failed")
        logger.info("socket closed")

    def send(self, kind: OperationKind, payload: dict[str, Any]) -> None:
        with self._lock:
            if self._state != ConnectionState.CONNECTED or self._client is None:
                raise NotConnectedError()
            client = self._client
        event = REQUEST_EVENTS[kind]
        message = json.dumps(payload)
        logger.info("sending %s (%d bytes)", event, len(message))
        try:
            client.emit(event, message)
        except SocketIOError as exc:
            raise TransportError(f"emit {event} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Transport callbacks (socket.io reader thread)
    # ------------------------------------------------------------------

    def _register_handlers(self, client: Any) -> None:
        client.on("connect", self._on_connect)
        client.on("disconnect", self._on_disconnect)
        client.on("connect_error", self._on_connect_error)
        for event in RESULT_EVENTS:
            client.on(event, self._make_result_handler(event))
        client.on(CROP_ACK_EVENT, self._on_crop_ack)
        client.on(PROGRESS_EVENT, self._on_progress)

    def _on_connect(self) -> None:
        logger.info("socket connected")
        self._set_state(ConnectionState.CONNECTED)
        self._emit(ConnectionEvent(kind=ConnectionEventKind.CONNECTED))

    def _on_disconnect(self, *args: Any) -> None:
        reason = str(args[0]) if args else ""
        logger.info("socket disconnected %s", reason)
        self._set_state(ConnectionState.DISCONNECTED)
        self._emit(
            ConnectionEvent(kind=ConnectionEventKind.DISCONNECTED, code=DISCONNECTED, message=reason)
        )

    def _on_connect_error(self, data: Any = None) -> None:
        logger.warning("socket error: %s", data)
        self._set_state(ConnectionState.FAILED)
        self._emit(
            ConnectionEvent(kind=ConnectionEventKind.ERROR, code=CONNECTION_ERROR, message=str(data))
        )

    def _make_result_handler(self, event: str) -> Callable[..., None]:
        kind = RESULT_EVENTS[event]

        def _handler(data: Any = None) -> None:
            self._on_audio_result(event, kind, data)

        return _handler

    def _on_audio_result(self, event: str, kind: OperationKind, data: Any) -> None:
        payload = _decode_payload(data)
        audio = payload.get("audio_data") if payload else None
        if not isinstance(audio, str) or not audio:
            logger.warning("%s without audio_data", event)
            self._emit(
                ConnectionEvent(
                    kind=ConnectionEventKind.ERROR,
                    code=PROTOCOL_ERROR,
                    message=f"{event} is missing audio_data",
                )
            )
            return
        session_id = payload.get("session_id")
        logger.info("received %s (%d base64 chars, session %s)", event, len(audio), session_id)
        self._emit(
            ConnectionEvent(
                kind=ConnectionEventKind.AUDIO_RESULT,
                result_kind=kind,
                audio_base64=audio,
                session_id=str(session_id) if session_id is not None else None,
            )
        )

    def _on_crop_ack(self, data: Any = None) -> None:
        logger.info("received %s", CROP_ACK_EVENT)
        self._emit(ConnectionEvent(kind=ConnectionEventKind.CROP_ACK))

    def _on_progress(self, data: Any = None) -> None:
        payload = _decode_payload(data)
        value = payload.get("progress") if payload else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.debug("ignoring malformed progress payload: %r", data)
            return
        percent = max(0, min(100, int(value)))
        logger.debug("progress %d%%", percent)
        self._emit(ConnectionEvent(kind=ConnectionEventKind.PROGRESS, percent=percent))

    def _set_state(self, state: ConnectionState) -> None:
        with self._lock:
            self._state = state

    def _emit(self, event: ConnectionEvent) -> None:
        with self._lock:
            listener = self._listener
        if listener is not None:
            listener(event)


def _decode_payload(data: Any) -> dict[str, Any]:
    """Accept the payload either as a dict or as a JSON text frame."""
    if isinstance(data, dict):
        return data
    if isinstance(data, (str, bytes)):
        try:
            decoded = json.loads(data)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}
