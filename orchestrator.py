"""State-machine based orchestration of requests to the music service."""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from typing import Any, Callable, Optional

from audio_shaper import (
    DEFAULT_PAD_SECONDS,
    convert_to_canonical_pcm,
    crop_at_playback_position,
    encode_base64,
    from_wav_bytes,
    pad_to_duration,
    to_wav_bytes,
)
from errors import (
    CONNECTION_ERROR,
    DISCONNECTED,
    ERROR_MESSAGES,
    PROTOCOL_ERROR,
    RESPONSE_TIMEOUT,
    GaryError,
    NoInputError,
    NoPriorResultError,
    NoSessionError,
    NotConnectedError,
    OperationInProgressError,
)
from interfaces import Connection, ResultStore
from models import (
    AudioClip,
    ConnectionEvent,
    ConnectionEventKind,
    ConnectionState,
    Operation,
    OperationKind,
    OperationResult,
    OrchestratorState,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[OrchestratorState, OrchestratorState], None]
ProgressCallback = Callable[[int], None]
CompleteCallback = Callable[[OperationResult], None]
ErrorCallback = Callable[[str, str], None]
ConnectionCallback = Callable[[ConnectionState], None]


class ProcessingOrchestrator:
    """Runs at most one operation at a time against a shared connection.

    The service keeps one session context per connection and its responses
    carry no request id, so a second request while one is outstanding would
    be indistinguishable on the way back. Every state read and write goes
    through ``_lock``; transport callbacks take the same lock before they
    touch state.
    """

    def __init__(
        self,
        connection: Connection,
        result_store: ResultStore,
        pad_seconds: float = DEFAULT_PAD_SECONDS,
        response_timeout_s: Optional[float] = 300.0,
        on_state_change: Optional[StateCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_connection_change: Optional[ConnectionCallback] = None,
    ) -> None:
        self._connection = connection
        self._results = result_store
        self._pad_seconds = pad_seconds
        self._response_timeout_s = response_timeout_s
        self._on_state_change = on_state_change
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_error = on_error
        self._on_connection_change = on_connection_change

        self._lock = threading.RLock()
        self._state = OrchestratorState.IDLE
        self._pending: Optional[Operation] = None
        self._seq = 0
        self._session_id: Optional[str] = None
        self._progress = 0
        self._timer: Optional[threading.Timer] = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def pending_kind(self) -> Optional[OperationKind]:
        pending = self._pending
        return pending.kind if pending else None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def progress(self) -> int:
        return self._progress

    def latest_result(self) -> Optional[bytes]:
        return self._results.read_latest()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._connection.set_listener(self._handle_event)
        self._connection.connect()

    def shutdown(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._finish_failure(DISCONNECTED, "connection closed")
        self._connection.disconnect()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(self, clip: Optional[AudioClip], model_name: str, prompt_duration: int) -> None:
        with self._lock:
            self._check_idle()
            if clip is None or not clip.data:
                self._reject(NoInputError())
            self._check_connected()
            op = self._reserve(OperationKind.SUBMIT, model_name, prompt_duration, clip)

        # Shaping is slow and touches no shared state; the reservation above
        # already keeps other operations out.
        try:
            shaped = pad_to_duration(convert_to_canonical_pcm(clip), self._pad_seconds)
            audio = encode_base64(to_wav_bytes(shaped))
        except GaryError as exc:
            with self._lock:
                if self._pending is op:
                    self._finish_failure(exc.code, exc.message)
            raise

        self._dispatch(
            op,
            {
                "audio_data": audio,
                "model_name": model_name,
                "prompt_duration": int(prompt_duration),
            },
        )

    def continue_music(self, model_name: str, prompt_duration: int) -> None:
        with self._lock:
            self._check_idle()
            session_id = self._require_session()
            data = self._require_prior_result()
            self._check_connected()
            op = self._reserve(OperationKind.CONTINUE, model_name, prompt_duration)
        self._dispatch(
            op,
            {
                "audio_data": encode_base64(data),
                "model_name": model_name,
                "session_id": session_id,
                "prompt_duration": int(prompt_duration),
            },
        )

    def retry(self, model_name: str, prompt_duration: int) -> None:
        with self._lock:
            self._check_idle()
            session_id = self._require_session()
            self._check_connected()
            op = self._reserve(OperationKind.RETRY, model_name, prompt_duration)
        self._dispatch(
            op,
            {
                "session_id": session_id,
                "model_name": model_name,
                "prompt_duration": int(prompt_duration),
            },
        )

    def update_crop(self, clip: Optional[AudioClip]) -> None:
        with self._lock:
            self._check_idle()
            session_id = self._require_session()
            if clip is None or not clip.data:
                self._reject(NoInputError())
            self._check_connected()
            op = self._reserve(OperationKind.UPDATE_CROP, clip=clip)
        self._dispatch(
            op,
            {"audio_data": encode_base64(to_wav_bytes(clip)), "session_id": session_id},
        )

    def crop_latest(self, elapsed_seconds: float) -> AudioClip:
        """Crop the latest result at a playback position and push it upstream."""
        with self._lock:
            self._check_idle()
            self._require_session()
            data = self._require_prior_result()
        try:
            cropped = crop_at_playback_position(from_wav_bytes(data), elapsed_seconds)
        except GaryError as exc:
            self._emit_error(exc.code, exc.message)
            raise
        self.update_crop(cropped)
        return cropped

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _check_idle(self) -> None:
        if self._state != OrchestratorState.IDLE:
            self._reject(OperationInProgressError())

    def _check_connected(self) -> None:
        if self._connection.state != ConnectionState.CONNECTED:
            self._reject(NotConnectedError())

    def _require_session(self) -> str:
        if self._session_id is None:
            self._reject(NoSessionError())
        return self._session_id

    def _require_prior_result(self) -> bytes:
        try:
            data = self._results.read_latest()
        except OSError as exc:
            # Removed between listing and reading.
            logger.warning("latest result unreadable: %s", exc)
            data = None
        if data is None:
            self._reject(NoPriorResultError())
        return data

    def _reject(self, exc: GaryError) -> None:
        logger.info("rejected: %s", exc.message)
        self._emit_error(exc.code, exc.message)
        raise exc

    def _reserve(
        self,
        kind: OperationKind,
        model_name: str = "",
        prompt_duration: int = 0,
        clip: Optional[AudioClip] = None,
    ) -> Operation:
        self._seq += 1
        op = Operation(
            kind=kind,
            seq=self._seq,
            model_name=model_name,
            prompt_duration=prompt_duration,
            clip=clip,
        )
        self._pending = op
        self._progress = 0
        self._transition(OrchestratorState.AWAITING_RESPONSE)
        return op

    def _dispatch(self, op: Operation, payload: dict[str, Any]) -> None:
        with self._lock:
            if self._pending is not op:
                return
            try:
                self._connection.send(op.kind, payload)
            except GaryError as exc:
                self._finish_failure(exc.code, exc.message)
                raise
            logger.info("%s #%d dispatched", op.kind.value, op.seq)
            if self._pending is op:
                self._arm_timer(op)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def _handle_event(self, event: ConnectionEvent) -> None:
        with self._lock:
            kind = event.kind
            if kind == ConnectionEventKind.PROGRESS:
                self._progress = event.percent
                if self._on_progress:
                    self._on_progress(event.percent)
                return
            if kind == ConnectionEventKind.CONNECTED:
                self._emit_connection_change()
                return
            if kind in (ConnectionEventKind.ERROR, ConnectionEventKind.DISCONNECTED):
                if event.code != PROTOCOL_ERROR:
                    self._emit_connection_change()
                code = event.code or CONNECTION_ERROR
                message = event.message or ERROR_MESSAGES.get(code, code)
                if self._pending is not None:
                    self._finish_failure(code, message)
                elif kind == ConnectionEventKind.ERROR:
                    self._emit_error(code, message)
                return
            if kind == ConnectionEventKind.AUDIO_RESULT:
                self._complete_audio(event)
                return
            if kind == ConnectionEventKind.CROP_ACK:
                self._complete_crop()

    def _complete_audio(self, event: ConnectionEvent) -> None:
        op = self._pending
        if op is None:
            logger.warning("ignoring %s result with no operation pending", event.result_kind)
            return
        if event.result_kind is not None and event.result_kind != op.kind:
            logger.warning("expected %s response, got %s", op.kind.value, event.result_kind.value)
        try:
            data = base64.b64decode(event.audio_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            self._finish_failure(PROTOCOL_ERROR, f"undecodable audio: {exc}")
            return
        try:
            path = self._results.save(data)
        except OSError as exc:
            self._finish_failure(PROTOCOL_ERROR, f"cannot store result: {exc}")
            return
        if event.session_id is not None:
            if event.session_id != self._session_id:
                logger.info("session %s -> %s", self._session_id, event.session_id)
            self._session_id = event.session_id
        self._finish_success(
            OperationResult(kind=op.kind, success=True, result_path=path, session_id=self._session_id)
        )

    def _complete_crop(self) -> None:
        op = self._pending
        if op is None or op.kind != OperationKind.UPDATE_CROP:
            logger.warning("ignoring crop acknowledgement with no crop pending")
            return
        path = None
        if op.clip is not None:
            try:
                path = self._results.save(to_wav_bytes(op.clip), cropped=True)
            except OSError as exc:
                logger.warning("cropped clip acknowledged but not stored: %s", exc)
        self._finish_success(
            OperationResult(kind=op.kind, success=True, result_path=path, session_id=self._session_id)
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _finish_success(self, result: OperationResult) -> None:
        self._cancel_timer()
        self._pending = None
        self._progress = 0
        self._transition(OrchestratorState.IDLE)
        logger.info("%s completed", result.kind.value)
        if self._on_complete:
            self._on_complete(result)

    def _finish_failure(self, code: str, message: str) -> None:
        op = self._pending
        self._cancel_timer()
        self._pending = None
        self._progress = 0
        self._transition(OrchestratorState.IDLE)
        self._emit_error(code, message)
        if op is not None and self._on_complete:
            self._on_complete(
                OperationResult(kind=op.kind, success=False, session_id=self._session_id, message=message)
            )

    def _arm_timer(self, op: Operation) -> None:
        if self._response_timeout_s is None:
            return
        self._cancel_timer()
        timer = threading.Timer(self._response_timeout_s, self._on_timeout, args=(op.seq,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self, seq: int) -> None:
        with self._lock:
            op = self._pending
            if op is None or op.seq != seq:
                return
            logger.warning("%s #%d timed out", op.kind.value, seq)
            self._timer = None
            self._finish_failure(RESPONSE_TIMEOUT, ERROR_MESSAGES[RESPONSE_TIMEOUT])

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _emit_connection_change(self) -> None:
        if self._on_connection_change:
            self._on_connection_change(self._connection.state)

    def _transition(self, to_state: OrchestratorState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
