"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

CONVERSION_FAILED = "CONVERSION_FAILED"
EMPTY_CROP = "EMPTY_CROP"
NOT_CONNECTED = "NOT_CONNECTED"
NO_INPUT = "NO_INPUT"
NO_SESSION = "NO_SESSION"
NO_PRIOR_RESULT = "NO_PRIOR_RESULT"
OPERATION_IN_PROGRESS = "OPERATION_IN_PROGRESS"
CONNECTION_ERROR = "CONNECTION_ERROR"
DISCONNECTED = "DISCONNECTED"
PROTOCOL_ERROR = "PROTOCOL_ERROR"
RESPONSE_TIMEOUT = "RESPONSE_TIMEOUT"

ERROR_MESSAGES = {
    CONVERSION_FAILED: "Audio could not be converted.",
    EMPTY_CROP: "Playback position is zero, nothing to crop.",
    NOT_CONNECTED: "Not connected to the server.",
    NO_INPUT: "No recording to send.",
    NO_SESSION: "No session yet, send a recording first.",
    NO_PRIOR_RESULT: "No generated audio available to continue.",
    OPERATION_IN_PROGRESS: "Processing already in progress.",
    CONNECTION_ERROR: "Connection failed, please retry.",
    DISCONNECTED: "Connection lost before the server answered.",
    PROTOCOL_ERROR: "Server response format is invalid.",
    RESPONSE_TIMEOUT: "Server did not answer in time.",
}


class GaryError(Exception):
    code = ""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))
        self.message = str(self)


class ConversionError(GaryError):
    code = CONVERSION_FAILED


class EmptyCropError(GaryError):
    code = EMPTY_CROP


class NotConnectedError(GaryError):
    code = NOT_CONNECTED


class NoInputError(GaryError):
    code = NO_INPUT


class NoSessionError(GaryError):
    code = NO_SESSION


class NoPriorResultError(GaryError):
    code = NO_PRIOR_RESULT


class OperationInProgressError(GaryError):
    code = OPERATION_IN_PROGRESS


class TransportError(GaryError):
    code = CONNECTION_ERROR
