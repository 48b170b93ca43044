"""Recorder exception hierarchy with stable taxonomy fields."""


class RecorderError(Exception):
    """Base error carrying stable taxonomy class/code fields."""

    error_class = "recorder"
    error_code = "REC_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.error_code)


class NotRecordingError(RecorderError):
    """Append attempted while recording is not on."""

    error_class = "caller_contract"
    error_code = "REC_NOT_RECORDING"


class InsufficientHistoryError(RecorderError):
    """Fewer than two code blocks exist to retract."""

    error_class = "caller_contract"
    error_code = "REC_INSUFFICIENT_HISTORY"


class IndexOutOfRangeError(RecorderError):
    """Code block index outside the recorded list."""

    error_class = "caller_contract"
    error_code = "REC_INDEX_OUT_OF_RANGE"

    def __init__(self, index: int, size: int):
        super().__init__(f"index {index} out of range for {size} code blocks")
        self.index = index
        self.size = size


class InjectionError(RecorderError):
    """Page agent could not be injected into the tab."""

    error_class = "collaborator_failure"
    error_code = "REC_INJECTION_FAILED"


class PersistenceError(RecorderError):
    """Session record could not be written to durable storage."""

    error_class = "collaborator_failure"
    error_code = "REC_PERSISTENCE_FAILED"


class UnhandledActionError(RecorderError):
    """Action kind has no statement template."""

    error_class = "programming_error"
    error_code = "REC_UNHANDLED_ACTION"

    def __init__(self, action: str):
        super().__init__(f"Uncaptured event action: {action}")
        self.action = action
