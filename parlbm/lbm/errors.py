__all__ = [
    "ParlbmError",
    "ConfigurationError",
    "SimulationStateError",
    "WorkerError",
]


class ParlbmError(Exception):
    """Base class of the errors raised by parlbm."""


class ConfigurationError(ParlbmError, ValueError):
    """Raised when a run is configured with invalid options. Always raised before
    any worker thread is spawned."""


class SimulationStateError(ParlbmError, RuntimeError):
    """Raised when the run-control primitives are used out of order."""


class WorkerError(ParlbmError, RuntimeError):
    """Raised by the controller when a worker thread failed during a step."""

    def __init__(self, tid: int, error: BaseException):
        self.tid = tid
        self.error = error
        super().__init__(f"Worker {tid} failed: {type(error).__name__}: {error}")
