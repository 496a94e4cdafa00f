# errors.py
# Exception taxonomy for the harness.
#
# Precondition errors surface synchronously from run(). Model backend
# errors are recovered inside think(). Tool execution errors end the run
# in ERROR; the controller converts them to text or a stream event and
# does not re-raise them.


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


class InvalidStateError(HarnessError):
    """Raised when a run is started from any state other than IDLE."""


class InvalidArgumentError(HarnessError):
    """Raised when a run is started with a blank prompt."""


class ModelBackendError(HarnessError):
    """Raised when the model backend cannot produce an assistant message."""


class ToolExecutionError(HarnessError):
    """Raised when a requested tool call cannot be resolved."""


class ToolNotFoundError(ToolExecutionError):
    """Raised when the model requests a tool absent from the catalog."""
