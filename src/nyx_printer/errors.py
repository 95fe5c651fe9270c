"""Error types raised by the printer client."""

from typing import Optional


class PrinterError(Exception):
    """Base error for every failure surfaced to callers."""

    code = "PRINTER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidArgumentError(PrinterError, ValueError):
    """A caller-supplied value violates a precondition."""

    code = "INVALID_ARGUMENT"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ServiceUnavailableError(PrinterError):
    """No live connection to the printer service."""

    code = "SERVICE_NOT_BOUND"

    def __init__(self, message: str = "Printer service is not bound"):
        super().__init__(message)


class PrinterTimeoutError(PrinterError, TimeoutError):
    """A call did not complete within its time budget."""

    code = "TIMEOUT"

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g} seconds")
        self.operation = operation
        self.timeout = timeout


class RemoteFailureError(PrinterError):
    """The printer service itself reported an error."""

    code = "REMOTE_EXCEPTION"


class RemoteError(Exception):
    """Raised by service implementations when a remote call fails."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class BindError(Exception):
    """A connector could not enqueue a bind to the service."""
