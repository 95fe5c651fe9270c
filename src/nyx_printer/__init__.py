"""nyx-printer - asyncio client for the NYX receipt printer service."""

__version__ = "1.0.0"

from .errors import (
    InvalidArgumentError,
    PrinterError,
    PrinterTimeoutError,
    RemoteFailureError,
    ServiceUnavailableError,
)
from .printer import NyxPrinter
from .text_format import DEFAULT_TEXT_FORMAT, Align, Font, FontStyle, TextFormat

__all__ = [
    "NyxPrinter",
    "TextFormat",
    "DEFAULT_TEXT_FORMAT",
    "Align",
    "Font",
    "FontStyle",
    "PrinterError",
    "InvalidArgumentError",
    "ServiceUnavailableError",
    "PrinterTimeoutError",
    "RemoteFailureError",
]
