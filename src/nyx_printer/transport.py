"""Typed remote calls to the printer service."""

import asyncio
import io
import logging
from operator import attrgetter
from typing import Any, Callable, Optional, Protocol

from PIL import Image

from .connection import ServiceConnectionManager
from .errors import (
    InvalidArgumentError,
    PrinterTimeoutError,
    RemoteError,
    RemoteFailureError,
    ServiceUnavailableError,
)
from .service import (
    ALIGN_CENTER_FLAG,
    BARCODE_TEXT_BELOW,
    BITMAP_MODE_DEFAULT,
    PrinterService,
    PrintTextFormat,
)
from .text_format import TextFormat

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 10.0


class PrinterTransport(Protocol):
    """One coroutine per printer capability."""

    async def get_version(self) -> Optional[int]: ...

    async def print_text(self, text: str, text_format: TextFormat) -> Optional[int]: ...

    async def print_barcode(self, text: str, width: int, height: int) -> Optional[int]: ...

    async def print_qr_code(self, text: str, width: int, height: int) -> Optional[int]: ...

    async def print_bitmap(self, data: bytes) -> Optional[int]: ...

    async def check_paper(self) -> Optional[int]: ...

    async def feed_paper(self, pixels: int) -> Optional[int]: ...

    async def get_service_version(self) -> Optional[str]: ...

    async def get_printer_model(self) -> Optional[str]: ...

    async def get_printer_status(self) -> Optional[int]: ...

    async def is_service_connected(self) -> bool: ...


def decode_image(data: bytes) -> Image.Image:
    """Decode raw image bytes into a Pillow image ready for the service."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, Image.DecompressionBombError) as exc:
        raise InvalidArgumentError(f"Image bytes could not be decoded: {exc}", field="bytes") from exc
    return image


def _printer_version(service: PrinterService) -> int:
    result, _ = service.get_printer_version()
    return result


def _print_bitmap(service: PrinterService, data: bytes) -> int:
    return service.print_bitmap(decode_image(data), BITMAP_MODE_DEFAULT, ALIGN_CENTER_FLAG)


def _require_text(text: str, what: str) -> None:
    if not text:
        raise InvalidArgumentError(f"{what} cannot be empty", field="text")


def _require_dimensions(width: int, height: int, what: str) -> None:
    if width <= 0:
        raise InvalidArgumentError(f"{what} width must be positive", field="width")
    if height <= 0:
        raise InvalidArgumentError(f"{what} height must be positive", field="height")


class ServiceTransport:
    """Printer transport that dispatches through a ServiceConnectionManager.

    Every call validates its arguments first, fails fast when the service is
    not bound, and waits at most `timeout` seconds for the worker. A call that
    times out is abandoned by the caller but may still complete on the worker;
    the connection is left as it is.
    """

    def __init__(
        self,
        manager: ServiceConnectionManager,
        *,
        timeout: float = DEFAULT_CALL_TIMEOUT,
    ):
        self.manager = manager
        self.timeout = timeout

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        if not self.manager.is_connected:
            raise ServiceUnavailableError()

        future = self.manager.submit(fn, *args)
        done, _ = await asyncio.wait({future}, timeout=self.timeout)
        if not done:
            future.cancel()
            logger.warning(f"{operation} timed out after {self.timeout:g}s")
            raise PrinterTimeoutError(operation, self.timeout)

        try:
            return future.result()
        except RemoteError as exc:
            logger.warning(f"{operation} failed: {exc.code} - {exc.message}")
            raise RemoteFailureError(exc.message, code=exc.code) from exc

    async def get_version(self) -> Optional[int]:
        return await self._call("get_version", _printer_version)

    async def print_text(self, text: str, text_format: TextFormat) -> Optional[int]:
        _require_text(text, "Text")
        struct = PrintTextFormat.from_text_format(text_format)
        return await self._call("print_text", lambda service: service.print_text(text, struct))

    async def print_barcode(self, text: str, width: int, height: int) -> Optional[int]:
        _require_text(text, "Barcode text")
        _require_dimensions(width, height, "Barcode")
        return await self._call(
            "print_barcode",
            lambda service: service.print_barcode(text, width, height, BARCODE_TEXT_BELOW, ALIGN_CENTER_FLAG),
        )

    async def print_qr_code(self, text: str, width: int, height: int) -> Optional[int]:
        _require_text(text, "QR code text")
        _require_dimensions(width, height, "QR code")
        return await self._call(
            "print_qr_code",
            lambda service: service.print_qr_code(text, width, height, ALIGN_CENTER_FLAG),
        )

    async def print_bitmap(self, data: bytes) -> Optional[int]:
        if not data:
            raise InvalidArgumentError("Image bytes cannot be empty", field="bytes")
        return await self._call("print_bitmap", _print_bitmap, bytes(data))

    async def check_paper(self) -> Optional[int]:
        return await self._call("check_paper", lambda service: service.paper_status())

    async def feed_paper(self, pixels: int) -> Optional[int]:
        if pixels < 0:
            raise InvalidArgumentError("Paper feed pixels must be non-negative", field="pixels")
        return await self._call("feed_paper", lambda service: service.paper_out(pixels))

    async def get_service_version(self) -> Optional[str]:
        return await self._call("get_service_version", attrgetter("service_version"))

    async def get_printer_model(self) -> Optional[str]:
        return await self._call("get_printer_model", lambda service: service.get_printer_model())

    async def get_printer_status(self) -> Optional[int]:
        return await self._call("get_printer_status", attrgetter("printer_status"))

    async def is_service_connected(self) -> bool:
        return self.manager.is_connected
