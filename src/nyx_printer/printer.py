"""Public printer API."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from .config import PrinterSettings
from .connection import ServiceConnectionManager
from .errors import PrinterError
from .escpos_service import EscposConnector
from .service import PAPER_PRESENT, STATUS_READY, ServiceConnector, candidate_identities
from .text_format import DEFAULT_TEXT_FORMAT, TextFormat
from .transport import PrinterTransport, ServiceTransport

logger = logging.getLogger(__name__)

DEFAULT_BARCODE_WIDTH = 300
DEFAULT_BARCODE_HEIGHT = 160
DEFAULT_QR_SIZE = 300


class NyxPrinter:
    """Print text, barcodes, QR codes and images on the receipt printer.

    Print calls return the service result code (0 on success). A None result
    means the service answered without a definitive value and should be
    treated as unknown.

    Usage:
        async with NyxPrinter.connect() as printer:
            await printer.print_text("Hello")
            await printer.print_qr_code("https://example.com")
    """

    def __init__(self, transport: PrinterTransport):
        self.transport = transport

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        settings: Optional[PrinterSettings] = None,
        connector: Optional[ServiceConnector] = None,
    ) -> AsyncIterator["NyxPrinter"]:
        """Bind to the printer service for the duration of the block."""
        settings = settings or PrinterSettings.from_env()
        connector = connector or EscposConnector()

        manager = ServiceConnectionManager(
            connector,
            candidate_identities(
                settings.platform_level,
                settings.endpoint,
                settings.resolved_alternate_endpoint,
            ),
            base_delay=settings.reconnect_base_delay,
            max_attempts=settings.max_reconnect_attempts,
        )
        transport = ServiceTransport(manager, timeout=settings.call_timeout)
        try:
            await manager.attach()
            yield cls(transport)
        finally:
            await manager.detach()

    async def get_version(self) -> Optional[int]:
        return await self.transport.get_version()

    async def print_text(self, text: str, text_format: Optional[TextFormat] = None) -> Optional[int]:
        return await self.transport.print_text(text, text_format or DEFAULT_TEXT_FORMAT)

    async def print_barcode(
        self,
        text: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Optional[int]:
        """Print a barcode; defaults to 300x160."""
        return await self.transport.print_barcode(
            text,
            DEFAULT_BARCODE_WIDTH if width is None else width,
            DEFAULT_BARCODE_HEIGHT if height is None else height,
        )

    async def print_qr_code(
        self,
        text: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Optional[int]:
        """Print a QR code; defaults to 300x300."""
        return await self.transport.print_qr_code(
            text,
            DEFAULT_QR_SIZE if width is None else width,
            DEFAULT_QR_SIZE if height is None else height,
        )

    async def print_image(self, data: bytes) -> Optional[int]:
        return await self.transport.print_bitmap(data)

    async def check_paper(self) -> Optional[int]:
        """Return 0 if paper is present, another code if it is out."""
        return await self.transport.check_paper()

    async def feed_paper(self, pixels: int) -> Optional[int]:
        return await self.transport.feed_paper(pixels)

    async def get_service_version(self) -> Optional[str]:
        return await self.transport.get_service_version()

    async def get_printer_model(self) -> Optional[str]:
        return await self.transport.get_printer_model()

    async def get_printer_status(self) -> Optional[int]:
        """Return 0 when ready, another code for a specific fault."""
        return await self.transport.get_printer_status()

    async def is_service_connected(self) -> bool:
        return await self.transport.is_service_connected()

    async def is_ready(self) -> bool:
        """True only if the printer reports ready and paper is present."""
        try:
            status = await self.get_printer_status()
            paper = await self.check_paper()
        except PrinterError as exc:
            logger.debug(f"Readiness check failed: {exc}")
            return False
        return status == STATUS_READY and paper == PAPER_PRESENT

    async def get_diagnostics(self) -> Dict[str, Any]:
        """Run every read-only query and collect each result or error."""
        diagnostics: Dict[str, Any] = {}

        try:
            diagnostics["service_connected"] = await self.is_service_connected()
        except PrinterError:
            diagnostics["service_connected"] = False

        queries = (
            ("version", self.get_version),
            ("service_version", self.get_service_version),
            ("model", self.get_printer_model),
            ("status", self.get_printer_status),
            ("paper", self.check_paper),
        )
        for key, query in queries:
            try:
                diagnostics[key] = await query()
            except PrinterError as exc:
                diagnostics[key] = f"Error: {exc.message}"

        diagnostics["is_ready"] = await self.is_ready()
        return diagnostics
