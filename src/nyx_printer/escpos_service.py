"""Printer service backed by a python-escpos device."""

import logging
from contextlib import contextmanager
from importlib import metadata
from typing import Any, Callable, Optional, Tuple, Union
from urllib.parse import parse_qs, urlparse

from escpos.exceptions import Error as EscposError
from escpos.printer import Dummy, File, Network, Serial, Usb

from .errors import BindError, RemoteError
from .service import (
    PAPER_OUT,
    PAPER_PRESENT,
    RESULT_OK,
    STATUS_READY,
    PrintTextFormat,
    ServiceIdentity,
)

logger = logging.getLogger(__name__)

EscposDevice = Union[Usb, Serial, Network, File, Dummy]

STATUS_OFFLINE = 1
STATUS_PAPER_OUT = 2

ALIGN_NAMES = {0: "left", 1: "center", 2: "right"}
IMAGE_IMPLS = {0: "bitImageRaster", 1: "bitImageColumn", 2: "graphics"}

# Font A cell width in dots; used to turn left padding into leading spaces
FONT_A_WIDTH = 12
BASE_TEXT_SIZE = 24
MAX_FEED_STEP = 255


def open_device(endpoint: str) -> EscposDevice:
    """Create and open the escpos device an endpoint URI points at.

    Supported forms:
      tcp://192.168.2.120:9100
      usb://0x0483:0x5720
      serial:///dev/ttyUSB0?baudrate=9600
      file:///dev/usb/lp0
      dummy://
    """
    parsed = urlparse(endpoint)
    scheme = parsed.scheme.lower()

    if scheme == "dummy":
        return Dummy()

    if scheme == "tcp":
        device = Network(parsed.hostname, parsed.port or 9100)
    elif scheme == "usb":
        try:
            vendor, product = (int(part, 16) for part in parsed.netloc.split(":", 1))
        except ValueError as exc:
            raise BindError(f"Invalid USB endpoint {endpoint!r}") from exc
        device = Usb(vendor, product)
    elif scheme == "serial":
        query = parse_qs(parsed.query)
        baudrate = int(query.get("baudrate", ["9600"])[0])
        device = Serial(parsed.path, baudrate=baudrate)
    elif scheme == "file":
        device = File(parsed.path)
    else:
        raise BindError(f"Unsupported printer endpoint {endpoint!r}")

    device.open()
    return device


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _size_multiplier(text_size: int, scale: float) -> int:
    return _clamp(round(text_size / BASE_TEXT_SIZE * scale), 1, 8)


class EscposPrinterService:
    """Exposes an escpos device through the printer service's remote calls."""

    def __init__(
        self,
        device: EscposDevice,
        identity: ServiceIdentity,
        on_disconnected: Callable[[], None],
    ):
        self._device = device
        self._identity = identity
        self._on_disconnected = on_disconnected
        self._lost = False

    @contextmanager
    def _remote_call(self, operation: str):
        try:
            yield
        except OSError as exc:
            self._report_lost()
            raise RemoteError("DEVICE_LOST", f"{operation} failed: {exc}") from exc
        except EscposError as exc:
            raise RemoteError("ESCPOS_ERROR", f"{operation} failed: {exc}") from exc

    def _report_lost(self) -> None:
        if self._lost:
            return
        self._lost = True
        logger.warning(f"Printer device behind {self._identity.name} went away")
        self._on_disconnected()

    def get_printer_version(self) -> Tuple[int, Optional[str]]:
        profile_data = getattr(self._device.profile, "profile_data", {}) or {}
        return RESULT_OK, profile_data.get("name") or self.service_version

    @property
    def service_version(self) -> Optional[str]:
        try:
            return metadata.version("python-escpos")
        except metadata.PackageNotFoundError:
            return None

    def get_printer_model(self) -> Optional[str]:
        profile_data = getattr(self._device.profile, "profile_data", {}) or {}
        vendor = profile_data.get("vendor") or ""
        name = profile_data.get("name") or ""
        model = f"{vendor} {name}".strip()
        return model or type(self._device).__name__

    @property
    def printer_status(self) -> Optional[int]:
        with self._remote_call("printer_status"):
            try:
                if not self._device.is_online():
                    return STATUS_OFFLINE
                if self._device.paper_status() == 0:
                    return STATUS_PAPER_OUT
            except NotImplementedError:
                # Write-only transports cannot report status
                return None
        return STATUS_READY

    def paper_status(self) -> Optional[int]:
        with self._remote_call("paper_status"):
            try:
                status = self._device.paper_status()
            except NotImplementedError:
                return None
        # escpos reports 0 for no paper, 1 for near end and 2 for adequate
        return PAPER_OUT if status == 0 else PAPER_PRESENT

    def paper_out(self, pixels: int) -> int:
        with self._remote_call("paper_out"):
            remaining = pixels
            while remaining > 0:
                step = min(MAX_FEED_STEP, remaining)
                self._device._raw(b"\x1bJ" + bytes([step]))
                remaining -= step
        return RESULT_OK

    def print_text(self, text: str, fmt: PrintTextFormat) -> int:
        with self._remote_call("print_text"):
            if fmt.topPadding:
                self.paper_out(fmt.topPadding)
            self._device.set(
                align=ALIGN_NAMES.get(fmt.ali, "left"),
                font="b" if fmt.font == 4 else "a",
                bold=fmt.style in (1, 3) or fmt.font == 1,
                underline=1 if fmt.underline else 0,
                custom_size=True,
                width=_size_multiplier(fmt.textSize, fmt.textScaleX),
                height=_size_multiplier(fmt.textSize, fmt.textScaleY),
            )
            indent = " " * (fmt.leftPadding // FONT_A_WIDTH)
            line = indent + text
            self._device.text(line if line.endswith("\n") else line + "\n")
            self._device.set(align="left", font="a", bold=False, underline=0, normal_textsize=True)
        return RESULT_OK

    def print_barcode(self, text: str, width: int, height: int, text_position: int, align: int) -> int:
        code = text if text.startswith("{") else "{B" + text
        with self._remote_call("print_barcode"):
            self._device.barcode(
                code,
                "CODE128",
                height=_clamp(height, 1, 255),
                width=_clamp(width // 100 + 1, 2, 6),
                pos="BELOW" if text_position else "OFF",
                align_ct=bool(align),
                function_type="B",
            )
        return RESULT_OK

    def print_qr_code(self, text: str, width: int, height: int, align: int) -> int:
        with self._remote_call("print_qr_code"):
            self._device.qr(text, size=_clamp(min(width, height) // 40, 1, 16), center=bool(align))
        return RESULT_OK

    def print_bitmap(self, image: Any, mode: int, align: int) -> int:
        with self._remote_call("print_bitmap"):
            self._device.image(image, impl=IMAGE_IMPLS.get(mode, "bitImageColumn"), center=bool(align))
        return RESULT_OK


class EscposConnector:
    """Binds the printer service to an escpos device named by the identity endpoint."""

    def __init__(self, opener: Callable[[str], EscposDevice] = open_device):
        self._opener = opener
        self._device: Optional[EscposDevice] = None

    def bind(self, identity: ServiceIdentity, on_disconnected: Callable[[], None]) -> EscposPrinterService:
        if not identity.endpoint:
            raise BindError(f"No endpoint configured for {identity.name}")
        # A rebind after the device was lost must not leak the old handle
        self.unbind()
        try:
            device = self._opener(identity.endpoint)
        except BindError:
            raise
        except (OSError, EscposError, ValueError, RuntimeError) as exc:
            raise BindError(f"Could not open {identity.endpoint}: {exc}") from exc

        self._device = device
        logger.info(f"Opened printer device {identity.endpoint} for {identity.name}")
        return EscposPrinterService(device, identity, on_disconnected)

    def unbind(self) -> None:
        device, self._device = self._device, None
        if device is None:
            return
        try:
            device.close()
        except (OSError, EscposError) as exc:
            logger.warning(f"Error closing printer device: {exc}")
