"""Remote interface of the printer service and how to reach it."""

from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Protocol, Tuple, runtime_checkable

from .text_format import ALIGN_CODES, FONT_CODES, STYLE_CODES, TextFormat

TIRAMISU = 33

# Service return codes
RESULT_OK = 0
STATUS_READY = 0
PAPER_PRESENT = 0
PAPER_OUT = 1

# Fixed flags the service expects on barcode/QR/bitmap calls
BARCODE_TEXT_BELOW = 1
ALIGN_CENTER_FLAG = 1
BITMAP_MODE_DEFAULT = 1


@dataclass(frozen=True)
class ServiceIdentity:
    """One way to reach the printer service: package, action and device endpoint."""

    package: str
    action: str
    endpoint: str = ""

    @property
    def name(self) -> str:
        return self.package


NYX_SERVICE = ServiceIdentity(
    package="net.nyx.printerservice",
    action="net.nyx.printerservice.IPrinterService",
)
INCAR_SERVICE = ServiceIdentity(
    package="com.incar.printerservice",
    action="com.incar.printerservice.IPrinterService",
)


def candidate_identities(
    platform_level: int,
    endpoint: str,
    alternate_endpoint: Optional[str] = None,
) -> List[ServiceIdentity]:
    """Return both service identities in the order they should be bound.

    From Tiramisu on the rebranded incar service ships instead of the vendor's
    own package, so it is tried first there.
    """
    nyx = replace(NYX_SERVICE, endpoint=endpoint)
    incar = replace(INCAR_SERVICE, endpoint=alternate_endpoint or endpoint)
    if platform_level >= TIRAMISU:
        return [incar, nyx]
    return [nyx, incar]


@dataclass
class PrintTextFormat:
    """Text format struct as the service declares it (vendor field names)."""

    textSize: int = 24
    underline: bool = False
    textScaleX: float = 1.0
    textScaleY: float = 1.0
    letterSpacing: float = 0.0
    lineSpacing: float = 0.0
    topPadding: int = 0
    leftPadding: int = 0
    ali: int = 0
    style: int = 0
    font: int = 0

    @classmethod
    def from_text_format(cls, fmt: TextFormat) -> "PrintTextFormat":
        fmt.validate()
        return cls(
            textSize=fmt.text_size,
            underline=fmt.underline,
            textScaleX=float(fmt.text_scale_x),
            textScaleY=float(fmt.text_scale_y),
            letterSpacing=float(fmt.letter_spacing),
            lineSpacing=float(fmt.line_spacing),
            topPadding=fmt.top_padding,
            leftPadding=fmt.left_padding,
            ali=ALIGN_CODES[fmt.align],
            style=STYLE_CODES[fmt.style],
            font=FONT_CODES[fmt.font],
        )


@runtime_checkable
class PrinterService(Protocol):
    """Remote calls exposed by a bound printer service.

    Every method may raise RemoteError. Calls block and must only be made
    from the connection manager's worker.
    """

    def get_printer_version(self) -> Tuple[int, Optional[str]]:
        """Return (result code, version string)."""
        ...

    @property
    def service_version(self) -> Optional[str]:
        ...

    def get_printer_model(self) -> Optional[str]:
        ...

    @property
    def printer_status(self) -> Optional[int]:
        ...

    def paper_status(self) -> Optional[int]:
        """Return PAPER_PRESENT or PAPER_OUT without moving the paper."""
        ...

    def paper_out(self, pixels: int) -> int:
        """Feed the paper by the given number of dots."""
        ...

    def print_text(self, text: str, fmt: PrintTextFormat) -> int:
        ...

    def print_barcode(self, text: str, width: int, height: int, text_position: int, align: int) -> int:
        ...

    def print_qr_code(self, text: str, width: int, height: int, align: int) -> int:
        ...

    def print_bitmap(self, image: Any, mode: int, align: int) -> int:
        ...


class ServiceConnector(Protocol):
    """Binds to and unbinds from the printer service."""

    def bind(self, identity: ServiceIdentity, on_disconnected: Callable[[], None]) -> PrinterService:
        """Bind to the service behind identity.

        Raises BindError when the bind cannot be enqueued. on_disconnected
        may be invoked later, from any thread, when the service goes away.
        """
        ...

    def unbind(self) -> None:
        ...
