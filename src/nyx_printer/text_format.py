"""Text formatting options sent along with a print_text call."""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping

from .errors import InvalidArgumentError


class Align(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class FontStyle(Enum):
    NORMAL = "normal"
    BOLD = "bold"
    ITALIC = "italic"
    BOLD_ITALIC = "boldItalic"


class Font(Enum):
    DEFAULT = "default"
    DEFAULT_BOLD = "defaultBold"
    SANS_SERIF = "sansSerif"
    SERIF = "serif"
    MONOSPACE = "monospace"


# Integer codes understood by the printer service. Kept as literal tables so
# reordering the enums above can never change what goes on the wire.
ALIGN_CODES: Dict[Align, int] = {
    Align.LEFT: 0,
    Align.CENTER: 1,
    Align.RIGHT: 2,
}

STYLE_CODES: Dict[FontStyle, int] = {
    FontStyle.NORMAL: 0,
    FontStyle.BOLD: 1,
    FontStyle.ITALIC: 2,
    FontStyle.BOLD_ITALIC: 3,
}

FONT_CODES: Dict[Font, int] = {
    Font.DEFAULT: 0,
    Font.DEFAULT_BOLD: 1,
    Font.SANS_SERIF: 2,
    Font.SERIF: 3,
    Font.MONOSPACE: 4,
}

WIRE_KEYS = (
    "textSize",
    "underline",
    "textScaleX",
    "textScaleY",
    "letterSpacing",
    "lineSpacing",
    "topPadding",
    "leftPadding",
    "align",
    "style",
    "font",
)


def _decode(table: Mapping[Any, int], code: Any, field: str):
    for member, value in table.items():
        if value == code:
            return member
    raise InvalidArgumentError(f"Unknown {field} code: {code!r}", field=field)


@dataclass(frozen=True)
class TextFormat:
    """Formatting for a block of printed text.

    Defaults match the printer service: 24px text, no underline, no scaling,
    no spacing or padding, left aligned, normal style, default font.
    Instances are immutable; use replace() to derive a modified copy.
    """

    text_size: int = 24
    underline: bool = False
    text_scale_x: float = 1.0
    text_scale_y: float = 1.0
    letter_spacing: float = 0.0
    line_spacing: float = 0.0
    top_padding: int = 0
    left_padding: int = 0
    align: Align = Align.LEFT
    style: FontStyle = FontStyle.NORMAL
    font: Font = Font.DEFAULT

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise InvalidArgumentError naming the first field out of range."""
        if self.text_size <= 0:
            raise InvalidArgumentError("text_size must be positive", field="text_size")
        if self.text_scale_x <= 0:
            raise InvalidArgumentError("text_scale_x must be positive", field="text_scale_x")
        if self.text_scale_y <= 0:
            raise InvalidArgumentError("text_scale_y must be positive", field="text_scale_y")
        if self.top_padding < 0:
            raise InvalidArgumentError("top_padding must be non-negative", field="top_padding")
        if self.left_padding < 0:
            raise InvalidArgumentError("left_padding must be non-negative", field="left_padding")

    def replace(self, **changes: Any) -> "TextFormat":
        """Return a validated copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    def to_wire_map(self) -> Dict[str, Any]:
        """Flatten into the key/value map sent to the printer service."""
        self.validate()
        return {
            "textSize": self.text_size,
            "underline": self.underline,
            "textScaleX": float(self.text_scale_x),
            "textScaleY": float(self.text_scale_y),
            "letterSpacing": float(self.letter_spacing),
            "lineSpacing": float(self.line_spacing),
            "topPadding": self.top_padding,
            "leftPadding": self.left_padding,
            "align": ALIGN_CODES[self.align],
            "style": STYLE_CODES[self.style],
            "font": FONT_CODES[self.font],
        }

    @classmethod
    def from_wire_map(cls, data: Mapping[str, Any]) -> "TextFormat":
        """Build a format from a flat wire map; missing keys use defaults."""
        default = DEFAULT_TEXT_FORMAT
        try:
            return cls(
                text_size=int(data.get("textSize", default.text_size)),
                underline=bool(data.get("underline", default.underline)),
                text_scale_x=float(data.get("textScaleX", default.text_scale_x)),
                text_scale_y=float(data.get("textScaleY", default.text_scale_y)),
                letter_spacing=float(data.get("letterSpacing", default.letter_spacing)),
                line_spacing=float(data.get("lineSpacing", default.line_spacing)),
                top_padding=int(data.get("topPadding", default.top_padding)),
                left_padding=int(data.get("leftPadding", default.left_padding)),
                align=_decode(ALIGN_CODES, data.get("align", 0), "align"),
                style=_decode(STYLE_CODES, data.get("style", 0), "style"),
                font=_decode(FONT_CODES, data.get("font", 0), "font"),
            )
        except InvalidArgumentError:
            raise
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(f"Malformed text format: {exc}") from exc


DEFAULT_TEXT_FORMAT = TextFormat()
