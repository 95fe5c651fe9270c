"""Environment-driven settings for the printer client and HTTP bridge."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .service import TIRAMISU

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "tcp://192.168.2.120:9100"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class PrinterSettings:
    """Settings for connecting to the printer service.

    endpoint / alternate_endpoint:
        Device URIs behind the vendor service and its rebranded alternate
        (tcp://host:port, usb://vid:pid, serial:///dev/tty..., file:///dev/..., dummy://).
    platform_level:
        OS API level; decides which service identity is bound first.
    call_timeout:
        Seconds a single service call may take before failing with a timeout.
    reconnect_base_delay / max_reconnect_attempts:
        Backoff schedule after the service disconnects (delay doubles per attempt).
    """

    endpoint: str = DEFAULT_ENDPOINT
    alternate_endpoint: Optional[str] = None
    platform_level: int = TIRAMISU
    call_timeout: float = 10.0
    reconnect_base_delay: float = 5.0
    max_reconnect_attempts: int = 5
    log_level: str = "INFO"
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 8000

    @property
    def resolved_alternate_endpoint(self) -> str:
        return self.alternate_endpoint or self.endpoint

    @classmethod
    def from_env(cls) -> "PrinterSettings":
        """Read settings from the environment (and a .env file, if present)."""
        return cls(
            endpoint=os.getenv("NYX_PRINTER_ENDPOINT", DEFAULT_ENDPOINT),
            alternate_endpoint=os.getenv("NYX_PRINTER_ALT_ENDPOINT") or None,
            platform_level=_env_int("NYX_PLATFORM_LEVEL", TIRAMISU),
            call_timeout=_env_float("NYX_CALL_TIMEOUT", 10.0),
            reconnect_base_delay=_env_float("NYX_RECONNECT_BASE_DELAY", 5.0),
            max_reconnect_attempts=_env_int("NYX_MAX_RECONNECT_ATTEMPTS", 5),
            log_level=os.getenv("NYX_LOG_LEVEL", "INFO"),
            bridge_host=os.getenv("WEB_APP_HOST", "127.0.0.1"),
            bridge_port=_env_int("WEB_APP_PORT", 8000),
        )


def configure_logging(level: str) -> None:
    """Set up root logging for the bridge process."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
