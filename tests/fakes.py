"""Test doubles for the printer service, its connector and the transport."""

import threading
import time
from contextlib import asynccontextmanager

from nyx_printer.connection import ServiceConnectionManager
from nyx_printer.errors import BindError
from nyx_printer.service import candidate_identities


class FakePrinterService:
    """Scriptable stand-in for a bound printer service.

    results: method name -> return value
    errors: method name -> exception to raise
    delays: method name -> seconds to block before answering
    """

    def __init__(self):
        self.calls = []
        self.results = {}
        self.errors = {}
        self.delays = {}
        self.threads = set()

    def _answer(self, name, default, *args):
        self.calls.append((name, args))
        self.threads.add(threading.current_thread().name)
        if name in self.delays:
            time.sleep(self.delays[name])
        if name in self.errors:
            raise self.errors[name]
        return self.results.get(name, default)

    def get_printer_version(self):
        return self._answer("get_printer_version", 0), "1.0.3"

    @property
    def service_version(self):
        return self._answer("service_version", "2.4.1")

    def get_printer_model(self):
        return self._answer("get_printer_model", "NYX-P1")

    @property
    def printer_status(self):
        return self._answer("printer_status", 0)

    def paper_status(self):
        return self._answer("paper_status", 0)

    def paper_out(self, pixels):
        return self._answer("paper_out", 0, pixels)

    def print_text(self, text, fmt):
        return self._answer("print_text", 0, text, fmt)

    def print_barcode(self, text, width, height, text_position, align):
        return self._answer("print_barcode", 0, text, width, height, text_position, align)

    def print_qr_code(self, text, width, height, align):
        return self._answer("print_qr_code", 0, text, width, height, align)

    def print_bitmap(self, image, mode, align):
        return self._answer("print_bitmap", 0, image, mode, align)


class FakeConnector:
    """Connector that hands out a FakePrinterService.

    fail_next: number of upcoming bind calls that raise BindError
    failing: packages whose binds always raise BindError
    crash: exception raised by every bind instead of BindError
    """

    def __init__(self, service=None):
        self.service = service or FakePrinterService()
        self.bound = []
        self.unbinds = 0
        self.fail_next = 0
        self.failing = set()
        self.crash = None
        self.on_disconnected = None

    def bind(self, identity, on_disconnected):
        self.bound.append(identity)
        if self.crash is not None:
            raise self.crash
        if self.fail_next > 0:
            self.fail_next -= 1
            raise BindError(f"bind to {identity.package} refused")
        if identity.package in self.failing:
            raise BindError(f"{identity.package} is not installed")
        self.on_disconnected = on_disconnected
        return self.service

    def unbind(self):
        self.unbinds += 1

    def drop(self):
        """Simulate the service process dying, reported from another thread."""
        thread = threading.Thread(target=self.on_disconnected)
        thread.start()
        thread.join()


@asynccontextmanager
async def attached_manager(connector, platform_level=33, **kwargs):
    kwargs.setdefault("base_delay", 0.01)
    kwargs.setdefault("max_attempts", 3)
    manager = ServiceConnectionManager(
        connector,
        candidate_identities(platform_level, "dummy://", "dummy://"),
        **kwargs,
    )
    await manager.attach()
    try:
        yield manager
    finally:
        await manager.detach()


class FakeTransport:
    """In-memory PrinterTransport recording every call."""

    def __init__(self):
        self.calls = []
        self.results = {
            "get_version": 0,
            "print_text": 0,
            "print_barcode": 0,
            "print_qr_code": 0,
            "print_bitmap": 0,
            "check_paper": 0,
            "feed_paper": 0,
            "get_service_version": "2.4.1",
            "get_printer_model": "NYX-P1",
            "get_printer_status": 0,
        }
        self.errors = {}
        self.connected = True

    async def _run(self, name, *args):
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]
        return self.results.get(name)

    async def get_version(self):
        return await self._run("get_version")

    async def print_text(self, text, text_format):
        return await self._run("print_text", text, text_format)

    async def print_barcode(self, text, width, height):
        return await self._run("print_barcode", text, width, height)

    async def print_qr_code(self, text, width, height):
        return await self._run("print_qr_code", text, width, height)

    async def print_bitmap(self, data):
        return await self._run("print_bitmap", data)

    async def check_paper(self):
        return await self._run("check_paper")

    async def feed_paper(self, pixels):
        return await self._run("feed_paper", pixels)

    async def get_service_version(self):
        return await self._run("get_service_version")

    async def get_printer_model(self):
        return await self._run("get_printer_model")

    async def get_printer_status(self):
        return await self._run("get_printer_status")

    async def is_service_connected(self):
        return self.connected
