#!/usr/bin/env python3
"""HTTP bridge exposing the printer API as flat JSON calls."""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse

from .config import PrinterSettings, configure_logging
from .errors import (
    InvalidArgumentError,
    PrinterError,
    PrinterTimeoutError,
    RemoteFailureError,
    ServiceUnavailableError,
)
from .printer import NyxPrinter
from .text_format import TextFormat

logger = logging.getLogger(__name__)

STATUS_CODES = {
    InvalidArgumentError: 400,
    ServiceUnavailableError: 503,
    PrinterTimeoutError: 504,
    RemoteFailureError: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = PrinterSettings.from_env()
    async with NyxPrinter.connect(settings) as printer:
        app.state.printer = printer
        logger.info(f"Bridge attached to printer at {settings.endpoint}")
        yield
    app.state.printer = None


app = FastAPI(lifespan=lifespan)


def _printer(request: Request) -> NyxPrinter:
    printer = getattr(request.app.state, "printer", None)
    if printer is None:
        raise ServiceUnavailableError("Printer is not attached")
    return printer


def _ok(result: Any) -> JSONResponse:
    return JSONResponse({"success": True, "result": result})


def _optional_int(payload: Mapping[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{key} must be an integer", field=key)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"{key} must be an integer", field=key) from exc


async def _json_body(request: Request) -> Mapping[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise InvalidArgumentError("Request body must be a JSON object") from exc
    if not isinstance(payload, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return payload


@app.exception_handler(PrinterError)
async def printer_error_handler(_: Request, exc: PrinterError):
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    return JSONResponse(
        {"success": False, "code": exc.code, "error": exc.message},
        status_code=status_code,
    )


@app.post("/print/text")
async def print_text(request: Request):
    payload = await _json_body(request)
    text = str(payload.get("text") or "")
    text_format = TextFormat.from_wire_map(payload)
    return _ok(await _printer(request).print_text(text, text_format))


@app.post("/print/barcode")
async def print_barcode(request: Request):
    payload = await _json_body(request)
    result = await _printer(request).print_barcode(
        str(payload.get("text") or ""),
        width=_optional_int(payload, "width"),
        height=_optional_int(payload, "height"),
    )
    return _ok(result)


@app.post("/print/qrcode")
async def print_qr_code(request: Request):
    payload = await _json_body(request)
    result = await _printer(request).print_qr_code(
        str(payload.get("text") or ""),
        width=_optional_int(payload, "width"),
        height=_optional_int(payload, "height"),
    )
    return _ok(result)


@app.post("/print/image")
async def print_image(request: Request, attachment: Optional[UploadFile] = File(default=None)):
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        payload = await _json_body(request)
        try:
            image_bytes = base64.b64decode(payload.get("bytes") or "", validate=True)
        except (binascii.Error, TypeError) as exc:
            raise InvalidArgumentError("bytes must be base64 encoded", field="bytes") from exc
    elif attachment is not None:
        image_bytes = await attachment.read()
    else:
        image_bytes = b""
    return _ok(await _printer(request).print_image(image_bytes))


@app.post("/paper/feed")
async def feed_paper(request: Request):
    payload = await _json_body(request)
    pixels = _optional_int(payload, "pixels")
    if pixels is None:
        raise InvalidArgumentError("pixels is required", field="pixels")
    return _ok(await _printer(request).feed_paper(pixels))


@app.get("/paper")
async def check_paper(request: Request):
    return _ok(await _printer(request).check_paper())


@app.get("/version")
async def version(request: Request):
    printer = _printer(request)
    return JSONResponse({
        "success": True,
        "version": await printer.get_version(),
        "service_version": await printer.get_service_version(),
    })


@app.get("/model")
async def model(request: Request):
    return _ok(await _printer(request).get_printer_model())


@app.get("/status")
async def status(request: Request):
    return _ok(await _printer(request).get_printer_status())


@app.get("/diagnostics")
async def diagnostics(request: Request):
    return JSONResponse(await _printer(request).get_diagnostics())


@app.get("/health")
async def health(request: Request):
    printer = getattr(request.app.state, "printer", None)
    if printer is None:
        return JSONResponse({"connected": False, "ready": False})
    return JSONResponse({
        "connected": await printer.is_service_connected(),
        "ready": await printer.is_ready(),
    })


def main():
    """Run the bridge server via a script entry point."""
    import uvicorn

    settings = PrinterSettings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(app, host=settings.bridge_host, port=settings.bridge_port)


if __name__ == "__main__":
    main()
