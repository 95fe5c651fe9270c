from unittest.mock import MagicMock

import pytest
from escpos.exceptions import Error as EscposError
from escpos.printer import Dummy

from nyx_printer.config import PrinterSettings
from nyx_printer.errors import BindError, RemoteError
from nyx_printer.escpos_service import (
    STATUS_OFFLINE,
    STATUS_PAPER_OUT,
    EscposConnector,
    EscposPrinterService,
    open_device,
)
from nyx_printer.printer import NyxPrinter
from nyx_printer.service import (
    NYX_SERVICE,
    PAPER_OUT,
    PAPER_PRESENT,
    STATUS_READY,
    PrintTextFormat,
    ServiceIdentity,
)


@pytest.fixture
def device():
    mock = MagicMock()
    mock.profile.profile_data = {"vendor": "Generic", "name": "TM-T88III"}
    return mock


@pytest.fixture
def lost():
    return MagicMock()


@pytest.fixture
def service(device, lost):
    return EscposPrinterService(device, NYX_SERVICE, lost)


def test_open_device_dummy():
    assert isinstance(open_device("dummy://"), Dummy)


def test_open_device_rejects_unknown_scheme():
    with pytest.raises(BindError):
        open_device("bluetooth://00:11:22:33:44:55")


def test_open_device_rejects_bad_usb_ids():
    with pytest.raises(BindError):
        open_device("usb://vendor:product")


def test_print_text_on_dummy_device():
    device = Dummy()
    service = EscposPrinterService(device, NYX_SERVICE, lambda: None)
    assert service.print_text("Hello", PrintTextFormat(ali=1, style=1)) == 0
    assert b"Hello\n" in device.output


def test_print_text_applies_format(service, device):
    fmt = PrintTextFormat(textSize=48, underline=True, ali=2, style=3, font=4, topPadding=10, leftPadding=24)
    service.print_text("Total", fmt)

    device._raw.assert_any_call(b"\x1bJ\x0a")
    first_set = device.set.call_args_list[0].kwargs
    assert first_set["align"] == "right"
    assert first_set["font"] == "b"
    assert first_set["bold"] is True
    assert first_set["underline"] == 1
    assert first_set["width"] == 2
    assert first_set["height"] == 2
    device.text.assert_called_once_with("  Total\n")


def test_paper_out_feeds_in_steps(service, device):
    assert service.paper_out(300) == 0
    assert [c.args[0] for c in device._raw.call_args_list] == [b"\x1bJ\xff", b"\x1bJ\x2d"]


def test_paper_out_zero_sends_nothing(service, device):
    service.paper_out(0)
    device._raw.assert_not_called()


def test_barcode_uses_code128(service, device):
    service.print_barcode("12345", 300, 160, 1, 1)
    args, kwargs = device.barcode.call_args
    assert args == ("{B12345", "CODE128")
    assert kwargs["height"] == 160
    assert kwargs["width"] == 4
    assert kwargs["pos"] == "BELOW"
    assert kwargs["align_ct"] is True


def test_qr_code_size_from_width(service, device):
    service.print_qr_code("hello", 300, 300, 1)
    device.qr.assert_called_once_with("hello", size=7, center=True)


def test_bitmap_uses_column_impl(service, device):
    image = object()
    service.print_bitmap(image, 1, 1)
    device.image.assert_called_once_with(image, impl="bitImageColumn", center=True)


def test_status_codes(service, device):
    device.is_online.return_value = True
    device.paper_status.return_value = 2
    assert service.printer_status == STATUS_READY

    device.paper_status.return_value = 0
    assert service.printer_status == STATUS_PAPER_OUT

    device.is_online.return_value = False
    assert service.printer_status == STATUS_OFFLINE


def test_status_unknown_on_write_only_device(service, device):
    device.is_online.side_effect = NotImplementedError
    assert service.printer_status is None


def test_model_and_version(service):
    assert service.get_printer_model() == "Generic TM-T88III"
    assert service.get_printer_version() == (0, "TM-T88III")


def test_io_error_reports_lost_once(service, device, lost):
    device.text.side_effect = OSError("broken pipe")
    for _ in range(2):
        with pytest.raises(RemoteError) as excinfo:
            service.print_text("x", PrintTextFormat())
        assert excinfo.value.code == "DEVICE_LOST"
    lost.assert_called_once_with()


def test_escpos_error_is_remote_error(service, device, lost):
    device.qr.side_effect = EscposError("bad qr")
    with pytest.raises(RemoteError) as excinfo:
        service.print_qr_code("x", 300, 300, 1)
    assert excinfo.value.code == "ESCPOS_ERROR"
    lost.assert_not_called()


def test_connector_binds_and_closes(device):
    connector = EscposConnector(opener=lambda endpoint: device)
    service = connector.bind(ServiceIdentity("pkg", "action", "dummy://"), lambda: None)
    assert isinstance(service, EscposPrinterService)

    connector.unbind()
    device.close.assert_called_once_with()
    connector.unbind()
    device.close.assert_called_once_with()


def test_connector_requires_endpoint():
    with pytest.raises(BindError):
        EscposConnector().bind(NYX_SERVICE, lambda: None)


def test_connector_wraps_open_failures():
    def refuse(endpoint):
        raise OSError("connection refused")

    with pytest.raises(BindError):
        EscposConnector(opener=refuse).bind(ServiceIdentity("pkg", "action", "tcp://10.0.0.1:9100"), lambda: None)


@pytest.mark.parametrize("escpos_status, expected", [(2, PAPER_PRESENT), (1, PAPER_PRESENT), (0, PAPER_OUT)])
def test_paper_status_reads_sensor_without_feeding(service, device, escpos_status, expected):
    device.paper_status.return_value = escpos_status
    assert service.paper_status() == expected
    device._raw.assert_not_called()


def test_paper_status_unknown_on_write_only_device(service, device):
    device.paper_status.side_effect = NotImplementedError
    assert service.paper_status() is None


def test_connector_wraps_missing_usb_backend():
    def no_backend(endpoint):
        raise RuntimeError("Printing with USB connection requires a usb library to be installed.")

    with pytest.raises(BindError):
        EscposConnector(opener=no_backend).bind(ServiceIdentity("pkg", "action", "usb://0x0483:0x5720"), lambda: None)


def test_rebind_closes_previous_device():
    first, second = MagicMock(), MagicMock()
    devices = iter([first, second])
    connector = EscposConnector(opener=lambda endpoint: next(devices))
    identity = ServiceIdentity("pkg", "action", "tcp://10.0.0.1:9100")

    connector.bind(identity, lambda: None)
    connector.bind(identity, lambda: None)
    first.close.assert_called_once_with()
    second.close.assert_not_called()

    connector.unbind()
    second.close.assert_called_once_with()


@pytest.mark.asyncio
async def test_printer_reports_paper_out_from_device(device):
    device.is_online.return_value = True
    device.paper_status.return_value = 0
    settings = PrinterSettings(endpoint="tcp://10.0.0.1:9100", call_timeout=1.0)

    async with NyxPrinter.connect(settings, connector=EscposConnector(opener=lambda endpoint: device)) as printer:
        assert await printer.check_paper() == PAPER_OUT
        assert await printer.is_ready() is False
        diagnostics = await printer.get_diagnostics()

    assert diagnostics["paper"] == PAPER_OUT
    device._raw.assert_not_called()
