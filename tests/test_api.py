from __future__ import annotations

from pathlib import Path

import pytest

from tests.conftest import ATResponder, FakeTransport
from xbeectl import api
from xbeectl.api import OperatingMode, XBee64BitAddress, open_device

INFO = {
    "AP": b"\x01",
    "SH": b"\x00\x13\xa2\x00",
    "SL": b"\x40\xa1\xb2\xc3",
    "NI": b"COORD",
    "HV": b"\x1e\x42",
    "VR": b"\x10\x0b",
}


@pytest.fixture(autouse=True)
def _isolated_profiles(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def test_open_device_with_default_profile() -> None:
    transport = FakeTransport(responder=ATResponder(INFO))

    device = open_device(transport=transport)
    try:
        assert device.is_open
        assert device.operating_mode is OperatingMode.API_MODE
        assert device.x64bit_addr == XBee64BitAddress.from_hex("0013A20040A1B2C3")
        assert device.node_id == "COORD"
    finally:
        device.close()
    assert not transport.is_open()


def test_open_device_builds_serial_transport_from_profile(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    profile = tmp_path / "cfg" / "xbeectl" / "profiles" / "bench.yaml"
    profile.parent.mkdir(parents=True)
    profile.write_text(
        "name: bench\nport: /dev/ttyUSB3\nbaudrate: 115200\noperating_mode: api\n",
        encoding="utf-8",
    )
    created: list[tuple[str, dict[str, object]]] = []

    def fake_serial_transport(port: str, **kwargs: object) -> FakeTransport:
        created.append((port, kwargs))
        return FakeTransport(name=port, responder=ATResponder())

    monkeypatch.setattr(api, "SerialTransport", fake_serial_transport)

    device = open_device("bench", port="/dev/ttyACM0")
    try:
        assert device.operating_mode is OperatingMode.API_MODE
    finally:
        device.close()

    assert created[0][0] == "/dev/ttyACM0"
    assert created[0][1]["baudrate"] == 115200


def test_public_api_exports_are_importable() -> None:
    for name in api.__all__:
        assert hasattr(api, name), name
