from __future__ import annotations

import logging
from pathlib import Path

import pytest

from xbeectl.core.config import _flag, get_profile, load_profiles
from xbeectl.core.constants import OperatingMode, XBeeProtocol
from xbeectl.core.errors import ConfigLoadError, ConfigValidationError


def _write_profile(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


def test_load_packaged_default_profile(xdg: Path) -> None:
    loaded = load_profiles()

    profile = loaded.profiles["default"]
    assert profile.port == "/dev/ttyUSB0"
    assert profile.baudrate == 9600
    assert profile.operating_mode is None
    assert profile.protocol is XBeeProtocol.UNKNOWN
    assert profile.read_info_on_open
    assert loaded.warnings == ()


def test_user_profile_overrides_packaged(xdg: Path, caplog: pytest.LogCaptureFixture) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "default.yaml",
        """
name: default
port: /dev/ttyACM3
baudrate: 115200
operating_mode: escaped_api
protocol: digi_mesh
""",
    )

    with caplog.at_level(logging.WARNING):
        loaded = load_profiles()

    profile = loaded.profiles["default"]
    assert profile.port == "/dev/ttyACM3"
    assert profile.baudrate == 115200
    assert profile.operating_mode is OperatingMode.ESCAPED_API_MODE
    assert profile.protocol is XBeeProtocol.DIGI_MESH
    assert len(loaded.warnings) == 1
    assert "overrides packaged profile" in caplog.text


def test_profiles_from_data_dir_are_loaded(xdg: Path) -> None:
    _write_profile(
        xdg / "data" / "xbeectl" / "profiles" / "bench.yml",
        """
name: bench
port: COM4
sync_ops_timeout_s: 2.5
queue_capacity: 8
""",
    )

    profile = get_profile("bench")

    assert profile.port == "COM4"
    assert profile.sync_ops_timeout_s == 2.5
    assert profile.queue_capacity == 8


def test_flags_accept_plain_and_quoted_booleans(xdg: Path) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "flags.yaml",
        """
name: flags
port: /dev/ttyUSB1
rtscts: true
xonxoff: "false"
apply_changes: false
read_info_on_open: "true"
""",
    )

    profile = get_profile("flags")

    assert profile.rtscts is True
    assert profile.xonxoff is False
    assert profile.apply_changes is False
    assert profile.read_info_on_open is True


def test_yes_no_are_not_booleans(xdg: Path) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "yes.yaml",
        """
name: yes-flags
port: /dev/ttyUSB1
rtscts: yes
""",
    )

    with pytest.raises(ConfigValidationError, match="rtscts"):
        load_profiles()


def test_duplicate_keys_rejected(xdg: Path) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "dup.yaml",
        """
name: dup
port: /dev/ttyUSB1
port: /dev/ttyUSB2
""",
    )

    with pytest.raises(ConfigValidationError, match="Duplicate key 'port'"):
        load_profiles()


def test_invalid_operating_mode_rejected(xdg: Path) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "at.yaml",
        """
name: at-mode
port: /dev/ttyUSB1
operating_mode: at
""",
    )

    with pytest.raises(ConfigValidationError, match="operating_mode"):
        load_profiles()


def test_missing_port_rejected(xdg: Path) -> None:
    _write_profile(xdg / "cfg" / "xbeectl" / "profiles" / "noport.yaml", "name: noport\n")

    with pytest.raises(ConfigValidationError):
        load_profiles()


def test_non_mapping_document_rejected(xdg: Path) -> None:
    _write_profile(xdg / "cfg" / "xbeectl" / "profiles" / "list.yaml", "- name: x\n")

    with pytest.raises(ConfigValidationError, match="mapping"):
        load_profiles()


def test_unknown_profile(xdg: Path) -> None:
    with pytest.raises(ConfigLoadError, match="Available: default"):
        get_profile("missing")


def test_profile_to_settings(xdg: Path) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "mesh.yaml",
        """
name: mesh
port: /dev/ttyUSB1
operating_mode: api
protocol: digi_mesh
sync_ops_timeout_s: 1.5
queue_capacity: 16
read_timeout_s: 0.05
apply_changes: "false"
""",
    )

    settings = get_profile("mesh").to_settings()

    assert settings.operating_mode is OperatingMode.API_MODE
    assert settings.protocol is XBeeProtocol.DIGI_MESH
    assert settings.sync_ops_timeout == 1.5
    assert settings.queue_capacity == 16
    assert settings.read_timeout == 0.05
    assert settings.apply_changes is False
    assert settings.read_info_on_open is False


@pytest.mark.parametrize("value", ["maybe", "1", 1, None, "on"])
def test_flag_rejects_anything_but_true_false(value: object) -> None:
    with pytest.raises(ConfigValidationError, match="bench.rtscts must be boolean"):
        _flag(value, context="bench.rtscts")


def test_flag_normalizes_case_and_whitespace() -> None:
    assert _flag(" False ", context="bench.xonxoff") is False
    assert _flag("TRUE", context="bench.xonxoff") is True
    assert _flag(False, context="bench.xonxoff") is False


def test_quoted_non_boolean_flag_rejected(xdg: Path) -> None:
    _write_profile(
        xdg / "cfg" / "xbeectl" / "profiles" / "typo.yaml",
        """
name: typo
port: /dev/ttyUSB1
apply_changes: "flase"
""",
    )

    with pytest.raises(ConfigValidationError, match="apply_changes"):
        load_profiles()
