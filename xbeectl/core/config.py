"""Device profile loading and validation for YAML-based xbeectl profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from xbeectl.core.constants import OperatingMode, XBeeProtocol
from xbeectl.core.device import DeviceSettings
from xbeectl.core.errors import ConfigLoadError, ConfigValidationError

LOGGER = logging.getLogger(__name__)

_OPERATING_MODES = {
    "auto": None,
    "api": OperatingMode.API_MODE,
    "escaped_api": OperatingMode.ESCAPED_API_MODE,
}


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys and keeps yes/no as text."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in mappings if tag != "tag:yaml.org,2002:bool"]
    for first_char, mappings in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class DeviceProfile:
    name: str
    port: str
    baudrate: int = 9600
    bytesize: int = 8
    parity: str = "N"
    stopbits: float = 1
    rtscts: bool = False
    xonxoff: bool = False
    read_timeout_s: float = 0.1
    operating_mode: OperatingMode | None = None
    protocol: XBeeProtocol = XBeeProtocol.UNKNOWN
    sync_ops_timeout_s: float = 4.0
    queue_capacity: int = 40
    apply_changes: bool = True
    read_info_on_open: bool = False

    def to_settings(self) -> DeviceSettings:
        return DeviceSettings(
            operating_mode=self.operating_mode,
            protocol=self.protocol,
            sync_ops_timeout=self.sync_ops_timeout_s,
            queue_capacity=self.queue_capacity,
            read_timeout=self.read_timeout_s,
            apply_changes=self.apply_changes,
            read_info_on_open=self.read_info_on_open,
        )


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, DeviceProfile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("xbeectl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "xbeectl/profiles", xdg_data / "xbeectl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _flag(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false, got {value!r}")


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> DeviceProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = DeviceProfile(name=doc["name"], port=doc["port"])
    return DeviceProfile(
        name=doc["name"],
        port=doc["port"],
        baudrate=int(doc.get("baudrate", defaults.baudrate)),
        bytesize=int(doc.get("bytesize", defaults.bytesize)),
        parity=doc.get("parity", defaults.parity),
        stopbits=doc.get("stopbits", defaults.stopbits),
        rtscts=_flag(doc.get("rtscts", defaults.rtscts), context=f"{doc['name']}.rtscts"),
        xonxoff=_flag(doc.get("xonxoff", defaults.xonxoff), context=f"{doc['name']}.xonxoff"),
        read_timeout_s=float(doc.get("read_timeout_s", defaults.read_timeout_s)),
        operating_mode=_OPERATING_MODES[doc.get("operating_mode", "auto")],
        protocol=XBeeProtocol[doc.get("protocol", "unknown").upper()],
        sync_ops_timeout_s=float(doc.get("sync_ops_timeout_s", defaults.sync_ops_timeout_s)),
        queue_capacity=int(doc.get("queue_capacity", defaults.queue_capacity)),
        apply_changes=_flag(
            doc.get("apply_changes", defaults.apply_changes),
            context=f"{doc['name']}.apply_changes",
        ),
        read_info_on_open=_flag(
            doc.get("read_info_on_open", defaults.read_info_on_open),
            context=f"{doc['name']}.read_info_on_open",
        ),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("xbeectl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, DeviceProfile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        profile = _build_profile(_read_yaml(path), path)
        profiles[profile.name] = profile

    for path in _iter_user_profile_paths():
        profile = _build_profile(_read_yaml(path), path)
        if profile.name in profiles:
            warning = f"User profile '{profile.name}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.name] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))


def get_profile(name: str) -> DeviceProfile:
    loaded = load_profiles()
    try:
        return loaded.profiles[name]
    except KeyError as exc:
        known = ", ".join(sorted(loaded.profiles)) or "none"
        raise ConfigLoadError(f"Unknown device profile '{name}'. Available: {known}") from exc
