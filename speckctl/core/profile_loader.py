"""Loading and validation of YAML device profiles."""

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

from speckctl.core.errors import ProfileLoadError, ProfileValidationError
from speckctl.core.model import DeviceProfile, UsbId

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, DeviceProfile]
    warnings: tuple[str, ...]

    def usb_ids(self) -> tuple[UsbId, ...]:
        ids: list[UsbId] = []
        for profile in self.profiles.values():
            ids.extend(usb_id for usb_id in profile.usb_ids if usb_id not in ids)
        return tuple(ids)


def _load_schema_validator() -> Any:
    schema_text = resources.files("speckctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "speckctl/profiles", xdg_data / "speckctl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _parse_usb_id(value: Any, *, context: str) -> int:
    if isinstance(value, bool):
        raise ProfileValidationError(f"{context} must be a 16-bit USB ID")
    if isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip(), 16)
        except ValueError:
            raise ProfileValidationError(f"{context} must be a hex string like '0x2354'") from None
    if not 0 <= parsed <= 0xFFFF:
        raise ProfileValidationError(f"{context} must be a 16-bit USB ID")
    return parsed


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> DeviceProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    usb_ids: list[UsbId] = []
    for index, entry in enumerate(doc["usb_ids"]):
        usb_id = UsbId(
            vendor_id=_parse_usb_id(entry["vendor_id"], context=f"{doc['id']}.usb_ids.{index}.vendor_id"),
            product_id=_parse_usb_id(entry["product_id"], context=f"{doc['id']}.usb_ids.{index}.product_id"),
        )
        if usb_id in usb_ids:
            raise ProfileValidationError(
                f"Duplicate USB ID {usb_id.vendor_id:04x}:{usb_id.product_id:04x} in {source}"
            )
        usb_ids.append(usb_id)

    return DeviceProfile(
        id=doc["id"],
        name=doc["name"],
        variant=doc["variant"],
        usb_ids=tuple(usb_ids),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("speckctl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, DeviceProfile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    claimed: dict[UsbId, str] = {}
    for profile in profiles.values():
        for usb_id in profile.usb_ids:
            owner = claimed.setdefault(usb_id, profile.id)
            if owner != profile.id:
                warning = (
                    f"USB ID {usb_id.vendor_id:04x}:{usb_id.product_id:04x} is claimed by both "
                    f"'{owner}' and '{profile.id}'; using '{owner}'"
                )
                LOGGER.warning(warning)
                warnings.append(warning)

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
