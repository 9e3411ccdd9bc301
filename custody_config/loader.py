"""
Configuration Loader (``custody_config.loader``).

Responsibility
--------------
Reads the package ``defaults.yaml``, overlays an optional user file and
environment overrides, and parses the result into the frozen dataclasses
of ``custody_config.schema``.

Invariants enforced
-------------------
* Unknown sections and unknown keys raise ``ValueError``; a typo in a
  config file never silently falls back to a default.
* Values are type-checked against the schema field types (bool, int,
  float, str).  Integers are accepted where a float is expected.
* ``compute_checksum`` is deterministic: the same effective values always
  produce the same checksum.

Failure modes
-------------
* Missing user file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or wrong type  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import os
from pathlib import Path
from typing import Any

import yaml

from custody_config.schema import SECTIONS, CustodyConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_PATH = "CUSTODY_CONFIG_PATH"
ENV_DATABASE_URL = "CUSTODY_DATABASE_URL"

_TYPES: dict[str, tuple[type, ...]] = {
    "bool": (bool,),
    "int": (int,),
    "float": (int, float),
    "str": (str,),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge_sections(
    base: dict[str, dict[str, Any]],
    overlay: dict[str, Any],
    source: str,
) -> dict[str, dict[str, Any]]:
    """Overlay ``overlay`` on ``base`` one key at a time, rejecting unknowns."""
    merged = {name: dict(values) for name, values in base.items()}
    for section, values in overlay.items():
        if section not in SECTIONS:
            raise ValueError(
                f"{source}: unknown section '{section}' "
                f"(expected one of {sorted(SECTIONS)})"
            )
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"{source}: section '{section}' must be a mapping")
        known = {f.name for f in dataclasses.fields(SECTIONS[section])}
        for key, value in values.items():
            if key not in known:
                raise ValueError(f"{source}: unknown key '{section}.{key}'")
            merged.setdefault(section, {})[key] = value
    return merged


def _coerce(section: str, values: dict[str, Any]) -> dict[str, Any]:
    """Type-check one section against its dataclass; widen ints to float."""
    coerced = dict(values)
    for f in dataclasses.fields(SECTIONS[section]):
        if f.name not in values:
            continue
        value = values[f.name]
        # Field types are strings under ``from __future__ import annotations``
        allowed = _TYPES[str(f.type)]
        # bool is a subclass of int; never accept it for a numeric field
        if isinstance(value, bool) and bool not in allowed:
            raise ValueError(f"{section}.{f.name}: expected {f.type}, got bool")
        if not isinstance(value, allowed):
            raise ValueError(
                f"{section}.{f.name}: expected {f.type}, got {type(value).__name__}"
            )
        if f.type == "float":
            coerced[f.name] = float(value)
    return coerced


def parse_config(
    sections: dict[str, dict[str, Any]],
    source_path: str | None = None,
) -> CustodyConfig:
    """Build a ``CustodyConfig`` from merged section dicts."""
    parsed: dict[str, Any] = {}
    for name, cls in SECTIONS.items():
        parsed[name] = cls(**_coerce(name, sections.get(name, {})))
    return CustodyConfig(
        **parsed,
        source_path=source_path,
        checksum=compute_checksum(sections),
    )


def load_config(path: str | Path | None = None) -> CustodyConfig:
    """
    Load the effective configuration.

    Resolution order (later wins):
        1. ``custody_config/defaults.yaml``
        2. ``path``, or the file named by ``CUSTODY_CONFIG_PATH``
        3. ``CUSTODY_DATABASE_URL`` for ``database.url``
    """
    sections = merge_sections({}, load_yaml_file(DEFAULTS_PATH), str(DEFAULTS_PATH))

    user_path = path if path is not None else os.environ.get(ENV_CONFIG_PATH)
    if user_path:
        user_path = Path(user_path)
        sections = merge_sections(sections, load_yaml_file(user_path), str(user_path))

    db_url = os.environ.get(ENV_DATABASE_URL)
    if db_url:
        sections = merge_sections(sections, {"database": {"url": db_url}}, ENV_DATABASE_URL)

    return parse_config(sections, str(user_path) if user_path else None)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
