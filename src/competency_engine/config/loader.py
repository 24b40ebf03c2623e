"""
competency-engine - runtime config loader

File: src/competency_engine/config/loader.py

Purpose
- Build the effective config from defaults, ``competency.toml``, a profile, and
  ``COMPETENCY_<SECTION>_<FIELD>`` environment variables, later layers winning.

Functional requirements
- An explicit config path must exist; the implicit ``./competency.toml`` may not.
- The profile comes from the argument, else ``COMPETENCY_PROFILE``.
- Relative paths resolve against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from competency_engine.config.schema import (
    SCHEMA,
    FieldSpec,
    apply_profile,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "competency.toml"
ENV_PREFIX: Final[str] = "COMPETENCY_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


class ConfigLoadError(ValueError):
    pass


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    path = Path(config_path if config_path is not None else DEFAULT_CONFIG_FILE).expanduser()

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )
    config = apply_profile(config, profile or environ.get(PROFILE_ENV))
    config = assert_valid_config(merge_config(config, env_overrides(environ)))
    config.pop("profiles", None)
    return _resolve_paths(config, path.resolve().parent)


def env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, Any]]:
    """The ``COMPETENCY_<SECTION>_<FIELD>`` variables present in ``environ``, typed per ``SCHEMA``."""
    overrides: dict[str, dict[str, Any]] = {}
    for section, fields in SCHEMA.items():
        for name, spec in fields.items():
            variable = f"{ENV_PREFIX}{section}_{name}".upper()
            if variable in environ:
                overrides.setdefault(section, {})[name] = _parse_env(variable, environ[variable], spec)
    return overrides


def dump_effective_config(config: Mapping[str, Any]) -> str:
    return json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False)


def _parse_env(variable: str, raw: str, spec: FieldSpec) -> Any:
    text = raw.strip()
    if spec.kind is bool:
        if text.lower() in _TRUE:
            return True
        if text.lower() in _FALSE:
            return False
        raise ConfigLoadError(f"{variable} must be a boolean, got {raw!r}")
    if spec.kind is int:
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{variable} must be an integer, got {raw!r}") from exc
    if spec.kind is float:
        try:
            return float(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{variable} must be a number, got {raw!r}") from exc
    return text


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"{path}: invalid TOML: {exc}") from exc


def _resolve_paths(config: dict[str, Any], base: Path) -> dict[str, Any]:
    for section, fields in SCHEMA.items():
        for name, spec in fields.items():
            value = config[section][name]
            if spec.is_path and value:
                candidate = Path(value).expanduser()
                if not candidate.is_absolute():
                    candidate = (base / candidate).resolve()
                config[section][name] = candidate.as_posix()
    return config


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "ConfigLoadError",
    "dump_effective_config",
    "env_overrides",
    "load_config",
]
