"""
competency-engine - config schema

File: src/competency_engine/config/schema.py

Purpose
- Describe every config section and field once, in ``SCHEMA``, and derive the
  defaults, validation, and environment bindings from that table.

What should be included in this file
- ``SCHEMA`` (section -> field -> ``FieldSpec``) and ``BUILTIN_PROFILES``.
- ``default_config``, ``merge_config``, ``apply_profile``.
- ``check_config`` / ``assert_valid_config``: collect every issue in one pass,
  each with a dotted path, and return a normalized copy.

Functional requirements
- Unknown fields and sections are errors, so typos never pass silently.
- Integers are accepted where a number is expected and come back as floats.
- Profiles are partial overlays; only the fields they set are checked.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from competency_engine.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_APP_URL,
    DEFAULT_AUTOSAVE_PERIOD_SECONDS,
)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    kind: type
    default: Any
    choices: tuple[str, ...] = ()
    positive: bool = False
    non_empty: bool = False
    is_path: bool = False
    is_url: bool = False


SCHEMA: Final[dict[str, dict[str, FieldSpec]]] = {
    "meta": {"schema_version": FieldSpec(int, CONFIG_SCHEMA_VERSION)},
    "storage": {
        "backend": FieldSpec(str, "json", choices=("json", "memory")),
        "path": FieldSpec(str, ".competency/store.json", non_empty=True, is_path=True),
    },
    # An empty catalog path means the catalog bundled with the package.
    "catalog": {"path": FieldSpec(str, "", is_path=True)},
    "autosave": {
        "enabled": FieldSpec(bool, True),
        "period_seconds": FieldSpec(float, DEFAULT_AUTOSAVE_PERIOD_SECONDS, positive=True),
    },
    "notifications": {
        "enabled": FieldSpec(bool, True),
        "app_url": FieldSpec(str, DEFAULT_APP_URL, is_url=True),
        "dispatch_timeout_seconds": FieldSpec(float, 30.0, positive=True),
    },
    "observability": {
        "log_level": FieldSpec(str, "INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_format": FieldSpec(str, "json", choices=("json", "text")),
        "log_dir": FieldSpec(str, ".competency/logs", is_path=True),
        "redact_secrets": FieldSpec(bool, True),
    },
}

BUILTIN_PROFILES: Final[dict[str, dict[str, dict[str, Any]]]] = {
    "development": {"observability": {"log_level": "DEBUG", "log_format": "text"}},
    "testing": {
        "storage": {"backend": "memory"},
        "autosave": {"enabled": False},
        "notifications": {"enabled": False},
    },
}

_PROFILE_NAME: Final[re.Pattern[str]] = re.compile(r"[a-z][a-z0-9_-]*")


@dataclass(frozen=True, slots=True)
class ConfigIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    def __init__(self, issues: list[ConfigIssue] | tuple[ConfigIssue, ...]) -> None:
        self.issues = tuple(issues)
        lines = "\n".join(f"- {issue.path}: {issue.message}" for issue in self.issues)
        super().__init__(f"invalid config:\n{lines}")


def default_config() -> dict[str, Any]:
    config: dict[str, Any] = {
        section: {name: spec.default for name, spec in fields.items()}
        for section, fields in SCHEMA.items()
    }
    config["profiles"] = copy.deepcopy(BUILTIN_PROFILES)
    return config


def merge_config(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Deep merge; mappings merge key by key, anything else replaces. Inputs are not modified."""
    merged = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile(config: Mapping[str, Any], name: str | None) -> dict[str, Any]:
    name = (name or "").strip()
    if not name:
        return dict(config)
    profiles = config.get("profiles") or {}
    if name not in profiles:
        raise ConfigValidationError([ConfigIssue("profile", f"profile {name!r} is not defined")])
    return merge_config(config, profiles[name])


def check_config(config: object) -> tuple[dict[str, Any], tuple[ConfigIssue, ...]]:
    """Normalized copy of ``config`` plus every issue found; the copy is only usable when there are none."""
    if not isinstance(config, Mapping):
        return {}, (ConfigIssue("<root>", f"expected object, got {type(config).__name__}"),)
    issues: list[ConfigIssue] = []
    normalized: dict[str, Any] = {}
    for section in config:
        if section not in SCHEMA and section != "profiles":
            issues.append(ConfigIssue(section, "unknown field"))
    for section in SCHEMA:
        if section not in config:
            issues.append(ConfigIssue(section, "missing required field"))
            continue
        normalized[section] = _check_section(section, config[section], section, issues, partial=False)
    if "profiles" in config:
        normalized["profiles"] = _check_profiles(config["profiles"], issues)
    return normalized, tuple(issues)


def assert_valid_config(config: object) -> dict[str, Any]:
    normalized, issues = check_config(config)
    if issues:
        raise ConfigValidationError(issues)
    return normalized


def _check_profiles(profiles: object, issues: list[ConfigIssue]) -> dict[str, Any]:
    if not isinstance(profiles, Mapping):
        issues.append(ConfigIssue("profiles", f"expected object, got {type(profiles).__name__}"))
        return {}
    checked: dict[str, Any] = {}
    for name, overlay in profiles.items():
        path = f"profiles.{name}"
        if not isinstance(name, str) or not _PROFILE_NAME.fullmatch(name):
            issues.append(ConfigIssue(path, f"profile name must match ^{_PROFILE_NAME.pattern}$"))
            continue
        if not isinstance(overlay, Mapping):
            issues.append(ConfigIssue(path, f"expected object, got {type(overlay).__name__}"))
            continue
        checked[name] = {}
        for section, payload in overlay.items():
            if section not in SCHEMA:
                issues.append(ConfigIssue(f"{path}.{section}", "unknown field"))
                continue
            checked[name][section] = _check_section(
                section, payload, f"{path}.{section}", issues, partial=True
            )
    return checked


def _check_section(
    section: str, payload: object, path: str, issues: list[ConfigIssue], *, partial: bool
) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        issues.append(ConfigIssue(path, f"expected object, got {type(payload).__name__}"))
        return {}
    fields = SCHEMA[section]
    for name in payload:
        if name not in fields:
            issues.append(ConfigIssue(f"{path}.{name}", "unknown field"))
    checked: dict[str, Any] = {}
    for name, spec in fields.items():
        if name not in payload:
            if not partial:
                issues.append(ConfigIssue(f"{path}.{name}", "missing required field"))
            continue
        value, problem = _check_value(spec, payload[name])
        if problem is not None:
            issues.append(ConfigIssue(f"{path}.{name}", problem))
        checked[name] = value
    if section == "meta" and checked.get("schema_version", CONFIG_SCHEMA_VERSION) != CONFIG_SCHEMA_VERSION:
        issues.append(
            ConfigIssue(
                f"{path}.schema_version",
                f"unsupported schema version {checked['schema_version']}; "
                f"this package reads version {CONFIG_SCHEMA_VERSION}",
            )
        )
    return checked


def _check_value(spec: FieldSpec, value: Any) -> tuple[Any, str | None]:
    if spec.kind is bool:
        if not isinstance(value, bool):
            return value, f"expected boolean, got {type(value).__name__}"
        return value, None
    if spec.kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            return value, f"expected integer, got {type(value).__name__}"
        return value, None
    if spec.kind is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return value, f"expected number, got {type(value).__name__}"
        if not math.isfinite(value):
            return value, "must be finite"
        if spec.positive and value <= 0:
            return value, "must be > 0"
        return float(value), None
    if not isinstance(value, str):
        return value, f"expected string, got {type(value).__name__}"
    text = value.strip()
    if spec.choices and text not in spec.choices:
        return value, f"invalid value {value!r}; expected one of {', '.join(spec.choices)}"
    if spec.non_empty and not text:
        return value, "must not be empty"
    if spec.is_url:
        if not text.startswith(("http://", "https://")):
            return value, "must start with http:// or https://"
        text = text.rstrip("/")
    return text, None


__all__ = [
    "BUILTIN_PROFILES",
    "SCHEMA",
    "ConfigIssue",
    "ConfigValidationError",
    "FieldSpec",
    "apply_profile",
    "assert_valid_config",
    "check_config",
    "default_config",
    "merge_config",
]
