"""
competency-engine - unit tests for config schema validation

File: tests/unit/config/test_config_validation.py

Purpose
- Validate strict schema checks and profile overlays.

What this test file should cover
- Defaults are valid and independent copies.
- Every issue is collected in one pass with a dotted field path.
- Profiles are partial overlays, checked field by field.
"""

from __future__ import annotations

import pytest

from competency_engine.config import (
    BUILTIN_PROFILES,
    ConfigValidationError,
    apply_profile,
    assert_valid_config,
    check_config,
    default_config,
    merge_config,
)
from competency_engine.constants import CONFIG_SCHEMA_VERSION

pytestmark = pytest.mark.unit


def _issues(config: object) -> dict[str, str]:
    _, issues = check_config(config)
    assert issues
    return {issue.path: issue.message for issue in issues}


def test_defaults_are_valid_and_copied() -> None:
    first = default_config()
    first["storage"]["backend"] = "memory"

    second = default_config()

    assert second["storage"]["backend"] == "json"
    assert check_config(second)[1] == ()
    assert tuple(second["profiles"]) == tuple(BUILTIN_PROFILES)


def test_all_issues_are_collected() -> None:
    config = merge_config(
        default_config(),
        {
            "storage": {"backend": "sqlite", "path": "  "},
            "autosave": {"enabled": "yes", "period_seconds": -1},
            "notifications": {"app_url": "ftp://portfolio", "dispatch_timeout_seconds": float("nan")},
            "observability": {"log_level": "TRACE"},
        },
    )

    issues = _issues(config)

    assert issues["storage.backend"].startswith("invalid value 'sqlite'")
    assert issues["storage.path"] == "must not be empty"
    assert issues["autosave.enabled"] == "expected boolean, got str"
    assert issues["autosave.period_seconds"] == "must be > 0"
    assert issues["notifications.app_url"] == "must start with http:// or https://"
    assert issues["notifications.dispatch_timeout_seconds"] == "must be finite"
    assert "expected one of" in issues["observability.log_level"]


def test_missing_and_unknown_fields() -> None:
    config = default_config()
    del config["catalog"]
    del config["storage"]["path"]
    config["autosave"]["interval"] = 3
    config["smtp"] = {}

    issues = _issues(config)

    assert issues["catalog"] == "missing required field"
    assert issues["storage.path"] == "missing required field"
    assert issues["autosave.interval"] == "unknown field"
    assert issues["smtp"] == "unknown field"


def test_numbers_are_normalized_to_floats() -> None:
    config = merge_config(default_config(), {"autosave": {"period_seconds": 5}})

    normalized = assert_valid_config(config)

    assert normalized["autosave"]["period_seconds"] == 5.0
    assert isinstance(normalized["autosave"]["period_seconds"], float)


def test_app_url_is_trimmed() -> None:
    config = merge_config(default_config(), {"notifications": {"app_url": " https://x.example/ "}})

    assert assert_valid_config(config)["notifications"]["app_url"] == "https://x.example"


def test_schema_version_mismatch() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": CONFIG_SCHEMA_VERSION + 1}})

    issues = _issues(config)

    assert issues["meta.schema_version"].startswith(
        f"unsupported schema version {CONFIG_SCHEMA_VERSION + 1}"
    )


def test_root_must_be_an_object() -> None:
    assert _issues(["not", "a", "mapping"]) == {"<root>": "expected object, got list"}


def test_profile_overlays_are_partial_but_checked() -> None:
    config = merge_config(
        default_config(),
        {
            "profiles": {
                "ward": {"autosave": {"period_seconds": 30}},
                "Night": {"autosave": {"enabled": False}},
                "broken": {"storage": {"backend": "cloud"}},
            }
        },
    )

    issues = _issues(config)

    assert issues["profiles.Night"] == "profile name must match ^[a-z][a-z0-9_-]*$"
    assert issues["profiles.broken.storage.backend"].startswith("invalid value 'cloud'")
    assert not any(path.startswith("profiles.ward") for path in issues)


def test_apply_profile() -> None:
    config = assert_valid_config(default_config())

    testing = apply_profile(config, "testing")

    assert testing["storage"]["backend"] == "memory"
    assert testing["storage"]["path"] == config["storage"]["path"]
    assert apply_profile(config, "  ") == config
    assert apply_profile(config, None) == config
    with pytest.raises(ConfigValidationError, match="not defined"):
        apply_profile(config, "nightly")


def test_validation_error_renders_every_issue() -> None:
    config = merge_config(default_config(), {"storage": {"backend": "x"}, "autosave": {"enabled": 1}})

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    rendered = str(excinfo.value)
    assert rendered.startswith("invalid config:")
    assert "- storage.backend:" in rendered
    assert "- autosave.enabled:" in rendered
    assert isinstance(excinfo.value, ValueError)


def test_merge_does_not_mutate_inputs() -> None:
    base = {"autosave": {"enabled": True, "period_seconds": 15.0}}
    overlay = {"autosave": {"period_seconds": 5.0}}

    merged = merge_config(base, overlay)

    assert merged == {"autosave": {"enabled": True, "period_seconds": 5.0}}
    assert base["autosave"]["period_seconds"] == 15.0
