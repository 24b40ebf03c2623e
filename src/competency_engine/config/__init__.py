"""Config loading (``competency.toml``, profiles, ``COMPETENCY_*`` env) and its schema."""

from competency_engine.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    PROFILE_ENV,
    ConfigLoadError,
    dump_effective_config,
    env_overrides,
    load_config,
)
from competency_engine.config.schema import (
    BUILTIN_PROFILES,
    SCHEMA,
    ConfigIssue,
    ConfigValidationError,
    FieldSpec,
    apply_profile,
    assert_valid_config,
    check_config,
    default_config,
    merge_config,
)

__all__ = [
    "BUILTIN_PROFILES",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "SCHEMA",
    "ConfigIssue",
    "ConfigLoadError",
    "ConfigValidationError",
    "FieldSpec",
    "apply_profile",
    "assert_valid_config",
    "check_config",
    "default_config",
    "dump_effective_config",
    "env_overrides",
    "load_config",
    "merge_config",
]
