"""
Stack configuration loaded from pulumi.Config().

Provides a typed, immutable view of stack settings. All settings are read from
Pulumi config (e.g. Pulumi.<stack>.yaml or pulumi config set). Naming keys
(project_name, environment) and the zone/container keys without a default in
ComposerConfig are required; every other key falls back to the ComposerConfig
default. Used by __main__.main() to name resources and to drive the
composition pass.
"""

import logging
from dataclasses import MISSING, dataclass, fields
from typing import Any, Callable

import pulumi

from composer import ComposerConfig, ConfigurationError

_DEFAULTS: dict[str, Any] = {
    f.name: f.default for f in fields(ComposerConfig) if f.default is not MISSING
}


def _read_str(config: pulumi.Config, key: str) -> str:
    if key not in _DEFAULTS:
        return config.require(key)
    value = config.get(key)
    return _DEFAULTS[key] if value is None else value


def _read_int(config: pulumi.Config, key: str) -> int:
    if key not in _DEFAULTS:
        return config.require_int(key)
    value = config.get_int(key)
    return _DEFAULTS[key] if value is None else value


def _read_float(config: pulumi.Config, key: str) -> float:
    value = config.get_float(key)
    return _DEFAULTS[key] if value is None else value


def _read_tuple(config: pulumi.Config, key: str) -> tuple[str, ...]:
    value = config.get_object(key)
    if value is None:
        return _DEFAULTS[key]
    if not isinstance(value, list):
        raise ConfigurationError(f"{key} must be a list, got {value!r}", "config")
    return tuple(str(item) for item in value)


# (key, parser); parser receives (config, key) and returns value.
_CONFIG_SPEC: list[tuple[str, Callable[[pulumi.Config, str], Any]]] = [
    ("zone_id", _read_str),
    ("zone_name", _read_str),
    ("container_image", _read_str),
    ("health_check_path", _read_str),
    ("container_port", _read_int),
    ("listener_port", _read_int),
    ("instance_class", _read_str),
    ("reader_count", _read_int),
    ("engine_version", _read_str),
    ("database_name", _read_str),
    ("cache_node_count", _read_int),
    ("cache_node_type", _read_str),
    ("cache_engine_version", _read_str),
    ("min_tasks", _read_int),
    ("max_tasks", _read_int),
    ("desired_tasks", _read_int),
    ("cpu_target", _read_float),
    ("requests_per_target", _read_int),
    ("task_cpu", _read_int),
    ("task_memory", _read_int),
    ("vpc_cidr", _read_str),
    ("zone_count", _read_int),
    ("nat_gateways", _read_int),
    ("public_mask", _read_int),
    ("private_mask", _read_int),
    ("alias_subdomains", _read_tuple),
    ("waf_rule_groups", _read_tuple),
]


@dataclass(frozen=True)
class StackConfig:
    """
    Stack configuration from Pulumi config.

    Attributes:
        project_name: Project name used in resource naming (required).
        environment: Environment label used in resource naming (required).
        log_level: Level for the composer's log output (default INFO).
        composer: Validated settings for the composition pass.
    """

    project_name: str
    environment: str
    log_level: int
    composer: ComposerConfig

    @classmethod
    def from_pulumi_config(cls, config: pulumi.Config) -> "StackConfig":
        """
        Build StackConfig from pulumi.Config(). Missing or mistyped keys raise
        ConfigurationError, as does any value ComposerConfig rejects.
        """
        try:
            kwargs = {key: parser(config, key) for key, parser in _CONFIG_SPEC}
            project_name = config.require("project_name")
            environment = config.require("environment")
            level_name = (config.get("log_level") or "INFO").upper()
        except (pulumi.ConfigMissingError, pulumi.ConfigTypeError) as err:
            raise ConfigurationError(str(err), "config") from err

        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            raise ConfigurationError(f"unknown log_level {level_name!r}", "config")

        return cls(
            project_name=project_name,
            environment=environment,
            log_level=log_level,
            composer=ComposerConfig(**kwargs),
        )
