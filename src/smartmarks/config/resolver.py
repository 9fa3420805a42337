"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import SmartmarksConfig

ENV_PREFIX = "SMARTMARKS__"


def resolve_with_precedence(
    *,
    defaults: SmartmarksConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> SmartmarksConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Override keys may be nested mappings or dotted paths such as
    ``store.backend``.

    Raises:
        ConfigError: If a source is malformed or the merged values are invalid.
    """
    merged = defaults.model_dump(mode="python")
    sources = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    for name, source in sources:
        if source is not None:
            merged = merge_overrides(merged, expand_dotted(source, source_name=name))

    try:
        return SmartmarksConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def env_overrides_from(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``SMARTMARKS__SECTION__KEY`` variables into nested overrides.

    Values are parsed as YAML scalars so ``"true"`` and ``"5"`` keep their types.
    """
    overrides: dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
        if not segments:
            continue
        try:
            value: Any = yaml.safe_load(raw_value)
        except yaml.YAMLError:
            value = raw_value
        assign_path(overrides, segments, value, source_name="environment")
    return overrides


def flatten_for_env(config: SmartmarksConfig) -> Dict[str, str]:
    """Render the config as ``SMARTMARKS__SECTION__KEY`` environment variables."""
    flat: Dict[str, str] = {}

    def _walk(path: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _walk(path + [str(key)], child)
            return
        if isinstance(value, list):
            rendered = yaml.safe_dump(value, default_flow_style=True).strip()
        else:
            rendered = "null" if value is None else str(value)
        flat[ENV_PREFIX + "__".join(part.upper() for part in path)] = rendered

    _walk([], config.model_dump(mode="json"))
    return flat


def expand_dotted(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    """Return ``source`` with dotted keys expanded into nested mappings."""
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    result: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, source_name=source_name)
        assign_path(result, key.split("."), value, source_name=source_name)
    return result


def assign_path(target: dict[str, Any], path: list[str], value: Any, *, source_name: str) -> None:
    """Assign ``value`` at ``path`` inside ``target``, creating mappings as needed.

    Raises:
        ConfigError: If an intermediate segment holds a non-mapping value.
    """
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(path)} conflicts with "
                f"existing value at '{segment}'."
            )
        node = child
    leaf = path[-1]
    if isinstance(value, MappingABC) and isinstance(node.get(leaf), MappingABC):
        node[leaf] = merge_overrides(node[leaf], value)
    else:
        node[leaf] = value


def merge_overrides(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overrides`` into a copy of ``base``."""
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = merge_overrides(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = [
    "ENV_PREFIX",
    "assign_path",
    "env_overrides_from",
    "expand_dotted",
    "flatten_for_env",
    "merge_overrides",
    "resolve_with_precedence",
]
