"""Config Loader - loads data source settings and queries from YAML or JSON.

String values may reference environment variables as ${ENV_VAR}, which keeps
secrets out of the files. Secure query field tokens (${__qs.name}) are left
untouched for the URL builder.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from infinity_client.models import Query, Settings


class ConfigError(Exception):
    """Raised when configuration loading fails."""


# ${__qs.*} belongs to the URL builder, not to the environment
_ENV_VAR_PATTERN = re.compile(r"\$\{(?!__qs\.)([^}]+)\}")


def load_settings(settings_path: Path) -> Settings:
    """Load data source settings with ${ENV_VAR} substitution."""
    raw = _load_mapping(settings_path, "settings")
    try:
        return Settings.model_validate(_substitute_env_vars(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid settings structure: {e}") from e


def load_query(query_path: Path) -> Query:
    """Load one query with ${ENV_VAR} substitution."""
    raw = _load_mapping(query_path, "query")
    try:
        return Query.model_validate(_substitute_env_vars(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid query structure: {e}") from e


def _load_mapping(path: Path, kind: str) -> dict[str, Any]:
    """Read a YAML (or JSON, a YAML subset) document that must be a mapping."""
    if not path.exists():
        raise ConfigError(f"{kind.capitalize()} file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {kind} file: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{kind.capitalize()} file must be a YAML mapping")
    return raw


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
