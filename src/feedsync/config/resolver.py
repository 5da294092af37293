"""
Configuration resolution and environment variable substitution.
"""

import os
import re
from collections.abc import Mapping
from typing import Any

_VAR_PATTERN = re.compile(r"\${([^}]+)}")


def resolve_config(config_data: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Substitute ``${VAR_NAME}`` placeholders throughout a parsed config tree.

    Unknown variables are left untouched so a later validation step can
    report them.

    Args:
        config_data: Parsed configuration dictionary
        environ: Environment mapping (default: ``os.environ``)

    Returns:
        Resolved configuration
    """
    env = os.environ if environ is None else environ
    return _resolve_value(config_data, env)


def _resolve_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, dict):
        return {k: _resolve_value(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_value(item, env) for item in value]
    if isinstance(value, str):
        return _VAR_PATTERN.sub(lambda m: env.get(m.group(1), m.group(0)), value)
    return value
