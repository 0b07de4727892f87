"""Environment variable utilities for rule-set files.

Provides expansion of ${VAR_NAME} patterns in configuration values and
loading of .env files.

Only the braced form is expanded: rule sets carry regular expressions
whose `$` anchors must survive untouched.

Uses python-dotenv for .env file loading.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_options", "load_env_file"]

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, searches for .env in current
              directory and parent directories.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand ${VAR} references in a string.

    Args:
        value: String potentially containing env var references
        strict: If True, raise KeyError for missing variables

    Returns:
        String with environment variables expanded

    Example:
        >>> os.environ["DATA_DIR"] = "/data"
        >>> expand_env_vars("${DATA_DIR}/property_master.csv")
        '/data/property_master.csv'
    """

    def replacer(match: "re.Match[str]") -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def _expand_value(value: Any, strict: bool) -> Any:
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return expand_options(value, strict=strict)
    if isinstance(value, list):
        return [_expand_value(item, strict) for item in value]
    return value


def expand_options(options: Dict[str, Any], *, strict: bool = False) -> Dict[str, Any]:
    """Recursively expand environment variables in a config dict.

    Args:
        options: Dictionary of options
        strict: If True, raise KeyError for missing variables

    Returns:
        New dictionary with env vars expanded in string values
    """
    result: Dict[str, Any] = {}
    for key, value in options.items():
        result[key] = _expand_value(value, strict)
    return result
