"""Settings for a bootstrap run.

Values come from, in decreasing precedence: command-line flags, an
optional YAML settings file, the environment (CC), and built-in defaults.

Settings file example:

    cc: clang
    zig_version: 0.14.0-dev.bootstrap
    workdir: /src/zig
    timeout: 3600
    host_triple: x86_64-linux-musl
"""

from dataclasses import dataclass
from typing import Optional

import yaml

from _env import c_compiler
from _errors import ConfigError
from zig_config import DEFAULT_ZIG_VERSION

_STRING_KEYS = ("cc", "zig_version", "workdir", "host_triple")
KNOWN_KEYS = frozenset(_STRING_KEYS + ("timeout",))


@dataclass
class Settings:
    cc: str
    zig_version: str = DEFAULT_ZIG_VERSION
    workdir: str = "."
    timeout: Optional[float] = None
    host_triple: Optional[str] = None


def load_settings_file(path):
    """Parse a YAML settings file into a dict of validated values."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"unable to read {path}: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping, got {type(data).__name__}")

    unknown = sorted(str(k) for k in data if k not in KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"{path}: unknown keys: {', '.join(unknown)}")

    for key in _STRING_KEYS:
        if key in data and not isinstance(data[key], str):
            raise ConfigError(f"{path}: {key} must be a string")
        if key in data and "\0" in data[key]:
            raise ConfigError(f"{path}: {key} must not contain a NUL character")
    timeout = data.get("timeout")
    if timeout is not None:
        # bool is an int subclass; `timeout: yes` is not a duration
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError(f"{path}: timeout must be a positive number of seconds")
        data["timeout"] = float(timeout)
    return data


def resolve_settings(overrides=None, file_values=None, environ=None):
    """Merge flag overrides and settings-file values into a Settings.

    *overrides* holds command-line values; None entries mean "not given".
    """
    merged = {}
    for source in (file_values or {}, overrides or {}):
        for key, val in source.items():
            if val is not None:
                merged[key] = val
    if "cc" not in merged:
        merged["cc"] = c_compiler(environ)
    return Settings(**merged)
