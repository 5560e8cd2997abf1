"""Settings management for the orchestrator's sandboxes.

Provides default sandbox settings and TOML-based configuration loading for
the Python interpreter limits, the script sandbox root and toolchain, and
the environment whitelists of both families.
"""

from __future__ import annotations

import os
import tomllib
from typing import Any

from pydantic import ValidationError

from snippet_sandbox.core.errors import SettingsValidationError
from snippet_sandbox.core.models import SandboxSettings

DEFAULT_SETTINGS: dict[str, Any] = {
    # WASM instruction limit and linear memory cap of the Python interpreter
    "fuel_budget": 5_000_000_000,
    "memory_bytes": 256_000_000,

    # Output caps; rendered plots travel on stdout as data URIs
    "stdout_max_bytes": 8_000_000,
    "stderr_max_bytes": 1_000_000,

    # Interpreter filesystem: read-write workspace, read-only packages
    "python_workspace_dir": "workspace",
    "guest_mount_path": "/app",
    "vendor_dir": "vendor",
    "guest_data_path": "/data",

    # Plot adapter
    "plot_pixel_cap": 25_000_000,
    "plot_reduced_dpi": 100,

    # Script sandbox root is <script_base_dir or temp dir>/<work_dir_name>
    "work_dir_name": "snippet-sandbox-rl",
    "provision_packages": ["typescript", "ts-node"],

    # Environment whitelists
    "python_env": {
        "PYTHONUTF8": "1",
        "LC_ALL": "C.UTF-8",
        "PYTHONIOENCODING": "utf-8",
        "MPLBACKEND": "Agg",
    },
    "script_env": {
        "NODE_DISABLE_COLORS": "1",
        "FORCE_COLOR": "0",
    },
}

_ENV_TABLES = ("python_env", "script_env")


def load_settings(path: str = "config/sandbox.toml") -> SandboxSettings:
    """Load and merge a settings file over DEFAULT_SETTINGS.

    Top-level keys are merged shallowly with file values taking precedence.
    The env tables (python_env, script_env) are deep-merged so a file can add
    variables without restating the defaults.

    Args:
        path: Path to the settings TOML file. If the file doesn't exist,
              returns SandboxSettings built from the defaults.

    Returns:
        SandboxSettings: Validated settings

    Raises:
        SettingsValidationError: If a value is invalid (negative limits,
                                 wrong types, a nested work_dir_name, ...)
        tomllib.TOMLDecodeError: If the TOML file is malformed
        OSError: If the file exists but cannot be read
    """
    if not os.path.exists(path):
        return _build(dict(DEFAULT_SETTINGS))

    with open(path, "rb") as f:
        data = tomllib.load(f)

    settings = DEFAULT_SETTINGS | data
    for table in _ENV_TABLES:
        settings[table] = DEFAULT_SETTINGS[table] | data.get(table, {})

    return _build(settings)


def _build(values: dict[str, Any]) -> SandboxSettings:
    try:
        return SandboxSettings(**values)
    except SettingsValidationError:
        raise
    except ValidationError as e:
        raise SettingsValidationError(f"Settings validation failed: {e}") from e
