"""Location of the CPython WASM binary used by the Python backend.

The binary is not a Python package resource: it is either pointed at
explicitly (settings.python_wasm_path or the SNIPPET_SANDBOX_PYTHON_WASM
environment variable) or found in a bin/ directory next to the project.
"""

from __future__ import annotations

import os
from pathlib import Path

PYTHON_WASM_ENV = "SNIPPET_SANDBOX_PYTHON_WASM"


def binary_candidates(binary_name: str) -> list[Path]:
    """Directories searched for a binary, most specific first.

    1. The bin/ directory beside the installed package (source checkouts)
    2. bin/ under the current working directory
    """
    project_root = Path(__file__).resolve().parent.parent
    candidates = [project_root / "bin" / binary_name, Path.cwd() / "bin" / binary_name]
    unique: list[Path] = []
    for candidate in candidates:
        if candidate not in unique:
            unique.append(candidate)
    return unique


def get_bundled_binary_path(binary_name: str) -> Path:
    """Return the first existing candidate for binary_name.

    Raises:
        FileNotFoundError: If no candidate exists; the message lists them
    """
    candidates = binary_candidates(binary_name)
    for candidate in candidates:
        if candidate.is_file():
            return candidate

    searched = "\n".join(f"  - {candidate}" for candidate in candidates)
    raise FileNotFoundError(
        f"WASM binary '{binary_name}' not found. Searched locations:\n{searched}\n\n"
        f"Set python_wasm_path in config/sandbox.toml, export {PYTHON_WASM_ENV}, "
        "or place the binary in bin/."
    )


def get_python_wasm_path() -> Path:
    """Get path to the CPython WASM binary.

    Raises:
        FileNotFoundError: If python.wasm cannot be found
    """
    override = os.environ.get(PYTHON_WASM_ENV)
    if override:
        return Path(override)
    return get_bundled_binary_path("python.wasm")
