"""Dependency resolution and vendoring for the Python interpreter sandbox.

The WASM interpreter cannot reach a package index, so third-party imports are
resolved on the host: the snippet's imports are scanned, standard-library and
already vendored modules are skipped, and each remaining package is installed
as a wheel into vendor/site-packages. That directory is mounted read-only
into the interpreter, where the injected setup puts it on sys.path.

Key constraints:
- Only pure-Python packages load (WASM cannot load native extensions)
- Packages installed as wheels to avoid compilation
- --no-deps keeps installs to what the snippet actually imports
"""

from __future__ import annotations

import ast
import re
import shutil
import subprocess
import sys
from pathlib import Path

# Import names whose distribution on the index is named differently
IMPORT_TO_DISTRIBUTION: dict[str, str] = {
    "attr": "attrs",
    "bs4": "beautifulsoup4",
    "dateutil": "python-dateutil",
    "docx": "python-docx",
    "jwt": "PyJWT",
    "markdown_it": "markdown-it-py",
    "PIL": "pillow",
    "pptx": "python-pptx",
    "sklearn": "scikit-learn",
    "yaml": "PyYAML",
}

_IMPORT_LINE = re.compile(
    r"^[ \t]*(?:from[ \t]+([A-Za-z_][\w.]*)[ \t]+import"
    r"|import[ \t]+([A-Za-z_][\w.]*(?:[ \t]*,[ \t]*[A-Za-z_][\w.]*)*))",
    re.MULTILINE,
)


def setup_vendor_dir(vendor_dir: str | Path = "vendor") -> Path:
    """Initialize vendor directory with site-packages subdirectory.

    Args:
        vendor_dir: Path to vendor root directory (default: "vendor")

    Returns:
        Path object for the vendor directory (not site-packages subdirectory)
    """
    vendor_path = Path(vendor_dir)
    vendor_path.mkdir(parents=True, exist_ok=True)
    (vendor_path / "site-packages").mkdir(exist_ok=True)
    return vendor_path


def find_imports(source: str) -> list[str]:
    """Return top-level module names imported by source, without duplicates.

    Module-level imports keep their source order; nested ones follow.

    Parses with ast; snippets that do not parse fall back to a line-based
    scan so a syntax error later in the file does not hide its imports.
    Relative imports and __future__ are ignored.
    """
    names: list[str] = []

    def add(name: str) -> None:
        top = name.split(".", 1)[0].strip()
        if top and top != "__future__" and top not in names:
            names.append(top)

    try:
        tree = ast.parse(source)
    except SyntaxError:
        for match in _IMPORT_LINE.finditer(source):
            if match.group(1):
                add(match.group(1))
            else:
                for part in match.group(2).split(","):
                    add(part)
        return names

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                add(alias.name)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            add(node.module)
    return names


def is_stdlib_module(name: str) -> bool:
    return name in sys.stdlib_module_names or name in sys.builtin_module_names


def is_vendored(module_name: str, vendor_dir: str | Path = "vendor") -> bool:
    """Check whether a top-level module is importable from vendor/site-packages."""
    site_packages = Path(vendor_dir) / "site-packages"
    return (site_packages / module_name).is_dir() or (site_packages / f"{module_name}.py").is_file()


def distribution_for(module_name: str) -> str:
    """Map an import name to the distribution name to install."""
    return IMPORT_TO_DISTRIBUTION.get(module_name, module_name)


def missing_packages(source: str, vendor_dir: str | Path = "vendor") -> list[str]:
    """Return distributions the source imports that are not yet vendored."""
    missing: list[str] = []
    for module_name in find_imports(source):
        if is_stdlib_module(module_name) or is_vendored(module_name, vendor_dir):
            continue
        distribution = distribution_for(module_name)
        if distribution not in missing:
            missing.append(distribution)
    return missing


def install_pure_python_package(
    package: str, vendor_dir: str | Path = "vendor", python_version: str = "3.12"
) -> tuple[bool, str]:
    """Install a pure-Python package to vendor directory using wheels only.

    Enforces --only-binary to prevent compilation (WASM guest cannot load native
    extensions). Uses --no-deps to require explicit dependency management, avoiding
    accidental inclusion of incompatible transitive dependencies.

    Prefers uv (faster, better resolver) over pip when available.

    Args:
        package: Package specifier (e.g., 'certifi' or 'certifi==2023.7.22')
        vendor_dir: Path to vendor root directory (default: "vendor")
        python_version: Target Python version for wheel compatibility (default: "3.12")

    Returns:
        Tuple of (success, installer diagnostics)

    Raises:
        OSError: If neither uv nor pip can be started
    """
    site_packages = setup_vendor_dir(vendor_dir) / "site-packages"

    uv_path = shutil.which("uv")
    if uv_path:
        cmd = [
            uv_path,
            "pip",
            "install",
            "--target",
            str(site_packages),
            "--only-binary=:all:",
            "--python-version",
            python_version,
            "--no-deps",
            package,
        ]
    else:
        cmd = [
            sys.executable,
            "-m",
            "pip",
            "install",
            "--target",
            str(site_packages),
            "--only-binary=:all:",
            "--python-version",
            python_version,
            "--platform",
            "any",
            "--no-deps",
            package,
        ]

    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    return result.returncode == 0, (result.stderr or result.stdout).strip()
