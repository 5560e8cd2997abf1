"""Python runtime backend using CPython compiled to WASM.

Provides PythonBackend, which runs snippets on one shared, lazily booted
PythonInterpreter with host-side package installation and plot capture.
"""

from .interpreter import PythonInterpreter, WasmPythonInterpreter
from .sandbox import PythonBackend

__all__ = ["PythonBackend", "PythonInterpreter", "WasmPythonInterpreter"]
