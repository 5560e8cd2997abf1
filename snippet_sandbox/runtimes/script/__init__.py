"""Script runtime backend for JavaScript and TypeScript.

Provides ScriptBackend, which runs snippets with node (and tsc for
TypeScript) inside one shared, lazily booted ProcessSandbox.
"""

from .container import ProcessSandbox, SandboxProcess
from .sandbox import ScriptBackend

__all__ = ["ProcessSandbox", "SandboxProcess", "ScriptBackend"]
