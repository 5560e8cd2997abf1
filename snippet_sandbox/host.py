"""WASM host layer for the Python interpreter sandbox.

This module runs CPython compiled to WASM (WLR AIO binary) under Wasmtime.
Compiling the module is the expensive part and happens once per process
(compile_python_module); every run then gets a fresh Store, WASI
configuration and instance (run_compiled_python). Guest limits come from
the settings: a fuel budget per run, a linear memory cap, and byte caps on
captured stdout and stderr. The guest sees the workspace read-write and the
vendored packages read-only, nothing else.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass

from wasmtime import (
    Config,
    DirPerms,
    Engine,
    ExitTrap,
    FilePerms,
    Linker,
    Module,
    Store,
    Trap,
    WasiConfig,
)

from .core.errors import SnippetSandboxError
from .core.models import SandboxSettings


@dataclass
class InterpreterResult:
    """Outputs and metrics of one interpreter run.

    Attributes:
        stdout: Captured standard output (capped to settings limit)
        stderr: Captured standard error, with any trap notice appended
        fuel_consumed: WASM instructions executed (None if unavailable)
        mem_len: Linear memory size in bytes at exit
        exit_code: Guest exit code (0 = success)
        trapped: Whether execution ended in a WASM trap (fuel, memory)
        trap_reason: "out_of_fuel", "memory_limit", "proc_exit", "trap" or "host_error"
        trap_message: Raw trap message
    """

    stdout: str
    stderr: str
    fuel_consumed: int | None = None
    mem_len: int = 0
    exit_code: int | None = 0
    trapped: bool = False
    trap_reason: str | None = None
    trap_message: str | None = None
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def failed(self) -> bool:
        return self.trapped or (self.exit_code or 0) != 0


@dataclass
class CompiledPython:
    """A compiled CPython WASM module ready to be instantiated per run."""

    engine: Engine
    linker: Linker
    module: Module
    wasm_path: str


def compile_python_module(wasm_path: str) -> CompiledPython:
    """Compile the CPython WASM binary once, with fuel metering enabled.

    Args:
        wasm_path: Path to the CPython WASM binary (WLR AIO build)

    Raises:
        FileNotFoundError: If wasm_path does not exist
        wasmtime.WasmtimeError: If the module fails to compile
    """
    if not os.path.isfile(wasm_path):
        raise FileNotFoundError(f"WASM binary not found at {wasm_path}")

    config = Config()
    config.consume_fuel = True
    engine = Engine(config)

    linker = Linker(engine)
    linker.define_wasi()

    return CompiledPython(
        engine=engine,
        linker=linker,
        module=Module.from_file(engine, wasm_path),
        wasm_path=wasm_path,
    )


def _configure_wasi(
    settings: SandboxSettings,
    script_name: str,
    workspace_dir: str,
    vendor_dir: str | None,
    stdout_path: str,
    stderr_path: str,
) -> WasiConfig:
    wasi = WasiConfig()
    wasi.preopen_dir(os.path.abspath(workspace_dir), settings.guest_mount_path)

    if vendor_dir is not None and os.path.isdir(vendor_dir):
        wasi.preopen_dir(
            os.path.abspath(vendor_dir),
            settings.guest_data_path,
            DirPerms.READ_ONLY,
            FilePerms.READ_ONLY,
        )

    # -I: ignore PYTHON* env and user site-packages
    wasi.argv = ("python", "-I", "-X", "utf8", f"{settings.guest_mount_path}/{script_name}")
    wasi.env = list(settings.python_env.items())
    wasi.stdout_file = stdout_path
    wasi.stderr_file = stderr_path
    return wasi


def _limited_store(compiled: CompiledPython, settings: SandboxSettings) -> Store:
    """Fresh store with the fuel budget and memory cap applied.

    Raises:
        SnippetSandboxError: If the memory cap cannot be enforced
    """
    store = Store(compiled.engine)
    store.set_fuel(int(settings.fuel_budget))

    if not hasattr(store, "set_limits"):
        raise SnippetSandboxError(
            "Memory limit enforcement is unavailable: wasmtime.Store.set_limits is missing"
        )
    try:
        store.set_limits(memory_size=int(settings.memory_bytes))
    except Exception as e:
        raise SnippetSandboxError(
            f"Failed to enforce memory limit of {settings.memory_bytes} bytes"
        ) from e
    return store


def run_compiled_python(
    compiled: CompiledPython,
    script_name: str,
    settings: SandboxSettings,
    workspace_dir: str,
    vendor_dir: str | None = None,
) -> InterpreterResult:
    """Run one script inside a fresh instance of the compiled interpreter.

    Args:
        compiled: Module from compile_python_module()
        script_name: File name of the script inside workspace_dir
        settings: SandboxSettings with fuel, memory and output limits
        workspace_dir: Host directory mounted at guest_mount_path
        vendor_dir: Optional host directory mounted read-only at guest_data_path

    Returns:
        InterpreterResult with captured outputs and trap details

    Raises:
        SnippetSandboxError: If memory limits cannot be enforced
        wasmtime.WasmtimeError: If instantiation fails
    """
    capture_dir = tempfile.mkdtemp(prefix="snippet-python-")
    stdout_path = os.path.join(capture_dir, "stdout.log")
    stderr_path = os.path.join(capture_dir, "stderr.log")

    try:
        store = _limited_store(compiled, settings)
        store.set_wasi(
            _configure_wasi(settings, script_name, workspace_dir, vendor_dir, stdout_path, stderr_path)
        )

        instance = compiled.linker.instantiate(store, compiled.module)
        exports = instance.exports(store)

        result = InterpreterResult(stdout="", stderr="")
        try:
            exports["_start"](store)  # type: ignore[operator]
        except ExitTrap as trap:
            # proc_exit: the guest chose its exit code
            result.exit_code = trap.code
            if trap.code != 0:
                result.trap_reason = "proc_exit"
                result.trap_message = str(trap)
        except Trap as trap:
            result.exit_code = 1
            result.trapped = True
            result.trap_message = str(trap)
            result.trap_reason = _classify_trap(result.trap_message)

        try:
            result.fuel_consumed = int(settings.fuel_budget) - store.get_fuel()
        except Exception:
            result.fuel_consumed = None

        result.stdout, result.stdout_truncated = _read_capped(stdout_path, int(settings.stdout_max_bytes))
        stderr, stderr_truncated = _read_capped(stderr_path, int(settings.stderr_max_bytes))
        stderr = _with_trap_notice(stderr, result)
        result.stderr, result.stderr_truncated = _enforce_cap(
            stderr, int(settings.stderr_max_bytes), stderr_truncated
        )

        result.mem_len = exports["memory"].data_len(store)  # type: ignore[union-attr,call-arg]
    finally:
        shutil.rmtree(capture_dir, ignore_errors=True)

    return result


def _with_trap_notice(stderr: str, result: InterpreterResult) -> str:
    """Append a trap notice so a trap is visible even when the guest wrote nothing."""
    if not result.trapped:
        return stderr
    if result.trap_reason == "out_of_fuel":
        notice = "Execution trapped: OutOfFuel"
    elif result.trap_message:
        notice = f"Execution trapped: {result.trap_message}"
    else:
        return stderr
    if notice in stderr:
        return stderr
    return f"{stderr.rstrip()}\n{notice}".strip()


def _read_capped(path: str, cap: int) -> tuple[str, bool]:
    """Read at most cap bytes of a capture file."""
    try:
        with open(path, "rb") as f:
            data = f.read(cap + 1)
    except FileNotFoundError:
        return "", False
    return data[:cap].decode("utf-8", errors="replace"), len(data) > cap


def _classify_trap(message: str | None) -> str | None:
    if message is None:
        return None
    lowered = message.lower()
    if "fuel" in lowered:
        return "out_of_fuel"
    if "memory" in lowered:
        return "memory_limit"
    return "trap"


def _enforce_cap(text: str, cap: int, already_truncated: bool) -> tuple[str, bool]:
    """Trim text to cap bytes, keeping the truncation flag sticky."""
    data = text.encode("utf-8", errors="replace")
    if len(data) <= cap:
        return text, already_truncated
    return data[:cap].decode("utf-8", errors="replace"), True
