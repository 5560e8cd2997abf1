"""Pydantic models for submissions, run records, output events and settings.

Provides validated data models for the orchestrator: the closed set of
supported languages, classified code submissions, output events, run records
with their status state machine, backend results, and the settings that
configure both sandbox families.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from snippet_sandbox.core.errors import SettingsValidationError

PNG_DATA_URI_PREFIX = "data:image/png;base64,"
NO_OUTPUT_MESSAGE = "Code executed successfully with no output"


class Language(str, Enum):
    """Languages the orchestrator can execute.

    PYTHON: CPython compiled to WASM (Python backend)
    JAVASCRIPT: Node.js inside the process sandbox (Script backend)
    TYPESCRIPT: compiled with tsc, then run like JAVASCRIPT (Script backend)
    """
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"


class CodeSubmission(BaseModel):
    """A snippet after classification. Immutable once created.

    Attributes:
        raw_content: Text as received, possibly wrapped in a fenced block
        cleaned_code: Code with the fence lines stripped
        declared_language: Fence tag as written (lower-cased), if any
        inferred_language: Language the snippet will be executed as
    """

    model_config = ConfigDict(frozen=True)

    raw_content: str
    cleaned_code: str
    declared_language: str | None = None
    inferred_language: Language


class OutputKind(str, Enum):
    """Kind of a single output event."""
    TEXT = "text"
    IMAGE = "image"


class OutputEvent(BaseModel):
    """One unit of run output surfaced to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    kind: OutputKind
    value: str

    @classmethod
    def text(cls, value: str) -> OutputEvent:
        return cls(kind=OutputKind.TEXT, value=value)

    @classmethod
    def image(cls, value: str) -> OutputEvent:
        return cls(kind=OutputKind.IMAGE, value=value)

    @classmethod
    def from_line(cls, line: str) -> OutputEvent:
        """Classify a captured stdout line as an image or a text event."""
        if line.startswith(PNG_DATA_URI_PREFIX):
            return cls.image(line)
        return cls.text(line)


class RunStatus(str, Enum):
    """Status of an execution run.

    QUEUED -> LOADING_PACKAGES -> COMPLETED | FAILED. COMPLETED and FAILED
    are terminal.
    """
    QUEUED = "queued"
    LOADING_PACKAGES = "loading_packages"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class ExecutionRun(BaseModel):
    """Run record held by the tracker. Updates replace the whole record.

    Attributes:
        id: Unique run identifier
        outputs: Ordered, append-only output events
        status: Current status
        language: Language the run was dispatched as
        created_at: When the run was queued
        finished_at: When the run reached a terminal status
    """

    model_config = ConfigDict(frozen=True)

    id: str
    outputs: tuple[OutputEvent, ...] = ()
    status: RunStatus = RunStatus.QUEUED
    language: Language | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class BackendResult(BaseModel):
    """Outcome of one backend execution, before it is folded into a run record.

    Attributes:
        success: Whether the snippet ran to completion without errors
        outputs: Output events in emission order
        exit_code: Guest process exit code, if the backend has one
        duration_ms: Wall-clock execution time in milliseconds
        metadata: Backend-specific details (trap reason, compile recovery, ...)
    """

    success: bool
    outputs: list[OutputEvent] = Field(default_factory=list)
    exit_code: int | None = None
    duration_ms: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class SandboxSettings(BaseModel):
    """Type-safe configuration for both sandbox families.

    Python backend fields configure the WASM interpreter (binary, fuel and
    memory caps, output caps, package directory, plot adapter). Script
    backend fields configure the process sandbox root, its provisioning
    step and the executables it spawns.
    """

    python_wasm_path: str | None = Field(
        default=None,
        description="Path to python.wasm (None = locate the bundled binary)"
    )

    python_workspace_dir: str = Field(
        default="workspace",
        description="Host directory preopened as the interpreter's working mount"
    )

    guest_mount_path: str = Field(
        default="/app",
        description="Guest-visible mount point of the workspace"
    )

    vendor_dir: str = Field(
        default="vendor",
        description="Host directory whose site-packages/ holds installed packages"
    )

    guest_data_path: str = Field(
        default="/data",
        description="Guest-visible mount point of the vendor directory"
    )

    python_version: str = Field(
        default="3.12",
        description="Interpreter version used to pick compatible wheels"
    )

    install_packages: bool = Field(
        default=True,
        description="Resolve and install imported third-party packages before a run"
    )

    fuel_budget: int = Field(
        default=5_000_000_000,
        gt=0,
        description="WASM instruction limit per run"
    )

    memory_bytes: int = Field(
        default=256_000_000,
        gt=0,
        description="Linear memory cap in bytes"
    )

    stdout_max_bytes: int = Field(
        default=8_000_000,
        gt=0,
        description="Maximum stdout capture size (PNG data URIs travel on stdout)"
    )

    stderr_max_bytes: int = Field(
        default=1_000_000,
        gt=0,
        description="Maximum stderr capture size"
    )

    python_env: dict[str, str] = Field(
        default_factory=lambda: {
            "PYTHONUTF8": "1",
            "LC_ALL": "C.UTF-8",
            "PYTHONIOENCODING": "utf-8",
            "MPLBACKEND": "Agg",
        },
        description="Environment variables exposed to the interpreter"
    )

    plot_pixel_cap: int = Field(
        default=25_000_000,
        gt=0,
        description="Largest width*height*dpi^2 rendered before dpi is reduced"
    )

    plot_reduced_dpi: int = Field(
        default=100,
        gt=0,
        description="dpi used for figures above the pixel cap"
    )

    script_base_dir: str | None = Field(
        default=None,
        description="Parent of the script sandbox root (None = system temp dir)"
    )

    work_dir_name: str = Field(
        default="snippet-sandbox-rl",
        min_length=1,
        description="Name of the script sandbox working root"
    )

    provision_packages: list[str] = Field(
        default_factory=lambda: ["typescript", "ts-node"],
        description="npm packages installed once when the script sandbox boots"
    )

    node_command: str = "node"
    npm_command: str = "npm"
    tsc_command: str = "tsc"

    script_env: dict[str, str] = Field(
        default_factory=lambda: {"NODE_DISABLE_COLORS": "1", "FORCE_COLOR": "0"},
        description="Environment variables passed to every script process"
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise SettingsValidationError(f"Invalid sandbox settings: {e}") from e

    @field_validator("work_dir_name")
    @classmethod
    def validate_work_dir_name(cls, v: str) -> str:
        """Keep the sandbox root a single directory below the base dir."""
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("work_dir_name must be a plain directory name")
        return v
