"""Tests for snippet_sandbox.core.models."""

from __future__ import annotations

import pytest

from snippet_sandbox.core.errors import BootError, SettingsValidationError, UnsupportedLanguageError
from snippet_sandbox.core.models import (
    PNG_DATA_URI_PREFIX,
    BackendResult,
    ExecutionRun,
    Language,
    OutputEvent,
    OutputKind,
    RunStatus,
    SandboxSettings,
)


class TestOutputEvent:
    def test_from_line(self) -> None:
        image = OutputEvent.from_line(PNG_DATA_URI_PREFIX + "AAAA")
        text = OutputEvent.from_line("data: not an image")

        assert image.kind is OutputKind.IMAGE
        assert text.kind is OutputKind.TEXT

    def test_serializes_to_wire_shape(self) -> None:
        assert OutputEvent.text("hi").model_dump(mode="json") == {"kind": "text", "value": "hi"}


class TestRunModels:
    def test_terminal_statuses(self) -> None:
        assert RunStatus.COMPLETED.is_terminal
        assert RunStatus.FAILED.is_terminal
        assert not RunStatus.QUEUED.is_terminal
        assert not RunStatus.LOADING_PACKAGES.is_terminal

    def test_run_defaults(self) -> None:
        run = ExecutionRun(id="a")

        assert run.status is RunStatus.QUEUED
        assert run.outputs == ()
        assert run.created_at.tzinfo is not None
        assert run.finished_at is None
        assert not run.is_terminal

    def test_run_is_frozen(self) -> None:
        run = ExecutionRun(id="a")
        with pytest.raises(Exception):
            run.status = RunStatus.COMPLETED  # type: ignore[misc]

    def test_backend_result_defaults(self) -> None:
        result = BackendResult(success=True)
        assert result.outputs == []
        assert result.metadata == {}

    def test_language_values(self) -> None:
        assert [language.value for language in Language] == ["python", "javascript", "typescript"]


class TestSandboxSettings:
    def test_defaults(self) -> None:
        settings = SandboxSettings()

        assert settings.work_dir_name == "snippet-sandbox-rl"
        assert settings.guest_data_path == "/data"
        assert settings.python_env["MPLBACKEND"] == "Agg"
        assert settings.script_env["NODE_DISABLE_COLORS"] == "1"

    @pytest.mark.parametrize("name", ["a/b", "..", ".", "a\\b"])
    def test_work_dir_name_must_be_plain(self, name: str) -> None:
        with pytest.raises(SettingsValidationError):
            SandboxSettings(work_dir_name=name)

    def test_positive_limits(self) -> None:
        with pytest.raises(SettingsValidationError):
            SandboxSettings(fuel_budget=0)


class TestErrors:
    def test_unsupported_language_message(self) -> None:
        error = UnsupportedLanguageError("ruby")
        assert error.language == "ruby"
        assert "python, javascript, typescript" in str(error)

    def test_boot_error_message(self) -> None:
        error = BootError("script", "npm missing")
        assert str(error) == "script sandbox failed to initialize: npm missing"
