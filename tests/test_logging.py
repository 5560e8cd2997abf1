"""Tests for snippet_sandbox.core.logging module.

Verifies RunLogger functionality with structlog including structured event
logging, key-value pairs, truncation, and standard logging compatibility.
"""

from __future__ import annotations

import logging

import pytest
import structlog

from snippet_sandbox.core.logging import RunLogger, configure_structlog
from snippet_sandbox.core.models import ExecutionRun, Language, OutputEvent, RunStatus

from conftest import StructlogCapture

PNG = "data:image/png;base64,AAAA"


@pytest.fixture
def std_logger() -> logging.Logger:
    """Fixture providing a standard library logger for compatibility tests."""
    logger = logging.getLogger("snippet-sandbox-test-logger")
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)
    logger.propagate = True
    return logger


def test_configure_structlog_renderers() -> None:
    """Test structlog configuration with both renderers."""
    configure_structlog(use_json=False)
    assert structlog.get_logger() is not None

    configure_structlog(level=logging.DEBUG, use_json=True)
    assert structlog.get_logger() is not None
    structlog.reset_defaults()


def test_run_logger_wraps_provided_logger(run_logger: RunLogger) -> None:
    wrapped = RunLogger(logger=run_logger.logger)
    assert wrapped.logger is run_logger.logger


def test_run_logger_accepts_name() -> None:
    assert RunLogger("snippet_sandbox.custom").logger is not None


def test_run_logger_accepts_standard_logging_logger(
    std_logger: logging.Logger, caplog: pytest.LogCaptureFixture
) -> None:
    run_logger = RunLogger(logger=std_logger)

    with caplog.at_level(logging.INFO, logger=std_logger.name):
        run_logger.log_run_queued("run-1", "python")

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.event == "run.queued"
    assert record.run_id == "run-1"
    assert record.language == "python"
    assert record.log_message == "orchestrator.run.queued"


def test_log_run_complete_completed(run_logger: RunLogger, log_capture: StructlogCapture) -> None:
    run = ExecutionRun(
        id="run-1",
        status=RunStatus.COMPLETED,
        language=Language.PYTHON,
        outputs=(OutputEvent.text("hello"), OutputEvent.from_line(PNG)),
    )

    run_logger.log_run_complete(run, duration_ms=12.5)

    assert len(log_capture.events) == 1
    event = log_capture.events[0]
    assert event["level"] == "info"
    assert event["event"] == "run.complete"
    assert event["log_message"] == "orchestrator.run.complete"
    assert event["status"] == "completed"
    assert event["language"] == "python"
    assert event["output_count"] == 2
    assert event["image_count"] == 1
    assert event["duration_ms"] == 12.5


def test_log_run_complete_failed_is_warning(run_logger: RunLogger, log_capture: StructlogCapture) -> None:
    run = ExecutionRun(id="run-2", status=RunStatus.FAILED, outputs=(OutputEvent.text("boom"),))

    run_logger.log_run_complete(run)

    event = log_capture.events[0]
    assert event["level"] == "warning"
    assert event["language"] is None
    assert "duration_ms" not in event


def test_log_run_status_truncates_message(run_logger: RunLogger, log_capture: StructlogCapture) -> None:
    run_logger.log_run_status("run-1", "loading_packages", "x" * 500)

    event = log_capture.events[0]
    assert event["level"] == "debug"
    assert len(event["progress_message"]) == 200
    assert event["progress_message"].endswith("...[truncated]")


def test_boot_and_provision_events(run_logger: RunLogger, log_capture: StructlogCapture) -> None:
    run_logger.log_boot_start("script")
    run_logger.log_provision(["typescript"], 0)
    run_logger.log_provision(["typescript"], None, "Executable not found in sandbox: npm")
    run_logger.log_boot_complete("script", 150.0)

    assert [e["event"] for e in log_capture.events] == [
        "sandbox.boot.start",
        "sandbox.provision.complete",
        "sandbox.provision.failed",
        "sandbox.boot.complete",
    ]
    failed = log_capture.events[2]
    assert failed["level"] == "error"
    assert failed["exit_code"] is None
    assert failed["packages"] == ["typescript"]


def test_package_install_levels(run_logger: RunLogger, log_capture: StructlogCapture) -> None:
    run_logger.log_package_install("numpy", True)
    run_logger.log_package_install("torch", False, "no pure-Python wheel")

    ok, failed = log_capture.events
    assert ok["level"] == "info"
    assert "detail" not in ok
    assert failed["level"] == "warning"
    assert failed["detail"] == "no pure-Python wheel"


def test_cleanup_failed(run_logger: RunLogger, log_capture: StructlogCapture) -> None:
    run_logger.log_cleanup_failed("code-1-0.js", "PermissionError: denied")

    event = log_capture.events[0]
    assert event["event"] == "cleanup.failed"
    assert event["path"] == "code-1-0.js"
    assert event["level"] == "warning"
