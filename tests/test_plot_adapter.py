"""Tests for the matplotlib plot adapter preamble.

The rendering tests execute the preamble with the host interpreter in a
subprocess, so they only need matplotlib installed on the host.
"""

from __future__ import annotations

import subprocess
import sys

import pytest

from snippet_sandbox.core.models import PNG_DATA_URI_PREFIX
from snippet_sandbox.runtimes.python.plot import build_plot_adapter, needs_plot_adapter


class TestNeedsPlotAdapter:
    @pytest.mark.parametrize(
        "source",
        [
            "import matplotlib.pyplot as plt",
            "from matplotlib import pyplot",
            "plt.plot([1, 2, 3])",
        ],
    )
    def test_detects_plotting(self, source: str) -> None:
        assert needs_plot_adapter(source)

    def test_plain_code(self) -> None:
        assert not needs_plot_adapter("print(sum(range(10)))")


class TestBuildPlotAdapter:
    def test_parameters_rendered(self) -> None:
        adapter = build_plot_adapter(pixel_cap=1000, reduced_dpi=42, image_prefix="IMG:")

        assert "> 1000:" in adapter
        assert "figure.set_dpi(42)" in adapter
        assert "print('IMG:' + " in adapter

    def test_adapter_is_valid_python(self) -> None:
        compile(build_plot_adapter(), "<adapter>", "exec")


def _run_with_adapter(snippet: str, **adapter_kwargs: int) -> list[str]:
    source = build_plot_adapter(**adapter_kwargs) + snippet
    completed = subprocess.run(
        [sys.executable, "-c", source],
        capture_output=True,
        text=True,
        check=True,
        timeout=120,
    )
    return completed.stdout.splitlines()


class TestPlotRendering:
    @pytest.fixture(autouse=True)
    def _require_matplotlib(self) -> None:
        pytest.importorskip("matplotlib")

    def test_show_prints_one_png_line(self) -> None:
        lines = _run_with_adapter(
            "import matplotlib.pyplot as plt\n"
            "print('before')\n"
            "plt.plot([1, 2, 3])\n"
            "plt.show()\n"
            "print('after')\n"
        )

        assert lines[0] == "before"
        assert lines[1].startswith(PNG_DATA_URI_PREFIX)
        assert lines[2] == "after"
        assert len(lines) == 3

    def test_large_figure_warns_and_reduces_dpi(self) -> None:
        lines = _run_with_adapter(
            "import matplotlib.pyplot as plt\n"
            "plt.figure(figsize=(60, 60), dpi=200)\n"
            "plt.plot([1, 2])\n"
            "plt.show()\n",
            reduced_dpi=10,
        )

        assert lines[0] == "Warning: Plot size too large, reducing quality"
        assert lines[1].startswith(PNG_DATA_URI_PREFIX)

    def test_each_show_starts_from_clean_state(self) -> None:
        lines = _run_with_adapter(
            "import matplotlib.pyplot as plt\n"
            "plt.plot([1, 2])\n"
            "plt.show()\n"
            "print(len(plt.get_fignums()))\n"
        )

        assert lines[0].startswith(PNG_DATA_URI_PREFIX)
        assert lines[1] == "0"
