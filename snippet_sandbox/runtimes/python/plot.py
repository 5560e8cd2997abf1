"""Plot output adapter injected into Python sessions.

When a snippet uses matplotlib, the backend prepends this preamble to the
session source. It replaces ``pyplot.show`` inside that session only with a
function that prints the current figure as a single PNG data URI line, which
the stdout collector turns into an image event. Nothing in the host process
is patched.
"""

from __future__ import annotations

from snippet_sandbox.core.models import PNG_DATA_URI_PREFIX

PLOT_MARKERS = ("matplotlib", "plt.")

_PLOT_ADAPTER_TEMPLATE = '''\
import base64 as _snippet_base64
import io as _snippet_io

import matplotlib as _snippet_matplotlib

_snippet_matplotlib.use("Agg")

from matplotlib import pyplot as _snippet_plt

_snippet_plt.clf()
_snippet_plt.close("all")


def _snippet_show(*args, **kwargs):
    figure = _snippet_plt.gcf()
    width, height = figure.get_size_inches()
    if width * height * figure.dpi ** 2 > {pixel_cap}:
        print("Warning: Plot size too large, reducing quality")
        figure.set_dpi({reduced_dpi})

    buffer = _snippet_io.BytesIO()
    figure.savefig(buffer, format="png", dpi=figure.dpi)
    buffer.seek(0)
    print({image_prefix!r} + _snippet_base64.b64encode(buffer.read()).decode("utf-8"))
    buffer.close()

    _snippet_plt.clf()
    _snippet_plt.close("all")


_snippet_plt.show = _snippet_show

'''


def needs_plot_adapter(source: str) -> bool:
    """Whether source references matplotlib (module name or ``plt.`` calls)."""
    return any(marker in source for marker in PLOT_MARKERS)


def build_plot_adapter(
    pixel_cap: int = 25_000_000,
    reduced_dpi: int = 100,
    image_prefix: str = PNG_DATA_URI_PREFIX,
) -> str:
    """Render the preamble for a session.

    Args:
        pixel_cap: Largest width*height*dpi^2 rendered at the figure's own dpi
        reduced_dpi: dpi used (after a warning line) above the cap
        image_prefix: Prefix the stdout collector recognizes as an image

    Returns:
        Python source to prepend to the snippet
    """
    return _PLOT_ADAPTER_TEMPLATE.format(
        pixel_cap=int(pixel_cap),
        reduced_dpi=int(reduced_dpi),
        image_prefix=image_prefix,
    )
