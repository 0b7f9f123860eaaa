"""
Raster rendering of certificate chart datasets.

The certificate model carries charts as plain data; this module turns one of
those datasets into a PNG so the PDF layer can embed it as an image.
"""
from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, Mapping

import numpy as np

import matplotlib

# Force a headless friendly backend before pyplot is imported.
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .charts import ChartSpec

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#102542"
REFERENCE_COLOR = "#b91c1c"


class ChartRenderError(RuntimeError):
    """Raised when a chart dataset cannot be drawn."""


def _chart_payload(chart: ChartSpec | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(chart, ChartSpec):
        return chart.to_dict()
    if isinstance(chart, Mapping):
        return chart
    raise ChartRenderError(f"Unsupported chart payload: {type(chart).__name__}")


def _draw_line(ax, chart: Mapping[str, Any], xs: list[Any], ys: np.ndarray, color: str) -> None:
    positions = np.arange(len(xs), dtype=np.float64)
    ax.plot(positions, ys, color=color, marker="o", linewidth=1.6)
    ax.set_xticks(positions)
    ax.set_xticklabels([str(item) for item in xs], rotation=45, ha="right", fontsize=7)
    domain = chart.get("y_domain")
    if domain:
        ax.set_ylim(float(domain[0]), float(domain[1]))


def _draw_scatter_line(ax, chart: Mapping[str, Any], xs: list[Any], ys: np.ndarray, color: str) -> None:
    x_values = np.asarray(xs, dtype=np.float64)
    ax.plot(x_values, ys, color=color, marker="o", linewidth=1.6)
    for line in chart.get("reference_lines") or []:
        value = float(line["value"])
        if line.get("axis") == "x":
            ax.axvline(value, color=REFERENCE_COLOR, linestyle="--", linewidth=1.0, label=line.get("label"))
        else:
            ax.axhline(value, color=REFERENCE_COLOR, linestyle=":", linewidth=1.0, label=line.get("label"))
    if chart.get("reference_lines"):
        ax.legend(fontsize=7, loc="best")


def _draw_bar(ax, chart: Mapping[str, Any], xs: list[Any], ys: np.ndarray, color: str) -> None:
    positions = np.arange(len(xs), dtype=np.float64)
    bars = ax.bar(positions, ys, color=color, width=0.6)
    ax.set_xticks(positions)
    ax.set_xticklabels([str(item) for item in xs], fontsize=8)
    for bar, value in zip(bars, ys):
        ax.annotate(
            f"{value:g}",
            (bar.get_x() + bar.get_width() / 2, bar.get_height()),
            ha="center",
            va="bottom",
            fontsize=7,
        )


DRAWERS = {
    "line": _draw_line,
    "scatter_line": _draw_scatter_line,
    "bar": _draw_bar,
}


def render_chart_png(
    chart: ChartSpec | Mapping[str, Any],
    *,
    output_path: Path | None = None,
    color: str = DEFAULT_COLOR,
    figsize: tuple[float, float] = (6.0, 3.2),
    dpi: int = 150,
) -> bytes:
    """Draw ``chart`` and return the PNG bytes (also written to ``output_path`` when given)."""
    payload = _chart_payload(chart)
    chart_type = payload.get("chart_type")
    drawer = DRAWERS.get(str(chart_type))
    if drawer is None:
        raise ChartRenderError(f"Unsupported chart type: {chart_type!r}")

    points = payload.get("points") or []
    if not points:
        raise ChartRenderError("Chart has no points to draw.")
    x_key = payload.get("x_key")
    y_key = payload.get("y_key")
    try:
        xs = [point[x_key] for point in points]
        ys = np.asarray([float(point[y_key]) for point in points], dtype=np.float64)
    except (KeyError, TypeError, ValueError) as exc:
        raise ChartRenderError(f"Chart points do not match keys '{x_key}'/'{y_key}': {exc}") from exc

    fig, ax = plt.subplots(figsize=figsize, dpi=dpi)
    try:
        drawer(ax, payload, xs, ys, color)
        ax.set_xlabel(str(payload.get("x_label") or ""), fontsize=8)
        ax.set_ylabel(str(payload.get("y_label") or ""), fontsize=8)
        ax.grid(True, linestyle="--", linewidth=0.4, alpha=0.6)
        ax.tick_params(labelsize=7)
        fig.tight_layout()
        buffer = io.BytesIO()
        fig.savefig(buffer, format="png")
    except (ValueError, TypeError) as exc:
        raise ChartRenderError(f"Failed to render {chart_type} chart: {exc}") from exc
    finally:
        plt.close(fig)

    png_bytes = buffer.getvalue()
    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(png_bytes)
    logger.debug("Rendered %s chart with %s points (%s bytes)", chart_type, len(points), len(png_bytes))
    return png_bytes
