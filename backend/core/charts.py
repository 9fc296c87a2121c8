"""
charts.py — Vector chart primitives drawn straight onto a document page.

Each drawer fills one chart card (x, y, width, height in mm) and returns
True when data was drawn, False when the "No data available" placeholder
was used instead. The card footprint is identical either way so the page
layout never depends on the data.
"""

from typing import Sequence

from core.document import Page
from core.envelope import ChartPoint
from core.grading import round_half_up

CARD_FILL = "#f8fafc"
TITLE_COLOR = "#333333"
MUTED = "#808080"
LABEL_COLOR = "#646464"

BAR_LABEL_MAX = 8

PIE_PALETTE = ["#16a34a", "#ef4444", "#0ea5e9", "#eab308", "#f59e0b", "#a855f7", "#14b8a6", "#64748b"]


def _title(page: Page, x, y, width, title):
    page.text(x + width / 2, y + 9, title, size=11, bold=True, color=TITLE_COLOR, align="center")


def _placeholder(page: Page, x, y, width, height):
    page.text(x + width / 2, y + height / 2 + 3, "No data available", size=9, color=MUTED, align="center")


def _short(label: str, limit: int) -> str:
    return label if len(label) <= limit else label[:limit]


def _fmt_value(value: float) -> str:
    return str(round_half_up(value))


def draw_card(page: Page, x, y, width, height):
    page.round_rect(x, y, width, height, 3, fill=CARD_FILL)


# ── Bar ─────────────────────────────────────────────────────────────

def draw_bar_chart(page: Page, points: Sequence[ChartPoint], x, y, width, height,
                   title: str, color: str = "#3b82f6") -> bool:
    """Bars scaled to the series maximum (floor 1), value above, label below."""
    _title(page, x, y, width, title)
    if not points:
        _placeholder(page, x, y, width, height)
        return False

    padding = 10.0
    plot_top = y + 20
    plot_bottom = y + height - 10
    plot_height = plot_bottom - plot_top
    chart_width = width - padding * 2
    count = len(points)
    gap = min(5.0, chart_width / (count * 3))
    bar_width = (chart_width - (count - 1) * gap) / count
    max_value = max(max(p.value for p in points), 1)

    for i, point in enumerate(points):
        bar_height = max(point.value, 0) / max_value * plot_height
        bar_x = x + padding + i * (bar_width + gap)
        bar_y = plot_bottom - bar_height
        if bar_height > 0:
            page.round_rect(bar_x, bar_y, bar_width, bar_height, 1.5, fill=color)
        page.text(bar_x + bar_width / 2, bar_y - 1.5, _fmt_value(point.value),
                  size=7, bold=True, color=TITLE_COLOR, align="center")
        page.text(bar_x + bar_width / 2, y + height - 4, _short(point.label, BAR_LABEL_MAX),
                  size=6, color=LABEL_COLOR, align="center")
    return True


# ── Pie ─────────────────────────────────────────────────────────────

def draw_pie_chart(page: Page, points: Sequence[ChartPoint], x, y, width, height, title: str) -> bool:
    """
    Proportional slices with a side legend of non-zero entries.

    Zero (and negative) entries are skipped; when nothing positive remains
    the empty-state message is drawn instead of a degenerate pie.
    """
    _title(page, x, y, width, title)
    slices = [
        (p, p.color or PIE_PALETTE[i % len(PIE_PALETTE)])
        for i, p in enumerate(points)
        if p.value > 0
    ]
    total = sum(p.value for p, _ in slices)
    if total <= 0:
        _placeholder(page, x, y, width, height)
        return False

    cx = x + width * 0.3
    cy = y + height / 2 + 5
    radius = min(width * 0.6, height) / 2 - 12

    if len(slices) == 1:
        page.circle(cx, cy, radius, fill=slices[0][1])
    else:
        start = 90.0
        for point, fill in slices:
            extent = point.value / total * 360.0
            # Clockwise from 12 o'clock.
            page.wedge(cx, cy, radius, start - extent, extent, fill=fill)
            start -= extent

    legend_x = x + width * 0.6
    legend_y = y + 18
    max_rows = int((height - 22) // 5)
    shown = slices if len(slices) <= max_rows else slices[:max_rows - 1]
    for i, (point, fill) in enumerate(shown):
        row_y = legend_y + i * 5
        page.rect(legend_x, row_y, 3, 3, fill=fill)
        share = point.value / total * 100
        page.text(legend_x + 4.5, row_y + 2.6, f"{_short(point.label, 14)} ({share:.1f}%)",
                  size=6, color="#505050")
    if len(shown) < len(slices):
        page.text(legend_x + 4.5, legend_y + len(shown) * 5 + 2.6,
                  f"+{len(slices) - len(shown)} more", size=6, color=MUTED)
    return True


# ── Line ────────────────────────────────────────────────────────────

def draw_line_chart(page: Page, points: Sequence[ChartPoint], x, y, width, height,
                    title: str, color: str = "#8b5cf6") -> bool:
    """Polyline over a 4-interval grid spanning the observed min/max."""
    _title(page, x, y, width, title)
    if not points:
        _placeholder(page, x, y, width, height)
        return False

    padding = 15.0
    plot_top = y + 20
    plot_bottom = y + height - 12
    plot_height = plot_bottom - plot_top
    chart_width = width - padding * 2
    values = [p.value for p in points]
    max_value = max(max(values), 1)
    min_value = min(min(values), 0)
    value_range = (max_value - min_value) or 1
    step_x = chart_width / ((len(points) - 1) or 1)

    for i in range(5):
        grid_y = plot_top + plot_height * i / 4
        page.line(x + padding, grid_y, x + width - padding, grid_y, color="#e6e6e6", width=0.2)
        tick = max_value - value_range * i / 4
        page.text(x + padding - 1.5, grid_y + 1, _fmt_value(tick), size=5, color=MUTED, align="right")

    coords = [
        (x + padding + i * step_x, plot_bottom - (p.value - min_value) / value_range * plot_height)
        for i, p in enumerate(points)
    ]
    for (x1, y1), (x2, y2) in zip(coords, coords[1:]):
        page.line(x1, y1, x2, y2, color=color, width=0.6)

    for (px, py), point in zip(coords, points):
        page.circle(px, py, 1.2, fill=color)
        page.text(px, py - 2.5, _fmt_value(point.value), size=6, bold=True, color=TITLE_COLOR, align="center")
        page.text(px, y + height - 5, _short(point.label, BAR_LABEL_MAX), size=6, color=LABEL_COLOR, align="center")
    return True


DRAWERS = {
    "bar": draw_bar_chart,
    "pie": draw_pie_chart,
    "line": draw_line_chart,
}
