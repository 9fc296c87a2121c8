"""
document.py — In-memory paginated document and its PDF serialisation.

The renderer never talks to ReportLab directly. It records draw operations
on ``Page`` objects (millimetres, origin top-left, y growing downwards, text
y is the baseline) and only ``Document.to_pdf`` turns them into canvas calls.
Keeping layout and serialisation apart lets tests inspect pages, sections
and text without parsing PDF bytes, and lets the footer pass run after the
total page count is known.
"""

import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from core.errors import RenderDegraded

PAGE_WIDTH = 210.0
PAGE_HEIGHT = 297.0
MARGIN = 15.0
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


@dataclass(frozen=True)
class DrawOp:
    kind: str
    args: Tuple[float, ...] = ()
    fill: Optional[str] = None
    stroke: Optional[str] = None
    line_width: float = 0.0
    text: Optional[str] = None
    font: str = FONT_REGULAR
    size: float = 10.0
    align: str = "left"


@dataclass(frozen=True)
class Section:
    """One logical block of the document (header, summary, chart, table...)."""
    kind: str
    id: str
    title: str
    page: int
    empty: bool = False


class Page:
    def __init__(self, number: int):
        self.number = number
        self.ops: List[DrawOp] = []

    def rect(self, x, y, w, h, fill=None, stroke=None, line_width=0.2):
        self.ops.append(DrawOp("rect", (x, y, w, h), fill=fill, stroke=stroke, line_width=line_width))

    def round_rect(self, x, y, w, h, radius, fill=None):
        radius = max(0.0, min(radius, w / 2, h / 2))
        self.ops.append(DrawOp("round_rect", (x, y, w, h, radius), fill=fill))

    def text(self, x, y, value, size=10.0, bold=False, color="#333333", align="left"):
        self.ops.append(DrawOp(
            "text", (x, y), fill=color, text=str(value),
            font=FONT_BOLD if bold else FONT_REGULAR, size=size, align=align,
        ))

    def line(self, x1, y1, x2, y2, color="#e6e6e6", width=0.2):
        self.ops.append(DrawOp("line", (x1, y1, x2, y2), stroke=color, line_width=width))

    def circle(self, x, y, radius, fill):
        self.ops.append(DrawOp("circle", (x, y, radius), fill=fill))

    def wedge(self, cx, cy, radius, start_deg, extent_deg, fill):
        """Pie slice; angles in degrees, counter-clockwise from 3 o'clock."""
        self.ops.append(DrawOp("wedge", (cx, cy, radius, start_deg, extent_deg), fill=fill, stroke="#ffffff", line_width=0.3))

    def texts(self) -> List[str]:
        return [op.text for op in self.ops if op.kind == "text"]


@dataclass
class Document:
    title: str
    author: str = ""
    pages: List[Page] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)
    notices: List[RenderDegraded] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def section_ids(self, kind: Optional[str] = None) -> List[str]:
        return [s.id for s in self.sections if kind is None or s.kind == kind]

    def text_content(self) -> str:
        return "\n".join(t for page in self.pages for t in page.texts())

    def outline(self) -> Dict[str, Any]:
        """JSON-friendly summary used by the preview endpoint."""
        return {
            "title": self.title,
            "author": self.author,
            "page_count": self.page_count,
            "sections": [
                {"kind": s.kind, "id": s.id, "title": s.title, "page": s.page, "empty": s.empty}
                for s in self.sections
            ],
            "notices": [n.to_dict() for n in self.notices],
        }

    def to_pdf(self) -> bytes:
        """Serialise to PDF bytes; identical documents give identical bytes."""
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=A4, invariant=1)
        c.setTitle(self.title)
        c.setAuthor(self.author)
        c.setCreator("ReportFlow")
        for page in self.pages:
            for op in page.ops:
                _draw(c, op)
            c.showPage()
        c.save()
        return buf.getvalue()


def stamp_footers(pages: List[Page], generated_on: str):
    """Second pass: 'Page i of N' needs the final page count."""
    total = len(pages)
    for page in pages:
        page.text(
            PAGE_WIDTH / 2, PAGE_HEIGHT - 10,
            f"Page {page.number} of {total} | Generated on {generated_on}",
            size=8, color="#969696", align="center",
        )


# ── Canvas serialisation ────────────────────────────────────────────

def _x(value: float) -> float:
    return value * mm


def _y(value: float) -> float:
    return (PAGE_HEIGHT - value) * mm


def _apply_colors(c, op: DrawOp):
    if op.fill:
        c.setFillColor(colors.HexColor(op.fill))
    if op.stroke:
        c.setStrokeColor(colors.HexColor(op.stroke))
        c.setLineWidth(op.line_width * mm)


def _draw(c, op: DrawOp):
    c.saveState()
    _apply_colors(c, op)
    stroke = 1 if op.stroke else 0
    fill = 1 if op.fill else 0

    if op.kind == "rect":
        x, y, w, h = op.args
        c.rect(_x(x), _y(y + h), w * mm, h * mm, stroke=stroke, fill=fill)
    elif op.kind == "round_rect":
        x, y, w, h, r = op.args
        c.roundRect(_x(x), _y(y + h), w * mm, h * mm, r * mm, stroke=0, fill=fill)
    elif op.kind == "text":
        x, y = op.args
        c.setFont(op.font, op.size)
        if op.align == "center":
            c.drawCentredString(_x(x), _y(y), op.text)
        elif op.align == "right":
            c.drawRightString(_x(x), _y(y), op.text)
        else:
            c.drawString(_x(x), _y(y), op.text)
    elif op.kind == "line":
        x1, y1, x2, y2 = op.args
        c.line(_x(x1), _y(y1), _x(x2), _y(y2))
    elif op.kind == "circle":
        x, y, r = op.args
        c.circle(_x(x), _y(y), r * mm, stroke=0, fill=fill)
    elif op.kind == "wedge":
        cx, cy, r, start, extent = op.args
        c.wedge(_x(cx) - r * mm, _y(cy) - r * mm, _x(cx) + r * mm, _y(cy) + r * mm,
                start, extent, stroke=stroke, fill=fill)
    else:
        raise ValueError(f"Unknown draw operation: {op.kind}")
    c.restoreState()
