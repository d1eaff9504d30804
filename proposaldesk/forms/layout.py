"""
Shared drawing kit for the PDF renderers, plus the summary rows every
renderer (PDF and HTML preview) prints.

Coordinates follow the pdfplumber convention: ``top`` is measured down from
the top edge of the page; Sheet.Y() converts to reportlab's bottom-origin.
"""

import io
import logging
from datetime import date, datetime

from reportlab.lib.pagesizes import A4
from reportlab.lib.colors import Color, HexColor
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from proposaldesk.proposals import pricing
from proposaldesk.proposals import template_types

log = logging.getLogger("proposaldesk.forms")

# ═══════════════════════════════════════════════════════════════════════════════
# COLORS
# ═══════════════════════════════════════════════════════════════════════════════
FILL    = Color(0.765, 0.765, 0.882)   # #C3C3E0  lavender header fill
LBL_BD  = Color(0.278, 0.278, 0.553)   # #46468D  label cell border
TBL_BD  = Color(0.278, 0.278, 0.553)   # table grid borders
LIGHT   = HexColor("#EEF3FB")          # summary panel
BLACK   = HexColor("#000000")
WHITE   = HexColor("#FFFFFF")
GRAY    = HexColor("#555555")
NAVY    = HexColor("#1a2744")
ALT_ROW = Color(0.96, 0.96, 0.98)      # alternate row

NA = "N/A"

# ═══════════════════════════════════════════════════════════════════════════════
# VALUE FORMATTING
# ═══════════════════════════════════════════════════════════════════════════════


def na(value) -> str:
    """Display string for an optional field."""
    if value is None or str(value).strip() == "":
        return NA
    return str(value)


def display_date(value) -> str:
    """``Oct 18, 2026`` for a date, datetime or ISO string; N/A when absent."""
    if not value:
        return NA
    if isinstance(value, datetime):
        return value.strftime("%b %d, %Y")
    if isinstance(value, date):
        return value.strftime("%b %d, %Y")
    try:
        return datetime.fromisoformat(str(value)[:19]).strftime("%b %d, %Y")
    except ValueError:
        return str(value)


def summary_rows(totals: dict, tax_rate, template_type: str = None,
                 symbol: str = "$") -> list:
    """[(label, value, is_total)]: the one place summary text is formatted.

    Every renderer prints exactly these strings, so the numbers in a PDF and in
    the preview of the same proposal are identical.
    """
    fmt = lambda v: pricing.format_currency(v, symbol)
    rate = pricing.format_percent(tax_rate)
    if template_types.uses_technical_items(template_type):
        return [
            ("Subtotal:", fmt(totals.get("subtotal", 0)), False),
            (f"Tax ({rate}):", fmt(totals.get("tax_amount", 0)), False),
            ("Grand Total:", fmt(totals.get("grand_total", 0)), True),
        ]
    return [
        ("Subtotal:", fmt(totals.get("subtotal", 0)), False),
        ("Discount:", "-" + fmt(totals.get("total_discount", 0)), False),
        (f"Tax ({rate}):", fmt(totals.get("tax_amount", 0)), False),
        ("Total:", fmt(totals.get("grand_total", 0)), True),
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# CANVAS
# ═══════════════════════════════════════════════════════════════════════════════

class NumberedCanvas(canvas.Canvas):
    """Canvas that holds pages back until save() so each footer can read "n of N"."""

    def __init__(self, *args, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_pages = []
        self.footer_left = ""

    def showPage(self):
        self._saved_pages.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_pages)
        for state in self._saved_pages:
            self.__dict__.update(state)
            self._draw_footer(total)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_footer(self, total: int):
        w, _ = self._pagesize
        self.setFillColor(GRAY)
        self.setFont("Helvetica", 8)
        if self.footer_left:
            self.drawString(36, 20, self.footer_left)
        self.drawRightString(w - 36, 20, f"{self._pageNumber} of {total}")


class Sheet:
    """A4 page cursor with the box/text helpers the renderers draw with."""

    ML = 36
    TOP = 40
    BOTTOM = 60

    def __init__(self, title: str = "", author: str = "", pagesize=A4):
        self.buf = io.BytesIO()
        self.c = NumberedCanvas(self.buf, pagesize=pagesize)
        self.W, self.H = pagesize
        self.MR = self.W - self.ML
        self.UW = self.MR - self.ML
        if title:
            self.c.setTitle(title)
        if author:
            self.c.setAuthor(author)
        self.page_header = None   # callable(sheet, top) → new top
        self.y = self.TOP

    # pdfplumber y = from top; reportlab y = from bottom
    def Y(self, top_y):
        return self.H - top_y

    def box(self, x, yt, w, h, fill=None, border_color=TBL_BD, width=0.5):
        rl_y = self.Y(yt) - h
        if fill is not None:
            self.c.setFillColor(fill)
            self.c.rect(x, rl_y, w, h, fill=1, stroke=0)
        if border_color is not None:
            self.c.setStrokeColor(border_color)
            self.c.setLineWidth(width)
            self.c.rect(x, rl_y, w, h, fill=0, stroke=1)
        return rl_y

    def text(self, x, yt, txt, font="Helvetica", size=9, color=BLACK, align="left"):
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        s = str(txt) if txt is not None else ""
        rl_y = self.Y(yt)
        if align == "right":
            self.c.drawRightString(x, rl_y, s)
        elif align == "center":
            self.c.drawCentredString(x, rl_y, s)
        else:
            self.c.drawString(x, rl_y, s)

    def rule(self, x1, yt, x2, color=LBL_BD, width=1.0):
        self.c.setStrokeColor(color)
        self.c.setLineWidth(width)
        self.c.line(x1, self.Y(yt), x2, self.Y(yt))

    def wrap(self, txt, width, font="Helvetica", size=9) -> list:
        if not txt:
            return []
        lines = []
        for para in str(txt).splitlines() or [""]:
            lines.extend(simpleSplit(para, font, size, width) or [""])
        return lines

    def paragraph(self, x, txt, width, font="Helvetica", size=9, leading=11):
        """Wrapped text at the cursor, breaking pages as needed."""
        for line in self.wrap(txt, width, font, size):
            self.ensure(leading)
            self.y += leading
            self.text(x, self.y, line, font, size)

    def ensure(self, needed: float) -> bool:
        """Start a new page when ``needed`` points don't fit. True if it broke."""
        if self.Y(self.y) - needed >= self.BOTTOM:
            return False
        self.new_page()
        return True

    def new_page(self):
        self.c.showPage()
        self.y = self.TOP
        if self.page_header:
            self.y = self.page_header(self, self.y)

    def finish(self) -> bytes:
        self.c.showPage()
        self.c.save()
        return self.buf.getvalue()
