"""
Commercial Offer PDF
====================
Renders a commercial proposal (simple-commercial / commercial-with-images).

Layout:
  - Issuer letterhead (logo if configured) + document title banner
  - OFFER # / DATE / VALID UNTIL label-value boxes
  - FROM / TO two-column party block
  - PRODUCTS & SERVICES table, optional IMAGE column, header repeated per page
  - Right-aligned SUMMARY, grand total underlined
  - TERMS & CONDITIONS and NOTES when present
  - Footer "n of N" on every page

Totals are printed as given; nothing here re-derives them.
"""

import os
import logging

from reportlab.lib.utils import ImageReader

from proposaldesk.core.errors import RenderError
from proposaldesk.proposals import pricing
from proposaldesk.proposals import template_types
from proposaldesk.forms.layout import (
    Sheet, summary_rows, na, display_date,
    FILL, LBL_BD, TBL_BD, LIGHT, BLACK, GRAY, NAVY, ALT_ROW,
)

log = logging.getLogger("proposaldesk.forms.commercial")

ROW_FONT = 8.5
LEADING = 10


def _columns(sheet: Sheet, with_images: bool) -> list:
    """(header, x, width) for the items table."""
    ml = sheet.ML
    widths = [("#", 24)]
    if with_images:
        widths += [("IMAGE", 60), ("DESCRIPTION", 151)]
    else:
        widths += [("DESCRIPTION", 211)]
    widths += [("QTY", 40), ("UNIT PRICE", 70), ("DISC %", 48), ("TAX", 40),
               ("LINE TOTAL", 90)]
    cols, x = [], ml
    for name, w in widths:
        cols.append((name, x, w))
        x += w
    return cols


def _col(cols, name):
    for n, x, w in cols:
        if n == name:
            return x, w
    raise KeyError(name)


def _draw_table_header(sheet: Sheet, ty: float, cols) -> float:
    hdr_h = 20
    for name, cx, cw in cols:
        sheet.box(cx, ty, cw, hdr_h, fill=FILL, border_color=TBL_BD)
        sheet.text(cx + 4, ty + 13, name, "Helvetica-Bold", 8.5)
    return ty + hdr_h


def _draw_letterhead(sheet: Sheet, proposal: dict, company: dict, title: str) -> float:
    c = sheet.c
    ml, mr = sheet.ML, sheet.MR

    name_x = ml
    logo_path = company.get("logo_path")
    if logo_path and os.path.exists(logo_path):
        try:
            img = ImageReader(logo_path)
            iw, ih = img.getSize()
            scale = min(110 / iw, 36 / ih)
            dw, dh = iw * scale, ih * scale
            c.drawImage(img, ml, sheet.Y(40) - dh, width=dw, height=dh,
                        preserveAspectRatio=True, mask="auto")
            name_x = ml + dw + 8
        except (OSError, ValueError) as e:
            log.warning("Logo load failed: %s", e)

    sheet.text(name_x, 56, na(company.get("name")), "Helvetica-Bold", 15, NAVY)
    sheet.text(mr, 56, title, "Helvetica-Bold", 16, BLACK, "right")
    sheet.rule(ml, 68, mr, LBL_BD, 1.5)

    # OFFER # / DATE / VALID UNTIL boxes, right column
    by = 76
    for label, value in (
        ("OFFER #", na(proposal.get("proposal_number"))),
        ("DATE", display_date(proposal.get("proposal_date"))),
        ("VALID UNTIL", display_date(proposal.get("valid_until"))),
    ):
        sheet.box(mr - 200, by, 80, 18, fill=FILL, border_color=LBL_BD)
        sheet.text(mr - 196, by + 12.5, label, "Helvetica-Bold", 8.5)
        sheet.box(mr - 120, by, 120, 18, border_color=LBL_BD)
        sheet.text(mr - 5, by + 12.5, value, "Helvetica-Bold", 9, BLACK, "right")
        by += 19

    # issuer contact lines, left column
    iy = 88
    for line in (company.get("address"), company.get("phone"), company.get("email")):
        if line:
            sheet.text(ml, iy, line, "Helvetica", 8.5, GRAY)
            iy += 11
    return max(by, iy) + 12


def _draw_parties(sheet: Sheet, proposal: dict, company: dict, top: float) -> float:
    ml = sheet.ML
    half = sheet.UW / 2
    sheet.text(ml, top + 10, "FROM:", "Helvetica-Bold", 10)
    sheet.text(ml + half, top + 10, "TO:", "Helvetica-Bold", 10)

    from_lines = [na(company.get("name")), company.get("address"),
                  company.get("phone"), company.get("email")]
    to_lines = [na(proposal.get("client_name")), proposal.get("client_company"),
                proposal.get("client_address"), na(proposal.get("client_email"))]

    fy = ty = top + 24
    for line in from_lines:
        if line:
            for wl in sheet.wrap(line, half - 12):
                sheet.text(ml, fy, wl)
                fy += 11
    for line in to_lines:
        if line:
            for wl in sheet.wrap(line, half - 12):
                sheet.text(ml + half, ty, wl)
                ty += 11
    y = max(fy, ty) + 6

    title = proposal.get("proposal_title")
    if title:
        y += 6
        sheet.text(ml, y, "Subject:", "Helvetica-Bold", 10)
        sheet.text(ml + 52, y, title, "Helvetica", 10)
        y += 8
    return y + 6


def _draw_image_cell(sheet: Sheet, img, x, yt, w, h):
    pad = 4
    size = min(w, h) - 2 * pad
    if img is not None:
        try:
            iw, ih = img.getSize()
            scale = min(size / iw, size / ih)
            dw, dh = iw * scale, ih * scale
            sheet.c.drawImage(img, x + (w - dw) / 2, sheet.Y(yt + pad) - dh,
                              width=dw, height=dh, mask="auto")
            return
        except (OSError, ValueError) as e:
            log.warning("Image draw failed: %s", e)
    sheet.box(x + pad, yt + pad, w - 2 * pad, size, fill=ALT_ROW, border_color=GRAY, width=0.3)
    sheet.text(x + w / 2, yt + pad + size / 2 + 3, "No Image", "Helvetica", 7, GRAY, "center")


def _item_lines(sheet: Sheet, item: dict, width: float) -> list:
    """[(text, font)] for the description cell: bold name, then detail lines."""
    lines = [(l, "Helvetica-Bold") for l in sheet.wrap(na(item.get("name")), width,
                                                      "Helvetica-Bold", ROW_FONT)]
    detail = " · ".join(s for s in (item.get("category"), item.get("description")) if s)
    lines += [(l, "Helvetica") for l in sheet.wrap(detail, width, "Helvetica", ROW_FONT - 0.5)]
    return lines


def _draw_items(sheet: Sheet, items, cols, with_images: bool, images: dict, symbol: str):
    desc_x, desc_w = _col(cols, "DESCRIPTION")
    for idx, item in enumerate(items):
        lines = _item_lines(sheet, item, desc_w - 8)
        row_h = max(20, len(lines) * LEADING + 8)
        if with_images:
            row_h = max(row_h, 56)

        sheet.ensure(row_h)
        top = sheet.y

        if idx % 2 == 1:
            sheet.box(sheet.ML, top, sheet.UW, row_h, fill=ALT_ROW, border_color=None)
        for _, cx, cw in cols:
            sheet.box(cx, top, cw, row_h, border_color=TBL_BD, width=0.3)

        base = top + 13
        x, w = _col(cols, "#")
        sheet.text(x + w / 2, base, str(idx + 1), "Helvetica", 9, BLACK, "center")

        if with_images:
            x, w = _col(cols, "IMAGE")
            _draw_image_cell(sheet, images.get(str(item.get("id"))), x, top, w, row_h)

        dy = base
        for line, font in lines:
            sheet.text(desc_x + 4, dy, line, font, ROW_FONT)
            dy += LEADING

        cells = (
            ("QTY", str(item.get("quantity", 0))),
            ("UNIT PRICE", pricing.format_currency(item.get("unit_price", 0), symbol)),
            ("DISC %", pricing.format_percent(item.get("discount", 0))),
            ("TAX", "Yes" if item.get("taxable") else "No"),
            ("LINE TOTAL", pricing.format_currency(item.get("line_total", 0), symbol)),
        )
        for name, value in cells:
            x, w = _col(cols, name)
            if name == "TAX":
                sheet.text(x + w / 2, base, value, "Helvetica", 9, BLACK, "center")
            else:
                sheet.text(x + w - 5, base, value, "Helvetica", 9, BLACK, "right")

        sheet.y = top + row_h


def _draw_summary(sheet: Sheet, rows):
    lbl_w, val_w, row_h = 110, 100, 17
    panel_h = 22 + len(rows) * row_h + 6
    sheet.ensure(panel_h + 12)
    top = sheet.y + 12
    val_x = sheet.MR - val_w
    lbl_x = val_x - lbl_w

    sheet.box(lbl_x, top, lbl_w + val_w, panel_h, fill=LIGHT, border_color=None)
    sheet.text(lbl_x + 6, top + 14, "SUMMARY", "Helvetica-Bold", 10)
    y = top + 22
    for label, value, is_total in rows:
        font = "Helvetica-Bold" if is_total else "Helvetica"
        size = 10.5 if is_total else 9.5
        sheet.text(val_x - 6, y + 12, label, "Helvetica-Bold" if is_total else "Helvetica",
                   size, BLACK, "right")
        sheet.text(sheet.MR - 6, y + 12, value, font, size, BLACK, "right")
        if is_total:
            sheet.rule(val_x + 4, y + 15, sheet.MR - 4, BLACK, 0.8)
        y += row_h
    sheet.y = top + panel_h + 8


def _draw_section(sheet: Sheet, heading: str, body: str):
    if not body:
        return
    sheet.ensure(40)
    sheet.y += 16
    sheet.text(sheet.ML, sheet.y, heading, "Helvetica-Bold", 10.5)
    sheet.y += 2
    sheet.paragraph(sheet.ML, body, sheet.UW, "Helvetica", 9, 11)
    sheet.y += 4


def render_commercial_offer(proposal: dict, items, totals: dict, profile: dict = None,
                            images: dict = None, symbol: str = "$") -> bytes:
    """PDF bytes for a commercial proposal.

    ``items`` is the proposal's product list; ``totals`` comes straight from
    the pricing calculator; ``profile`` supplies letterhead fields the proposal
    snapshot lacks; ``images`` maps item id → ImageReader (or None).
    """
    if items is None:
        raise RenderError("Proposal has no product list to render")
    tpl = template_types.get_template(proposal.get("template_type"))
    if tpl.kind != template_types.COMMERCIAL:
        raise RenderError(f"{tpl.key} is not a commercial template")

    company = dict(profile or {})
    company.update({k: v for k, v in (proposal.get("company_details") or {}).items() if v})
    with_images = tpl.uses_images
    images = images or {}

    number = proposal.get("proposal_number") or ""
    sheet = Sheet(title=f"Commercial Offer {number}".strip(),
                  author=company.get("name") or "")
    sheet.c.footer_left = f"Offer {number}" if number else ""

    top = _draw_letterhead(sheet, proposal, company, tpl.title)
    top = _draw_parties(sheet, proposal, company, top)

    sheet.text(sheet.ML, top + 10, "PRODUCTS & SERVICES", "Helvetica-Bold", 11)
    cols = _columns(sheet, with_images)
    sheet.y = _draw_table_header(sheet, top + 16, cols)
    sheet.page_header = lambda s, y: _draw_table_header(s, y, cols)

    _draw_items(sheet, items, cols, with_images, images, symbol)
    sheet.page_header = None

    _draw_summary(sheet, summary_rows(totals, proposal.get("tax_rate", 0),
                                      tpl.key, symbol))
    _draw_section(sheet, "TERMS & CONDITIONS", proposal.get("terms"))
    _draw_section(sheet, "NOTES", proposal.get("notes"))

    pdf = sheet.finish()
    log.info("Commercial offer %s rendered: %d items, %s total, %d bytes",
             number or "(unnumbered)", len(items),
             pricing.format_currency(totals.get("grand_total", 0), symbol), len(pdf),
             extra={"proposal_number": number, "template_type": tpl.key,
                    "items": len(items)})
    return pdf
