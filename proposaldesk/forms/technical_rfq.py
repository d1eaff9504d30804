"""
Technical RFQ PDF
=================
Renders a technical request-for-quotation response (technical-rfq /
technical-with-images) on landscape A4.

Layout:
  - Letterhead: company name, address, Phone, Email, Bank Account, MFO,
    Tax ID, OKED (empty lines omitted)
  - Document reference "No. <document_number>", centred title
  - Date / To lines
  - Wide items table: No., upper-cased description, material PO text
    (technical text; OEM/MAKE; P/N), unit, quantity, will-be-supplied text,
    numbered specification list, PHOTO
  - SUMMARY (subtotal / tax / grand total)
  - NOTES: payment terms, delivery time, incoterms
  - Signature block with rule line
  - Footer: generation timestamp, document id, "n of N"
"""

import logging
from datetime import datetime

from reportlab.lib.pagesizes import A4, landscape

from proposaldesk.core import config
from proposaldesk.core.errors import RenderError
from proposaldesk.proposals import pricing
from proposaldesk.proposals import template_types
from proposaldesk.forms.layout import (
    Sheet, summary_rows, na, display_date,
    FILL, LBL_BD, TBL_BD, BLACK, GRAY, NAVY, ALT_ROW,
)

log = logging.getLogger("proposaldesk.forms.technical")

ROW_FONT = 8
LEADING = 9.5
HDR_H = 30

COLUMNS = [
    ("No.", 24),
    ("Technical Description of Requested Item", 110),
    ("Material PO Text", 170),
    ("Unit", 40),
    ("Quantity Requested", 50),
    ("Will be Supplied", 130),
    ("Specifications", 170),
    ("PHOTO", 76),
]


# ═══════════════════════════════════════════════════════════════════════════════
# ROW TEXT
# ═══════════════════════════════════════════════════════════════════════════════

def material_text(item: dict) -> str:
    """``<technical text>; OEM/MAKE: <manufacturer>; P/N: <part number>``"""
    text = item.get("technical_description") or item.get("description") or ""
    if item.get("manufacturer"):
        text += f"; OEM/MAKE: {item['manufacturer']}"
    if item.get("part_number"):
        text += f"; P/N: {item['part_number']}"
    return text.lstrip("; ")


def numbered_specs(item: dict) -> list:
    """Non-blank specifications as ``1. ...``, ``2. ...``."""
    specs = [s for s in (item.get("specifications") or []) if str(s).strip()]
    return [f"{n}. {s}" for n, s in enumerate(specs, 1)]


def row_cells(item: dict, index: int) -> list:
    """Cell text per column, in COLUMNS order (PHOTO left empty)."""
    description = item.get("description") or item.get("name") or ""
    return [
        str(index),
        description.upper(),
        material_text(item),
        item.get("unit") or "each",
        str(1 if item.get("quantity") is None else item["quantity"]),
        item.get("will_be_supplied") or description,
        "\n".join(numbered_specs(item)),
        "",
    ]


def letterhead_lines(company: dict) -> list:
    labelled = (
        ("Phone", "phone"), ("Email", "email"), ("Bank Account", "bank_account"),
        ("MFO", "routing_code"), ("Tax ID", "tax_id"), ("OKED", "classification_code"),
    )
    lines = [company["address"]] if company.get("address") else []
    lines += [f"{label}: {company[key]}" for label, key in labelled if company.get(key)]
    return lines


def notes_lines(terms: dict) -> list:
    return [
        f"1. Terms of payment: {na(terms.get('payment_terms'))}",
        f"2. Estimated delivery time: {na(terms.get('delivery_time'))}",
        f"3. Terms of delivery: {na(terms.get('incoterms'))}",
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# DRAWING
# ═══════════════════════════════════════════════════════════════════════════════

def _cols(sheet: Sheet) -> list:
    cols, x = [], sheet.ML
    for name, w in COLUMNS:
        cols.append((name, x, w))
        x += w
    return cols


def _draw_table_header(sheet: Sheet, ty: float, cols) -> float:
    for name, cx, cw in cols:
        sheet.box(cx, ty, cw, HDR_H, fill=FILL, border_color=TBL_BD)
        lines = sheet.wrap(name, cw - 6, "Helvetica-Bold", 7.5)[:2]
        ly = ty + (HDR_H - len(lines) * 9) / 2 + 7.5
        for line in lines:
            sheet.text(cx + cw / 2, ly, line, "Helvetica-Bold", 7.5, BLACK, "center")
            ly += 9
    return ty + HDR_H


def _draw_photo(sheet: Sheet, img, x, yt, w, h):
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
            log.warning("Photo draw failed: %s", e)
    sheet.box(x + pad, yt + pad, w - 2 * pad, size, fill=ALT_ROW, border_color=GRAY, width=0.3)
    sheet.text(x + w / 2, yt + pad + size / 2 + 3, "No Image", "Helvetica", 7, GRAY, "center")


def _draw_items(sheet: Sheet, items, cols, with_images: bool, images: dict):
    for idx, item in enumerate(items, 1):
        cells = row_cells(item, idx)
        wrapped = []
        for (name, cx, cw), value in zip(cols, cells):
            font = "Helvetica-Bold" if name in ("No.", COLUMNS[1][0]) else "Helvetica"
            wrapped.append((sheet.wrap(value, cw - 6, font, ROW_FONT), font))
        row_h = max(22, max(len(lines) for lines, _ in wrapped) * LEADING + 8)
        if with_images:
            row_h = max(row_h, 72)

        sheet.ensure(row_h)
        top = sheet.y
        if idx % 2 == 0:
            sheet.box(sheet.ML, top, sheet.UW, row_h, fill=ALT_ROW, border_color=None)
        for _, cx, cw in cols:
            sheet.box(cx, top, cw, row_h, border_color=TBL_BD, width=0.3)

        for (name, cx, cw), (lines, font) in zip(cols, wrapped):
            centred = name in ("No.", "Unit", "Quantity Requested")
            ly = top + 11
            for line in lines:
                if centred:
                    sheet.text(cx + cw / 2, ly, line, font, ROW_FONT, BLACK, "center")
                else:
                    sheet.text(cx + 3, ly, line, font, ROW_FONT)
                ly += LEADING

        if with_images:
            _, px, pw = cols[-1]
            _draw_photo(sheet, images.get(str(item.get("id"))), px, top, pw, row_h)
        sheet.y = top + row_h


def _draw_summary(sheet: Sheet, rows):
    row_h = 16
    sheet.ensure(24 + len(rows) * row_h)
    sheet.y += 16
    sheet.text(sheet.ML, sheet.y, "SUMMARY", "Helvetica-Bold", 10)
    sheet.y += 4
    for label, value, is_total in rows:
        font = "Helvetica-Bold"
        sheet.y += row_h
        sheet.text(sheet.ML, sheet.y, label, font, 9)
        sheet.text(sheet.ML + 200, sheet.y, value, font, 10 if is_total else 9,
                   BLACK, "right")
        if is_total:
            sheet.rule(sheet.ML + 110, sheet.y + 3, sheet.ML + 200, BLACK, 0.8)


def _draw_notes_and_signature(sheet: Sheet, terms: dict, signatory: dict):
    sheet.ensure(120)
    sheet.y += 22
    sheet.text(sheet.ML, sheet.y, "NOTES:", "Helvetica-Bold", 10)
    sheet.y += 4
    for line in notes_lines(terms):
        sheet.y += 14
        sheet.text(sheet.ML, sheet.y, line, "Helvetica", 9.5)

    sheet.y += 40
    sheet.text(sheet.ML, sheet.y, signatory.get("title") or "", "Helvetica", 10)
    sheet.rule(sheet.ML + 150, sheet.y + 2, sheet.ML + 300, BLACK, 0.5)
    sheet.y += 14
    sheet.text(sheet.ML, sheet.y, signatory.get("name") or "", "Helvetica-Bold", 10)


def render_technical_rfq(proposal: dict, items, totals: dict, profile: dict = None,
                         images: dict = None, symbol: str = "$",
                         generated_at: datetime = None) -> bytes:
    """PDF bytes for a technical RFQ response.

    Letterhead, delivery terms and signatory fall back to ``profile`` (the
    configured default company when omitted) for whatever the proposal lacks.
    """
    if items is None:
        raise RenderError("Proposal has no RFQ item list to render")
    tpl = template_types.get_template(proposal.get("template_type"))
    if tpl.kind != template_types.TECHNICAL:
        raise RenderError(f"{tpl.key} is not a technical template")

    profile = profile or config.get_company_profile(config.load_config())
    filled = config.apply_company_profile(proposal, profile)
    company = filled["company_details"]
    images = images or {}
    generated_at = generated_at or datetime.now()

    doc_number = proposal.get("document_number") or ""
    doc_id = proposal.get("id") or doc_number or "N/A"
    sheet = Sheet(title=f"RFQ {doc_number}".strip(), author=company.get("name") or "",
                  pagesize=landscape(A4))
    sheet.c.footer_left = (f"Generated on {generated_at.strftime('%d/%m/%Y at %H:%M:%S')}"
                           f"  |  Document ID: {doc_id}")

    # letterhead
    y = sheet.TOP + 8
    sheet.text(sheet.ML, y, na(company.get("name")), "Helvetica-Bold", 14, NAVY)
    y += 4
    for line in letterhead_lines(company):
        y += 11
        sheet.text(sheet.ML, y, line, "Helvetica", 8.5)
    y += 8
    sheet.rule(sheet.ML, y, sheet.MR, LBL_BD, 1.2)

    y += 18
    sheet.text(sheet.ML, y, f"No. {na(doc_number)}", "Helvetica-Bold", 12)
    y += 20
    sheet.text(sheet.W / 2, y, tpl.title, "Helvetica-Bold", 14, NAVY, "center")
    y += 20
    sheet.text(sheet.ML, y, f"Date: {display_date(proposal.get('proposal_date'))}",
               "Helvetica", 10)
    y += 13
    sheet.text(sheet.ML, y, f"To: {na(proposal.get('client_name'))}", "Helvetica", 10)
    y += 14

    cols = _cols(sheet)
    sheet.y = _draw_table_header(sheet, y, cols)
    sheet.page_header = lambda s, top: _draw_table_header(s, top, cols)
    _draw_items(sheet, items, cols, tpl.uses_images, images)
    sheet.page_header = None

    _draw_summary(sheet, summary_rows(totals, proposal.get("tax_rate", 0), tpl.key, symbol))
    _draw_notes_and_signature(sheet, filled["delivery_terms"], filled["authorized_signatory"])

    pdf = sheet.finish()
    log.info("Technical RFQ %s rendered: %d items, %s total, %d bytes",
             doc_number or "(no number)", len(items),
             pricing.format_currency(totals.get("grand_total", 0), symbol), len(pdf),
             extra={"proposal_id": proposal.get("id"), "template_type": tpl.key,
                    "items": len(items)})
    return pdf
