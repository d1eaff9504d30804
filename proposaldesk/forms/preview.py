"""
HTML preview: on-screen review / print path for either document layout.

Builds an HTML fragment from the same (proposal, items, totals) the PDF
renderers take. Summary values come from layout.summary_rows(), so the preview
and the PDF show identical strings.
"""

import logging
from html import escape

from proposaldesk.core import config
from proposaldesk.core.errors import RenderError
from proposaldesk.proposals import pricing
from proposaldesk.proposals import template_types
from proposaldesk.forms.layout import summary_rows, na, display_date
from proposaldesk.forms.technical_rfq import (
    COLUMNS as RFQ_COLUMNS, row_cells, letterhead_lines, notes_lines, numbered_specs,
)

log = logging.getLogger("proposaldesk.forms.preview")

_STYLE = """<style>
.pd-doc{font-family:'Segoe UI',Arial,sans-serif;font-size:13px;color:#111;max-width:1100px;margin:0 auto}
.pd-doc h1{font-size:20px;margin:8px 0;color:#1a2744}
.pd-doc table.pd-items{width:100%;border-collapse:collapse;margin-top:8px}
.pd-doc table.pd-items th{background:#C3C3E0;border:1px solid #46468D;padding:4px 6px;font-size:11px}
.pd-doc table.pd-items td{border:1px solid #c8c8dc;padding:4px 6px;vertical-align:top}
.pd-doc table.pd-items tr:nth-child(even) td{background:#f5f5fa}
.pd-doc .num{text-align:right;white-space:nowrap}
.pd-doc .pd-summary{margin-left:auto;width:300px;background:#EEF3FB;padding:8px 12px;margin-top:12px}
.pd-doc .pd-summary div{display:flex;justify-content:space-between;padding:2px 0}
.pd-doc .pd-summary .pd-total{font-weight:700;border-bottom:2px solid #111}
.pd-doc .pd-noimg{width:56px;height:56px;border:1px solid #999;background:#f5f5fa;font-size:9px;color:#555;display:flex;align-items:center;justify-content:center}
.pd-doc img.pd-thumb{max-width:64px;max-height:64px}
@media print{.pd-doc{max-width:none}}
</style>"""


def _e(value) -> str:
    return escape(str(value if value is not None else ""))


def _image_cell(item: dict) -> str:
    url = item.get("image_url")
    if url:
        return f'<img class="pd-thumb" src="{_e(url)}" alt="{_e(item.get("name") or "")}">'
    return '<div class="pd-noimg">No Image</div>'


def _summary_html(rows) -> str:
    lines = []
    for label, value, is_total in rows:
        cls = ' class="pd-total"' if is_total else ""
        lines.append(f"<div{cls}><span>{_e(label)}</span><span>{_e(value)}</span></div>")
    return '<div class="pd-summary"><strong>SUMMARY</strong>' + "".join(lines) + "</div>"


def _section(heading: str, body) -> str:
    if not body:
        return ""
    text = _e(body).replace("\n", "<br>")
    return f"<h3>{_e(heading)}</h3><p>{text}</p>"


# ═══════════════════════════════════════════════════════════════════════════════
# COMMERCIAL
# ═══════════════════════════════════════════════════════════════════════════════

def _commercial_html(proposal, items, totals, company, tpl, symbol) -> str:
    img_th = "<th>IMAGE</th>" if tpl.uses_images else ""
    rows = ""
    for n, item in enumerate(items, 1):
        img_td = f"<td>{_image_cell(item)}</td>" if tpl.uses_images else ""
        detail = " · ".join(_e(s) for s in (item.get("category"), item.get("description")) if s)
        rows += (
            f"<tr><td>{n}</td>{img_td}"
            f"<td><strong>{_e(na(item.get('name')))}</strong>"
            f"{'<br><small>' + detail + '</small>' if detail else ''}</td>"
            f"<td class=\"num\">{_e(item.get('quantity', 0))}</td>"
            f"<td class=\"num\">{_e(pricing.format_currency(item.get('unit_price', 0), symbol))}</td>"
            f"<td class=\"num\">{_e(pricing.format_percent(item.get('discount', 0)))}</td>"
            f"<td>{'Yes' if item.get('taxable') else 'No'}</td>"
            f"<td class=\"num\">{_e(pricing.format_currency(item.get('line_total', 0), symbol))}</td>"
            "</tr>"
        )

    from_lines = "<br>".join(_e(l) for l in (na(company.get("name")), company.get("address"),
                                             company.get("phone"), company.get("email")) if l)
    to_lines = "<br>".join(_e(l) for l in (na(proposal.get("client_name")),
                                           proposal.get("client_company"),
                                           proposal.get("client_address"),
                                           na(proposal.get("client_email"))) if l)
    subject = (f"<p><strong>Subject:</strong> {_e(proposal['proposal_title'])}</p>"
               if proposal.get("proposal_title") else "")

    return f"""<div class="pd-doc pd-commercial" data-template="{_e(tpl.key)}">
 <div style="display:flex;justify-content:space-between;align-items:flex-start">
  <div><h2 style="margin:0;color:#1a2744">{_e(na(company.get('name')))}</h2></div>
  <div style="text-align:right">
   <h1>{_e(tpl.title)}</h1>
   <div><strong>Offer #:</strong> {_e(na(proposal.get('proposal_number')))}</div>
   <div><strong>Date:</strong> {_e(display_date(proposal.get('proposal_date')))}</div>
   <div><strong>Valid Until:</strong> {_e(display_date(proposal.get('valid_until')))}</div>
  </div>
 </div>
 <div style="display:flex;gap:32px;margin-top:12px">
  <div style="flex:1"><strong>FROM:</strong><br>{from_lines}</div>
  <div style="flex:1"><strong>TO:</strong><br>{to_lines}</div>
 </div>
 {subject}
 <h3>PRODUCTS &amp; SERVICES</h3>
 <table class="pd-items">
  <thead><tr><th>#</th>{img_th}<th>DESCRIPTION</th><th>QTY</th><th>UNIT PRICE</th>
   <th>DISC %</th><th>TAX</th><th>LINE TOTAL</th></tr></thead>
  <tbody>{rows}</tbody>
 </table>
 {_summary_html(summary_rows(totals, proposal.get('tax_rate', 0), tpl.key, symbol))}
 {_section('TERMS & CONDITIONS', proposal.get('terms'))}
 {_section('NOTES', proposal.get('notes'))}
</div>"""


# ═══════════════════════════════════════════════════════════════════════════════
# TECHNICAL
# ═══════════════════════════════════════════════════════════════════════════════

def _technical_html(proposal, items, totals, profile, tpl, symbol) -> str:
    filled = config.apply_company_profile(proposal, profile)
    company = filled["company_details"]
    signatory = filled["authorized_signatory"]

    head = "".join(f"<th>{_e(name)}</th>" for name, _ in RFQ_COLUMNS)
    rows = ""
    for n, item in enumerate(items, 1):
        cells = row_cells(item, n)
        tds = [f"<td>{_e(v)}</td>" for v in cells[:6]]
        specs = numbered_specs(item)
        tds.append("<td>" + "<br>".join(_e(s) for s in specs) + "</td>")
        tds.append(f"<td>{_image_cell(item) if tpl.uses_images else ''}</td>")
        rows += "<tr>" + "".join(tds) + "</tr>"

    letterhead = "<br>".join(_e(l) for l in letterhead_lines(company))
    notes = "<br>".join(_e(l) for l in notes_lines(filled["delivery_terms"]))

    return f"""<div class="pd-doc pd-technical" data-template="{_e(tpl.key)}">
 <h2 style="margin:0;color:#1a2744">{_e(na(company.get('name')))}</h2>
 <div style="font-size:12px">{letterhead}</div>
 <hr>
 <div><strong>№{_e(na(proposal.get('document_number')))}</strong></div>
 <h1 style="text-align:center">{_e(tpl.title)}</h1>
 <div>Date: {_e(display_date(proposal.get('proposal_date')))}</div>
 <div>To: {_e(na(proposal.get('client_name')))}</div>
 <table class="pd-items">
  <thead><tr>{head}</tr></thead>
  <tbody>{rows}</tbody>
 </table>
 {_summary_html(summary_rows(totals, proposal.get('tax_rate', 0), tpl.key, symbol))}
 <h3>NOTES:</h3>
 <p>{notes}</p>
 <div style="margin-top:32px">
  <span>{_e(signatory.get('title') or '')}</span>
  <span style="display:inline-block;width:180px;border-bottom:1px solid #000;margin-left:24px"></span>
  <div><strong>{_e(signatory.get('name') or '')}</strong></div>
 </div>
</div>"""


def render_preview(proposal: dict, items, totals: dict, profile: dict = None,
                   symbol: str = "$", standalone: bool = False) -> str:
    """HTML for either layout. ``standalone`` wraps it in a printable page."""
    if items is None:
        raise RenderError("Proposal has no item list to preview")
    tpl = template_types.get_template(proposal.get("template_type"))

    if tpl.kind == template_types.TECHNICAL:
        profile = profile or config.get_company_profile(config.load_config())
        body = _technical_html(proposal, items, totals, profile, tpl, symbol)
    else:
        company = dict(profile or {})
        company.update({k: v for k, v in (proposal.get("company_details") or {}).items() if v})
        body = _commercial_html(proposal, items, totals, company, tpl, symbol)

    html = _STYLE + body
    if standalone:
        title = proposal.get("proposal_number") or proposal.get("document_number") or "Preview"
        html = (f"<!doctype html><html><head><meta charset=\"utf-8\">"
                f"<title>{_e(title)}</title></head><body>{html}</body></html>")
    log.debug("Preview rendered for %s (%s, %d items)",
              proposal.get("proposal_number") or proposal.get("id"), tpl.key, len(items))
    return html
