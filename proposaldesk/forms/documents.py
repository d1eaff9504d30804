"""
Renderer dispatch and output naming.

Each template kind maps to exactly one PDF renderer; the preview renderer
handles every kind. Callers get back (content, filename) and decide what to do
with it (stream it, save it under OUTPUT_DIR, ...).
"""

import re
import logging

from proposaldesk.core import config
from proposaldesk.core.errors import RenderError
from proposaldesk.proposals import pricing
from proposaldesk.proposals import template_types
from proposaldesk.proposals.template_types import COMMERCIAL, TECHNICAL
from proposaldesk.forms import images as image_loader
from proposaldesk.forms.commercial_offer import render_commercial_offer
from proposaldesk.forms.technical_rfq import render_technical_rfq
from proposaldesk.forms.preview import render_preview

log = logging.getLogger("proposaldesk.forms")

RENDERERS = {
    COMMERCIAL: render_commercial_offer,
    TECHNICAL: render_technical_rfq,
}

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename_part(value) -> str:
    return _UNSAFE.sub("_", str(value or "").strip())


def document_basename(proposal: dict) -> str:
    """``<number>-proposal`` for commercial, ``RFQ-<document number>`` for technical."""
    tpl = template_types.get_template(proposal.get("template_type"))
    if tpl.kind == TECHNICAL:
        return f"RFQ-{sanitize_filename_part(proposal.get('document_number') or proposal.get('id') or 'document')}"
    return f"{sanitize_filename_part(proposal.get('proposal_number') or proposal.get('id') or 'draft')}-proposal"


def document_filename(proposal: dict) -> str:
    return document_basename(proposal) + ".pdf"


def preview_filename(proposal: dict) -> str:
    return document_basename(proposal) + "-preview.html"


def select_renderer(template_type: str):
    """PDF renderer for ``template_type``; unknown types raise UnknownTemplateError."""
    return RENDERERS[template_types.get_template(template_type).kind]


def _resolve_profile(proposal: dict, profiles: dict = None) -> dict:
    cfg = profiles or config.load_config()
    return config.get_company_profile(cfg, proposal.get("company"))


def _items_and_totals(proposal: dict, totals: dict = None):
    items = template_types.active_items(proposal)
    if items is None:
        tpl = template_types.get_template(proposal.get("template_type"))
        raise RenderError(f"Proposal has no {tpl.collection_key} collection")
    if totals is None:
        totals = pricing.calculate_proposal_totals(proposal)
    return items, totals


def render_document(proposal: dict, totals: dict = None, profiles: dict = None,
                    images: dict = None):
    """(pdf bytes, filename) for the proposal's template type.

    ``profiles`` is a loaded config (company profiles + settings); it defaults
    to load_config(). ``totals`` defaults to a fresh calculation.
    """
    items, totals = _items_and_totals(proposal, totals)
    tpl = template_types.get_template(proposal.get("template_type"))
    cfg = profiles or config.load_config()
    profile = _resolve_profile(proposal, cfg)
    if tpl.uses_images and images is None:
        images = image_loader.load_images(items, cfg.get("image_timeout", 10),
                                          cfg.get("image_max_dim", image_loader.MAX_DIM))
    renderer = RENDERERS[tpl.kind]
    try:
        content = renderer(proposal, items, totals, profile=profile, images=images,
                           symbol=cfg.get("currency_symbol", "$"))
    except RenderError:
        raise
    except Exception as e:
        log.error("%s render failed for %s: %s", tpl.key,
                  proposal.get("proposal_number") or proposal.get("id"), e, exc_info=True)
        raise RenderError(f"Could not build the {tpl.title} document: {e}") from e
    return content, document_filename(proposal)


def render_preview_document(proposal: dict, totals: dict = None, profiles: dict = None,
                            standalone: bool = True):
    """(html, filename): the degraded print path when PDF output fails."""
    items, totals = _items_and_totals(proposal, totals)
    cfg = profiles or config.load_config()
    html = render_preview(proposal, items, totals, profile=_resolve_profile(proposal, cfg),
                          symbol=cfg.get("currency_symbol", "$"), standalone=standalone)
    return html, preview_filename(proposal)
