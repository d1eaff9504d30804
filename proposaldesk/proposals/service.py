"""
Proposal service: save / send / generate orchestration.

Glue between the pure model (items, pricing, validation, lifecycle), the
renderers and the store. Every write recomputes line totals and the cached
aggregate first, so the store never sees a stale derived total.
"""

import io
import os
import csv
import copy
import time
import logging
import threading
from datetime import date, datetime

from proposaldesk.core import db, paths, config
from proposaldesk.core.errors import CollaboratorError, RenderError
from proposaldesk.proposals import items as item_model
from proposaldesk.proposals import pricing, template_types, validation, lifecycle
from proposaldesk.forms import documents

log = logging.getLogger("proposaldesk.service")

TOTAL_FIELDS = ("subtotal", "total_discount", "tax_amount", "grand_total")

_inflight = set()
_inflight_lock = threading.Lock()


# ═══════════════════════════════════════════════════════════════════════════════
# PROPOSAL NUMBERING: PROP-{YYYY}-{seq:03d}, resets Jan 1
# ═══════════════════════════════════════════════════════════════════════════════

def _load_counter() -> dict:
    return {
        "year": int(db.get_setting("proposal_counter_year", 0) or 0),
        "seq": int(db.get_setting("proposal_counter_seq", 0) or 0),
    }


def _format_number(prefix: str, year: int, seq: int) -> str:
    return f"{prefix}-{year}-{seq:03d}"


def next_proposal_number(prefix: str = None, year: int = None) -> str:
    """Consume and return the next number for ``year`` (default: this year)."""
    prefix = prefix or config.load_config().get("proposal_prefix", "PROP")
    year = year or datetime.now().year
    data = _load_counter()
    if data["year"] != year:
        if data["year"]:
            log.info("New year detected, resetting proposal counter (was %d/%d)",
                     data["year"], data["seq"])
        data = {"year": year, "seq": 0}
    data["seq"] += 1
    db.set_setting("proposal_counter_year", year)
    db.set_setting("proposal_counter_seq", data["seq"])
    return _format_number(prefix, year, data["seq"])


def peek_next_proposal_number(prefix: str = None, year: int = None) -> str:
    """What next_proposal_number() would return, without consuming it."""
    prefix = prefix or config.load_config().get("proposal_prefix", "PROP")
    year = year or datetime.now().year
    data = _load_counter()
    seq = data["seq"] + 1 if data["year"] == year else 1
    return _format_number(prefix, year, seq)


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED FIELDS
# ═══════════════════════════════════════════════════════════════════════════════

def new_proposal(template_type: str = None, company: str = None, cfg: dict = None,
                 **fields) -> dict:
    """Fresh draft with configured defaults and the issuing company snapshot."""
    cfg = cfg or config.load_config()
    template_type = template_type or cfg.get("default_template")
    template_types.get_template(template_type)
    proposal = {
        "template_type": template_type,
        "status": lifecycle.DRAFT,
        "company": company or "default",
        "tax_rate": cfg.get("default_tax_rate", 10),
        "discount": 0,
        "proposal_date": date.today().isoformat(),
        "products": [],
        "rfq_items": [],
        "status_history": [],
    }
    proposal.update(fields)
    profile = config.get_company_profile(cfg, proposal.get("company"))
    return refresh_derived(config.apply_company_profile(proposal, profile))


def refresh_derived(proposal: dict) -> dict:
    """Copy of ``proposal`` with fresh line totals and cached aggregate.

    The caller's dicts are left untouched.
    """
    tpl = template_types.get_template(proposal.get("template_type"))
    out = dict(proposal)
    items = proposal.get(tpl.collection_key)
    if items is not None:
        out[tpl.collection_key] = item_model.recalculate_line_totals(
            items, proposal.get("tax_rate", 0), tpl.kind)
    out.update(pricing.calculate_totals(out.get(tpl.collection_key) or [],
                                        proposal.get("tax_rate", 0), tpl.key))
    return out


def change_template_type(proposal: dict, new_type: str) -> dict:
    """Switch template; the other item collection is kept but becomes inactive."""
    template_types.get_template(new_type)
    out = dict(proposal)
    out["template_type"] = new_type
    out.setdefault(template_types.active_collection_key(new_type), [])
    log.info("Proposal %s template %s → %s", proposal.get("proposal_number"),
             proposal.get("template_type"), new_type)
    return refresh_derived(out)


# ═══════════════════════════════════════════════════════════════════════════════
# ITEM EDITS
# ═══════════════════════════════════════════════════════════════════════════════

def add_item(proposal: dict, payload: dict) -> dict:
    """Add a line to the active collection (merging commercial duplicates)."""
    tpl = template_types.get_template(proposal.get("template_type"))
    items = proposal.get(tpl.collection_key) or []
    tax_rate = proposal.get("tax_rate", 0)
    if tpl.kind == template_types.TECHNICAL:
        fields = {k: v for k, v in payload.items() if k in item_model.TECHNICAL_FIELDS
                  and k not in ("id", "item_number", "line_total")}
        new_items = item_model.add_technical_item(items, **fields)
    else:
        new_items = item_model.add_or_merge_commercial_item(
            items, payload,
            quantity=payload.get("quantity", 1),
            unit_price=payload.get("unit_price", payload.get("price")),
            discount=payload.get("discount", 0),
            taxable=payload.get("taxable", True),
            tax_rate=tax_rate)
    return refresh_derived({**proposal, tpl.collection_key: new_items})


def update_item(proposal: dict, item_id, field: str, value) -> dict:
    tpl = template_types.get_template(proposal.get("template_type"))
    items = proposal.get(tpl.collection_key) or []
    new_items = item_model.update_item_field(items, item_id, field, value,
                                             proposal.get("tax_rate", 0), tpl.kind)
    return refresh_derived({**proposal, tpl.collection_key: new_items})


def remove_item(proposal: dict, item_id) -> dict:
    key = template_types.active_collection_key(proposal.get("template_type"))
    return refresh_derived({**proposal, key: item_model.remove_item(proposal.get(key), item_id)})


def duplicate_item(proposal: dict, item_id) -> dict:
    key = template_types.active_collection_key(proposal.get("template_type"))
    return refresh_derived({**proposal, key: item_model.duplicate_item(proposal.get(key) or [], item_id)})


# ═══════════════════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════════

def save_proposal(proposal: dict, action: str = validation.SAVE):
    """Validate, recompute, write. Returns (saved proposal, errors).

    On validation errors nothing is written and the input comes back as-is.
    Store failures raise CollaboratorError; the caller's dict is never cleared.
    """
    errors = validation.validate_proposal(proposal, action=action)
    if errors:
        return proposal, errors

    record = db.strip_none(refresh_derived(proposal))
    if not record.get("proposal_number"):
        record["proposal_number"] = next_proposal_number()

    if record.get("id"):
        db.update_proposal(record["id"], record)
    else:
        record["id"] = db.create_proposal(record)
    log.info("Proposal %s saved (%s, %s)", record["proposal_number"],
             record.get("template_type"), pricing.format_currency(record["grand_total"]),
             extra={"proposal_id": record["id"], "proposal_number": record["proposal_number"],
                    "action": action, "total": record["grand_total"]})
    return record, []


def autosave(proposal: dict):
    """Debounced save: returns (proposal, wrote).

    Writes only when the recomputed record differs from what the store holds,
    so repeated cycles on an unchanged model converge without further writes.
    Items are never edited in place.
    """
    fresh = db.strip_none(refresh_derived(copy.deepcopy(proposal)))
    if not fresh.get("id"):
        fresh["id"] = db.create_proposal(fresh)
        return fresh, True

    stored = db.get_proposal(fresh["id"])
    if stored is None:
        raise CollaboratorError(f"Proposal {fresh['id']} not found")
    ignore = ("created_at", "updated_at")
    if all(stored.get(k) == v for k, v in fresh.items() if k not in ignore):
        return fresh, False
    db.update_proposal(fresh["id"], fresh)
    log.debug("Autosaved %s (%s)", fresh.get("proposal_number") or fresh["id"],
              {k: fresh[k] for k in TOTAL_FIELDS})
    return fresh, True


def duplicate_proposal(proposal: dict) -> dict:
    """Store a draft copy under a new id and a ``DUP-<number>-<ms>`` number.

    Items and terms are copied as they are; status history starts over.
    """
    dup = {k: v for k, v in copy.deepcopy(proposal).items()
           if k not in ("id", "created_at", "updated_at", "status_updated")}
    dup["proposal_number"] = (f"DUP-{proposal.get('proposal_number') or 'PROP'}"
                              f"-{int(time.time() * 1000)}")
    dup["status"] = lifecycle.DRAFT
    dup["status_history"] = []
    pid = db.create_proposal(refresh_derived(dup))
    log.info("Proposal %s duplicated as %s", proposal.get("proposal_number"),
             dup["proposal_number"], extra={"proposal_id": pid})
    return db.get_proposal(pid)


def send_proposal(proposal: dict, actor: str = "user"):
    """draft → sent (send-validated) and persist. Returns (proposal, errors)."""
    moved, errors = lifecycle.transition_status(proposal, lifecycle.SENT, actor=actor)
    if errors:
        return proposal, errors
    return save_proposal(moved, action=validation.SEND)


def set_status(proposal: dict, new_status: str, actor: str = "user", notes: str = "",
               admin: bool = False):
    moved, errors = lifecycle.transition_status(proposal, new_status, actor, notes, admin)
    if errors:
        return proposal, errors
    if moved.get("id"):
        db.update_proposal(moved["id"], {"status": moved["status"],
                                         "status_updated": moved["status_updated"],
                                         "status_history": moved["status_history"]})
    return moved, []


def expire_overdue(today: date = None) -> list:
    """Mark sent proposals whose valid_until has passed as expired."""
    expired = []
    for p in db.list_proposals(status=lifecycle.SENT):
        if lifecycle.is_expired(p, today):
            moved, errors = set_status(p, lifecycle.EXPIRED, actor="system",
                                       notes="valid_until passed")
            if not errors:
                expired.append(moved["id"])
    if expired:
        log.info("Expired %d overdue proposal(s)", len(expired))
    return expired


# ═══════════════════════════════════════════════════════════════════════════════
# LIST EXPORT
# ═══════════════════════════════════════════════════════════════════════════════

EXPORT_COLUMNS = ("number", "client", "company", "total", "status", "items",
                  "created", "expires")


def export_row(proposal: dict) -> dict:
    company = (proposal.get("company_details") or {}).get("name") or proposal.get("company", "")
    return {
        "number": proposal.get("proposal_number", ""),
        "client": proposal.get("client_name", ""),
        "company": company,
        "total": f"{pricing.round_money(proposal.get('grand_total')):.2f}",
        "status": proposal.get("status", ""),
        "items": len(template_types.active_items(proposal) or []),
        "created": (proposal.get("created_at") or "")[:10],
        "expires": proposal.get("valid_until", ""),
    }


def export_proposals_csv(proposals) -> str:
    """CSV of the proposal list, one row per proposal, header first."""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for p in proposals or []:
        writer.writerow(export_row(p))
    return output.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# DOCUMENT OUTPUT
# ═══════════════════════════════════════════════════════════════════════════════

def generate_document(proposal: dict, fallback_to_preview: bool = True, profiles: dict = None):
    """(content, filename) for the proposal's template.

    A RenderError falls back to the HTML preview when ``fallback_to_preview``;
    a second generate for the same proposal while one is running is refused.
    """
    key = proposal.get("id") or id(proposal)
    with _inflight_lock:
        if key in _inflight:
            raise RenderError("generation already in progress")
        _inflight.add(key)
    try:
        fresh = refresh_derived(proposal)
        totals = {k: fresh[k] for k in TOTAL_FIELDS}
        try:
            return documents.render_document(fresh, totals, profiles)
        except RenderError as e:
            if not fallback_to_preview:
                raise
            log.warning("PDF render failed for %s, falling back to preview: %s",
                        proposal.get("proposal_number") or proposal.get("id"), e)
            return documents.render_preview_document(fresh, totals, profiles)
    finally:
        with _inflight_lock:
            _inflight.discard(key)


def generate_preview(proposal: dict, profiles: dict = None):
    fresh = refresh_derived(proposal)
    totals = {k: fresh[k] for k in TOTAL_FIELDS}
    return documents.render_preview_document(fresh, totals, profiles)


def save_output(content, filename: str, output_dir: str = None) -> str:
    """Write rendered output under OUTPUT_DIR. Returns the path."""
    output_dir = output_dir or paths.OUTPUT_DIR
    path = os.path.join(output_dir, os.path.basename(filename))
    try:
        os.makedirs(output_dir, exist_ok=True)
        mode = "wb" if isinstance(content, bytes) else "w"
        with open(path, mode, **({} if mode == "wb" else {"encoding": "utf-8"})) as f:
            f.write(content)
    except OSError as e:
        log.error("save_output %s: %s", path, e)
        raise CollaboratorError(f"Could not write {filename}: {e}") from e
    log.info("Wrote %s (%d bytes)", path, len(content))
    return path
