"""
Proposal Desk HTTP routes (Flask Blueprint)

JSON API for proposals, line items, status changes and the catalog, plus the
document download / preview endpoints. Everything except /api/health is behind
HTTP Basic auth (DASH_USER / DASH_PASS).

Create / PATCH persist drafts through service.autosave and report validation
problems as warnings; send and download are gated and answer 400 with the
first blocking error.
"""

import io
import os
import logging
import functools
from datetime import datetime

from flask import Blueprint, request, jsonify, send_file, Response

from proposaldesk import __version__
from proposaldesk.core import db
from proposaldesk.core.errors import (
    CollaboratorError, RenderError, ItemValidationError, UnknownTemplateError,
    ImportFormatError,
)
from proposaldesk.proposals import service, validation, template_types
from proposaldesk.catalog import importer, store

log = logging.getLogger("proposaldesk.api")

bp = Blueprint("proposaldesk", __name__)

# Fields a client may set directly; derived totals and ids are ours
EDITABLE_FIELDS = (
    "proposal_title", "client_id", "client_name", "client_email", "client_company",
    "client_address", "company", "company_details", "discount", "tax_rate",
    "delivery_terms", "authorized_signatory", "terms", "notes", "document_number",
    "proposal_date", "valid_until", "products", "rfq_items",
)


# ═══════════════════════════════════════════════════════════════════════
# Password Protection
# ═══════════════════════════════════════════════════════════════════════

def check_auth(username, password):
    return (username == os.environ.get("DASH_USER", "admin")
            and password == os.environ.get("DASH_PASS", "changeme"))


def auth_required(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        auth = request.authorization
        if not auth or not check_auth(auth.username, auth.password):
            return Response(
                "Proposal Desk: Login Required",
                401, {"WWW-Authenticate": 'Basic realm="Proposal Desk"'})
        return f(*args, **kwargs)
    return decorated


# ═══════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════

def _blocked(errors, status=400):
    return jsonify({"ok": False, "error": errors[0], "errors": errors}), status


def _not_found(pid):
    return jsonify({"ok": False, "error": f"Proposal {pid} not found"}), 404


def _editable(payload: dict) -> dict:
    return {k: v for k, v in (payload or {}).items() if k in EDITABLE_FIELDS}


def _respond(proposal, status=200, **extra):
    body = {"ok": True, "proposal": proposal,
            "warnings": validation.validate_proposal(proposal, action=validation.SAVE)}
    body.update(extra)
    return jsonify(body), status


@bp.errorhandler(CollaboratorError)
def _collaborator_failed(e):
    log.error("Store failure on %s %s: %s", request.method, request.path, e)
    return jsonify({"ok": False, "error": f"Storage error: {e}"}), 500


@bp.errorhandler(UnknownTemplateError)
def _unknown_template(e):
    return jsonify({"ok": False, "error": str(e)}), 400


# ═══════════════════════════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/health")
def api_health():
    return jsonify({"ok": True, "version": __version__, "db": db.get_db_stats(),
                    "templates": list(template_types.TEMPLATE_TYPES)})


# ═══════════════════════════════════════════════════════════════════════
# Proposals
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/proposals", methods=["GET"])
@auth_required
def api_list_proposals():
    rows = db.list_proposals(status=request.args.get("status") or None,
                             search=request.args.get("q", ""))
    return jsonify({"ok": True, "proposals": rows, "count": len(rows)})


@bp.route("/api/proposals/stats")
@auth_required
def api_proposal_stats():
    return jsonify({"ok": True, "stats": db.proposal_stats()})


@bp.route("/api/proposals/export.csv")
@auth_required
def api_export_proposals():
    rows = db.list_proposals(status=request.args.get("status") or None,
                             search=request.args.get("q", ""))
    ids = [i for i in request.args.get("ids", "").split(",") if i]
    if ids:
        rows = [p for p in rows if p.get("id") in ids]
    if not rows:
        return jsonify({"ok": False, "error": "No proposals to export"}), 400
    filename = f"proposals-export-{datetime.now().strftime('%Y%m%d-%H%M%S')}.csv"
    return Response(service.export_proposals_csv(rows), mimetype="text/csv",
                    headers={"Content-Disposition": f"attachment; filename={filename}"})


@bp.route("/api/proposals", methods=["POST"])
@auth_required
def api_create_proposal():
    payload = request.get_json(silent=True) or {}
    fields = _editable(payload)
    fields.pop("company", None)
    proposal = service.new_proposal(payload.get("template_type"), payload.get("company"),
                                    **fields)
    proposal["proposal_number"] = payload.get("proposal_number") or service.next_proposal_number()
    saved, _ = service.autosave(proposal)
    return _respond(saved, 201)


@bp.route("/api/proposals/<pid>", methods=["GET"])
@auth_required
def api_get_proposal(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    return _respond(proposal, template=template_types.describe(proposal.get("template_type")))


@bp.route("/api/proposals/<pid>", methods=["PATCH"])
@auth_required
def api_update_proposal(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    payload = request.get_json(silent=True) or {}
    updated = {**proposal, **_editable(payload)}
    if payload.get("template_type") and payload["template_type"] != proposal.get("template_type"):
        updated = service.change_template_type(updated, payload["template_type"])
    saved, wrote = service.autosave(updated)
    return _respond(saved, written=wrote)


@bp.route("/api/proposals/<pid>", methods=["DELETE"])
@auth_required
def api_delete_proposal(pid):
    if db.get_proposal(pid) is None:
        return _not_found(pid)
    db.delete_proposal(pid)
    return jsonify({"ok": True, "deleted": pid})


@bp.route("/api/proposals/<pid>/duplicate", methods=["POST"])
@auth_required
def api_duplicate_proposal(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    return _respond(service.duplicate_proposal(proposal), 201)


# ── Line items ──────────────────────────────────────────────────────────

@bp.route("/api/proposals/<pid>/items", methods=["POST"])
@auth_required
def api_add_item(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    payload = request.get_json(silent=True) or {}
    if payload.get("product_id") is not None:
        product = store.get_product(payload["product_id"])
        if product is None:
            return jsonify({"ok": False, "error": "Product not found"}), 404
        payload = {**store.catalog_item_from_product(product),
                   **{k: v for k, v in payload.items() if k != "product_id"}}
    try:
        updated = service.add_item(proposal, payload)
    except ItemValidationError as e:
        return _blocked([str(e)])
    saved, _ = service.autosave(updated)
    return _respond(saved)


@bp.route("/api/proposals/<pid>/items/<item_id>", methods=["PATCH"])
@auth_required
def api_update_item(pid, item_id):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    payload = request.get_json(silent=True) or {}
    try:
        updated = proposal
        for field, value in payload.items():
            updated = service.update_item(updated, item_id, field, value)
    except ItemValidationError as e:
        return _blocked([str(e)])
    saved, _ = service.autosave(updated)
    return _respond(saved)


@bp.route("/api/proposals/<pid>/items/<item_id>", methods=["DELETE"])
@auth_required
def api_remove_item(pid, item_id):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    saved, _ = service.autosave(service.remove_item(proposal, item_id))
    return _respond(saved)


@bp.route("/api/proposals/<pid>/items/<item_id>/duplicate", methods=["POST"])
@auth_required
def api_duplicate_item(pid, item_id):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    saved, _ = service.autosave(service.duplicate_item(proposal, item_id))
    return _respond(saved)


# ── Lifecycle ───────────────────────────────────────────────────────────

@bp.route("/api/proposals/<pid>/validate")
@auth_required
def api_validate(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    action = request.args.get("action", validation.SAVE)
    try:
        errors = validation.validate_proposal(proposal, action=action)
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": not errors, "action": action, "errors": errors,
                    "error": errors[0] if errors else None})


@bp.route("/api/proposals/<pid>/send", methods=["POST"])
@auth_required
def api_send(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    payload = request.get_json(silent=True) or {}
    sent, errors = service.send_proposal(proposal, actor=payload.get("actor", "user"))
    if errors:
        return _blocked(errors)
    return jsonify({"ok": True, "proposal": sent})


@bp.route("/api/proposals/<pid>/status", methods=["POST"])
@auth_required
def api_set_status(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    payload = request.get_json(silent=True) or {}
    moved, errors = service.set_status(
        proposal, payload.get("status", ""), actor=payload.get("actor", "user"),
        notes=payload.get("notes", ""), admin=bool(payload.get("admin")))
    if errors:
        return _blocked(errors)
    return jsonify({"ok": True, "proposal": moved})


# ═══════════════════════════════════════════════════════════════════════
# Documents
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/proposals/<pid>/download")
@auth_required
def download_document(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    errors = validation.validate_proposal(proposal, action=validation.GENERATE)
    if errors:
        return _blocked(errors)
    try:
        content, filename = service.generate_document(proposal)
    except RenderError as e:
        log.error("Document generation failed for %s: %s", pid, e)
        return jsonify({"ok": False,
                        "error": f"Document generation failed: {e}. Your changes are saved."}), 500
    if request.args.get("save"):
        service.save_output(content, filename)
    is_pdf = filename.endswith(".pdf")
    data = content if isinstance(content, bytes) else content.encode("utf-8")
    return send_file(io.BytesIO(data), as_attachment=True, download_name=filename,
                     mimetype="application/pdf" if is_pdf else "text/html")


@bp.route("/proposals/<pid>/preview")
@auth_required
def preview_document(pid):
    proposal = db.get_proposal(pid)
    if proposal is None:
        return _not_found(pid)
    try:
        html, _ = service.generate_preview(proposal)
    except RenderError as e:
        return jsonify({"ok": False, "error": f"Preview failed: {e}"}), 500
    return Response(html, mimetype="text/html")


# ═══════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/catalog/import", methods=["POST"])
@auth_required
def api_catalog_import():
    f = request.files.get("file")
    if f is None or not f.filename:
        return jsonify({"ok": False, "error": "Please select a file first"}), 400
    try:
        result = importer.import_file(f.filename, f.stream)
    except ImportFormatError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    stats = store.upsert_products(result["valid_products"])
    return jsonify({"ok": True, "imported": len(result["valid_products"]),
                    "rows_read": result["rows_read"], "errors": result["errors"],
                    **stats})


@bp.route("/api/catalog")
@auth_required
def api_catalog():
    try:
        limit = int(request.args.get("limit", 50))
    except ValueError:
        limit = 0
    if not 1 <= limit <= 500:
        return jsonify({"ok": False, "error": "limit must be a number between 1 and 500"}), 400
    rows = store.search_catalog(request.args.get("q", ""),
                                limit=limit,
                                category=request.args.get("category") or None)
    return jsonify({"ok": True, "products": rows, "count": len(rows)})
