"""
Validation Engine: ordered business-rule checks per requested action.

validate_proposal() never raises on bad data: it returns the list of
human-readable problems, in rule order, and callers decide whether to block
(usually on the first one) or only warn.

Rule order:
  1. client selected
  2. proposal title
  3. commercial templates: items present, per-item bounds
  4. technical templates: items present, document number, company name,
                          per-item description/bounds
  5. send only: client email present and well-formed
  6. valid_until ≥ proposal_date
  7. tax_rate and (reserved) proposal discount within 0–100
"""

import re
import logging
from datetime import date, datetime

from proposaldesk.proposals import pricing
from proposaldesk.proposals import template_types
from proposaldesk.proposals.template_types import COMMERCIAL, TECHNICAL

log = logging.getLogger("proposaldesk.validation")

SAVE = "save"
SEND = "send"
GENERATE = "generate"
ACTIONS = (SAVE, SEND, GENERATE)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_email(value) -> bool:
    return bool(value) and bool(EMAIL_RE.match(str(value).strip()))


def first_error(errors):
    return errors[0] if errors else None


def _blank(value) -> bool:
    return value is None or str(value).strip() == ""


def _parse_date(value):
    """date from a date/datetime/ISO string; None when absent or unparseable."""
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text[:19]).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%m/%d/%Y").date()
    except ValueError:
        log.debug("Unparseable date %r ignored", value)
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# ITEM RULES: one function per template kind
# ═══════════════════════════════════════════════════════════════════════════════

def _commercial_item_errors(items) -> list:
    errors = []
    if not items:
        return ["Please add at least one product to the proposal"]
    for n, item in enumerate(items, 1):
        if pricing.to_decimal(item.get("quantity")) <= 0:
            errors.append(f"Item {n}: quantity must be greater than 0")
        if pricing.to_decimal(item.get("unit_price")) < 0:
            errors.append(f"Item {n}: unit price cannot be negative")
        discount = pricing.to_decimal(item.get("discount"))
        if discount < 0 or discount > 100:
            errors.append(f"Item {n}: discount must be between 0 and 100")
    return errors


def _technical_errors(proposal: dict, items) -> list:
    errors = []
    if not items:
        errors.append("Please add at least one item to the RFQ")
    if _blank(proposal.get("document_number")):
        errors.append("Document number is required for technical proposals")
    if _blank((proposal.get("company_details") or {}).get("name")):
        errors.append("Company name is required for technical proposals")
    for n, item in enumerate(items or [], 1):
        if _blank(item.get("description")):
            errors.append(f"Item {n}: description is required")
        if item.get("quantity") is not None and pricing.to_decimal(item["quantity"]) <= 0:
            errors.append(f"Item {n}: quantity must be greater than 0")
        if item.get("unit_price") is not None and pricing.to_decimal(item["unit_price"]) < 0:
            errors.append(f"Item {n}: unit price cannot be negative")
    return errors


_ITEM_RULES = {
    COMMERCIAL: lambda proposal, items: _commercial_item_errors(items),
    TECHNICAL: _technical_errors,
}


# ═══════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def validate_proposal(proposal: dict, items=None, template_type: str = None,
                      action: str = SAVE) -> list:
    """Ordered list of blocking problems for ``action``; [] means go ahead.

    ``items`` and ``template_type`` default to the proposal's own active
    collection and type.
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown validation action: {action!r}")
    proposal = proposal or {}
    template_type = template_type or proposal.get("template_type")
    tpl = template_types.get_template(template_type)
    if items is None:
        items = proposal.get(tpl.collection_key) or []

    errors = []
    if _blank(proposal.get("client_id")):
        errors.append("Please select a client for the proposal")
    if _blank(proposal.get("proposal_title")):
        errors.append("Proposal title is required")

    errors.extend(_ITEM_RULES[tpl.kind](proposal, items))

    if action == SEND:
        email = proposal.get("client_email")
        if _blank(email):
            errors.append("Please enter an email address")
        elif not is_valid_email(email):
            errors.append("Please enter a valid email address")

    valid_until = _parse_date(proposal.get("valid_until"))
    proposal_date = _parse_date(proposal.get("proposal_date"))
    if valid_until and proposal_date and valid_until < proposal_date:
        errors.append("Valid until date cannot be before the proposal date")

    tax_rate = pricing.to_decimal(proposal.get("tax_rate"))
    if tax_rate < 0 or tax_rate > 100:
        errors.append("Tax rate must be between 0 and 100")
    discount = pricing.to_decimal(proposal.get("discount"))
    if discount < 0 or discount > 100:
        errors.append("Discount must be between 0 and 100")

    if errors:
        log.debug("validate %s (%s): %d problem(s), first: %s",
                  proposal.get("proposal_number") or proposal.get("id"), action,
                  len(errors), errors[0])
    return errors


def is_valid(proposal: dict, action: str = SAVE) -> bool:
    return not validate_proposal(proposal, action=action)
