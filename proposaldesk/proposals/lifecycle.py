"""
Proposal lifecycle: draft → sent → accepted | expired

Only draft → sent is guarded (send validation). Anything outside the normal
path needs an administrative override, which is applied unguarded.
"""

import logging
from datetime import date, datetime

from proposaldesk.proposals import validation

log = logging.getLogger("proposaldesk.lifecycle")

DRAFT = "draft"
SENT = "sent"
ACCEPTED = "accepted"
EXPIRED = "expired"
STATUSES = (DRAFT, SENT, ACCEPTED, EXPIRED)

ALLOWED_TRANSITIONS = {
    (DRAFT, DRAFT),
    (DRAFT, SENT),
    (SENT, ACCEPTED),
    (SENT, EXPIRED),
}


def transition_status(proposal: dict, new_status: str, actor: str = "user",
                      notes: str = "", admin: bool = False):
    """Move ``proposal`` to ``new_status``.

    Returns (proposal, errors). On errors the proposal comes back unchanged;
    otherwise a copy with status, status_updated and a status_history entry.
    """
    if new_status not in STATUSES:
        return proposal, [f"Unknown status: {new_status}"]
    old_status = proposal.get("status") or DRAFT

    if not admin:
        if (old_status, new_status) not in ALLOWED_TRANSITIONS:
            return proposal, [f"Cannot change status from {old_status} to {new_status}"]
        if new_status == SENT:
            errors = validation.validate_proposal(proposal, action=validation.SEND)
            if errors:
                log.info("Send blocked for %s: %s",
                         proposal.get("proposal_number"), errors[0])
                return proposal, errors

    now = datetime.now().isoformat()
    out = dict(proposal)
    out["status"] = new_status
    out["status_updated"] = now
    entry = {"from": old_status, "status": new_status, "timestamp": now, "actor": actor}
    if notes:
        entry["notes"] = notes
    if admin:
        entry["override"] = True
    out["status_history"] = list(proposal.get("status_history") or []) + [entry]
    log.info("Proposal %s: %s → %s%s", proposal.get("proposal_number"),
             old_status, new_status, " (override)" if admin else "")
    return out, []


def is_expired(proposal: dict, today: date = None) -> bool:
    """True when valid_until is set and already behind ``today``."""
    valid_until = validation._parse_date(proposal.get("valid_until"))
    if valid_until is None:
        return False
    return valid_until < (today or date.today())
