"""
Configuration: proposal defaults and issuing-company profiles.

Company profiles used to be hard-coded per company; they now live in one
config map that callers pass to the renderers and the validator, so several
issuing identities can coexist (and be tested) side by side.

Load order: DEFAULT_CONFIG ← JSON file at PROPOSALDESK_CONFIG (optional).
"""

import os
import json
import logging
from copy import deepcopy

from proposaldesk.core import paths

log = logging.getLogger("proposaldesk.config")

# ═══════════════════════════════════════════════════════════════════════════════
# DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_DELIVERY_TERMS = {
    "payment_terms": "50% prepayment",
    "delivery_time": "6-8 weeks",
    "incoterms": "DDP",
}

DEFAULT_SIGNATORY = {
    "title": "General manager",
    "name": "",
}

DEFAULT_CONFIG = {
    "default_tax_rate": 10,
    "currency_symbol": "$",
    "proposal_prefix": "PROP",
    "default_template": "simple-commercial",
    "image_timeout": 10,
    "image_max_dim": 800,
    "companies": {
        "default": {
            "name": "Your Company Name",
            "address": "",
            "phone": "",
            "email": "",
            "bank_account": "",
            "routing_code": "",
            "tax_id": "",
            "classification_code": "",
            "logo_path": "",
            "delivery_terms": dict(DEFAULT_DELIVERY_TERMS),
            "authorized_signatory": dict(DEFAULT_SIGNATORY),
        },
    },
}

# Keys copied into proposal["company_details"] when a profile is applied
COMPANY_DETAIL_KEYS = ("name", "address", "phone", "email", "bank_account",
                       "routing_code", "tax_id", "classification_code", "logo_path")


def _merge(base: dict, override: dict) -> dict:
    out = deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = deepcopy(v)
    return out


def load_config(path: str = None) -> dict:
    """Return DEFAULT_CONFIG merged with the JSON file at ``path`` (if any)."""
    path = path or paths.CONFIG_PATH
    override = {}
    if path and os.path.exists(path):
        try:
            with open(path) as f:
                override = json.load(f)
            log.info("Config loaded from %s (%d companies)", path,
                     len(override.get("companies", {})))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Config file %s unreadable, using defaults: %s", path, e)
            override = {}
    return _merge(DEFAULT_CONFIG, override)


def get_company_profile(config: dict, key: str = None) -> dict:
    """Profile for ``key``; unknown or empty keys fall back to "default"."""
    companies = (config or DEFAULT_CONFIG).get("companies", {})
    if key and key in companies:
        profile = companies[key]
    else:
        if key:
            log.debug("Company %r not configured, using default profile", key)
        profile = companies.get("default") or DEFAULT_CONFIG["companies"]["default"]
    return _merge(DEFAULT_CONFIG["companies"]["default"], profile)


def apply_company_profile(proposal: dict, profile: dict) -> dict:
    """Snapshot ``profile`` into a copy of ``proposal``.

    company_details fields already present on the proposal win; delivery terms
    and signatory are only filled where the proposal left them blank.
    """
    out = dict(proposal)
    details = {k: profile.get(k, "") for k in COMPANY_DETAIL_KEYS}
    for k, v in (proposal.get("company_details") or {}).items():
        if v not in (None, ""):
            details[k] = v
    out["company_details"] = details

    terms = dict(profile.get("delivery_terms") or DEFAULT_DELIVERY_TERMS)
    for k, v in (proposal.get("delivery_terms") or {}).items():
        if v not in (None, ""):
            terms[k] = v
    out["delivery_terms"] = terms

    signatory = dict(profile.get("authorized_signatory") or DEFAULT_SIGNATORY)
    for k, v in (proposal.get("authorized_signatory") or {}).items():
        if v not in (None, ""):
            signatory[k] = v
    out["authorized_signatory"] = signatory
    return out
