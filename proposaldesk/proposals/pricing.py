"""
Pricing Calculator: line totals and proposal aggregates.

Pure functions, no I/O. Money is carried as Decimal at full precision and only
turned into float at the record boundary; rounding to cents happens when a
renderer formats a value for display. That keeps the cached aggregate and the
sum of line totals identical.

Commercial (per item):
    item_subtotal        = unit_price × quantity
    item_discount_amount = item_subtotal × discount/100
    item_taxable_base    = item_subtotal − item_discount_amount   (taxable only)
    line_total           = taxable_base + taxable_base × tax_rate/100 (if taxable)
    grand_total          = Σ subtotal − Σ discount + Σ taxable_base × tax_rate/100

Technical / RFQ (per item):
    line_total = unit_price × quantity           (no item discount, no item tax)
    tax_amount = subtotal × tax_rate/100
"""

import logging
from decimal import Decimal, InvalidOperation, localcontext

from proposaldesk.proposals import template_types

log = logging.getLogger("proposaldesk.pricing")

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce anything numeric-looking to Decimal; everything else is 0."""
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, bool) or value is None:
        return ZERO
    text = value.strip().replace(",", "") if isinstance(value, str) else str(value)
    try:
        d = Decimal(text)
    except (InvalidOperation, ValueError):
        return ZERO
    return d if d.is_finite() else ZERO


def _rate(percent) -> Decimal:
    return to_decimal(percent) / HUNDRED


# ═══════════════════════════════════════════════════════════════════════════════
# LINE LEVEL
# ═══════════════════════════════════════════════════════════════════════════════

def commercial_line_breakdown(item: dict, tax_rate=0) -> dict:
    """All intermediate amounts for one commercial line, as Decimals."""
    item_subtotal = to_decimal(item.get("unit_price")) * to_decimal(item.get("quantity"))
    item_discount_amount = item_subtotal * _rate(item.get("discount"))
    net = item_subtotal - item_discount_amount
    taxable = bool(item.get("taxable"))
    item_taxable_base = net if taxable else ZERO
    item_tax = item_taxable_base * _rate(tax_rate)
    return {
        "item_subtotal": item_subtotal,
        "item_discount_amount": item_discount_amount,
        "item_taxable_base": item_taxable_base,
        "item_tax": item_tax,
        "line_total": net + item_tax,
    }


def commercial_line_total(item: dict, tax_rate=0) -> float:
    return float(commercial_line_breakdown(item, tax_rate)["line_total"])


def technical_line_total(item: dict) -> float:
    return float(to_decimal(item.get("unit_price")) * to_decimal(item.get("quantity")))


def line_total(item: dict, tax_rate=0, kind: str = template_types.COMMERCIAL) -> float:
    if kind == template_types.TECHNICAL:
        return technical_line_total(item)
    return commercial_line_total(item, tax_rate)


# ═══════════════════════════════════════════════════════════════════════════════
# AGGREGATES
# ═══════════════════════════════════════════════════════════════════════════════

def _commercial_totals(items, tax_rate) -> dict:
    subtotal = total_discount = taxable_base = ZERO
    for item in items:
        b = commercial_line_breakdown(item, tax_rate)
        subtotal += b["item_subtotal"]
        total_discount += b["item_discount_amount"]
        taxable_base += b["item_taxable_base"]
    tax_amount = taxable_base * _rate(tax_rate)
    return {
        "subtotal": subtotal,
        "total_discount": total_discount,
        "tax_amount": tax_amount,
        "grand_total": subtotal - total_discount + tax_amount,
    }


def _technical_totals(items, tax_rate) -> dict:
    subtotal = ZERO
    for item in items:
        subtotal += to_decimal(item.get("unit_price")) * to_decimal(item.get("quantity"))
    tax_amount = subtotal * _rate(tax_rate)
    return {
        "subtotal": subtotal,
        "total_discount": ZERO,
        "tax_amount": tax_amount,
        "grand_total": subtotal + tax_amount,
    }


def calculate_totals_exact(items, tax_rate=0, template_type: str = None) -> dict:
    """Aggregates as Decimals."""
    tpl = template_types.get_template(template_type)
    items = items or []
    if tpl.kind == template_types.TECHNICAL:
        return _technical_totals(items, tax_rate)
    return _commercial_totals(items, tax_rate)


def calculate_totals(items, tax_rate=0, template_type: str = None) -> dict:
    """{subtotal, total_discount, tax_amount, grand_total} as floats."""
    exact = calculate_totals_exact(items, tax_rate, template_type)
    return {k: float(v) for k, v in exact.items()}


def calculate_proposal_totals(proposal: dict) -> dict:
    """Totals over the proposal's active collection and its tax_rate.

    The proposal-level ``discount`` field is reserved and deliberately not
    read here.
    """
    items = template_types.active_items(proposal) or []
    return calculate_totals(items, proposal.get("tax_rate", 0),
                            proposal.get("template_type"))


# ═══════════════════════════════════════════════════════════════════════════════
# DISPLAY
# ═══════════════════════════════════════════════════════════════════════════════

def round_money(amount) -> Decimal:
    """Half-even to cents at whatever precision the amount needs."""
    d = to_decimal(amount)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, d.adjusted() + 3)
        return d.quantize(CENT)


def format_currency(amount, symbol: str = "$") -> str:
    """``$1,234.50`` / ``-$20.00``. Single locale, two decimals."""
    d = round_money(amount)
    sign = "-" if d < 0 else ""
    return f"{sign}{symbol}{abs(d):,.2f}"


def format_percent(value) -> str:
    d = to_decimal(value).normalize()
    text = format(d, "f")
    return f"{text}%"
