"""
Line-item model: commercial product rows and technical RFQ rows.

All mutators return a new list and never modify the list or the item dicts
they were given. Every mutation that touches a priced field recomputes
``line_total``; a stored ``line_total`` is never trusted.

Commercial item keys:
    id, name, category, description, image_url, quantity, unit_price,
    discount, taxable, line_total
Technical item keys:
    id, item_number, description, technical_description, manufacturer,
    part_number, unit, quantity, unit_price, will_be_supplied,
    specifications[], image_url, line_total
"""

import uuid
import logging

from proposaldesk.core.errors import ItemValidationError
from proposaldesk.proposals import pricing
from proposaldesk.proposals.template_types import COMMERCIAL, TECHNICAL

log = logging.getLogger("proposaldesk.items")

COMMERCIAL_FIELDS = ("id", "name", "category", "description", "image_url",
                     "quantity", "unit_price", "discount", "taxable", "line_total")

TECHNICAL_FIELDS = ("id", "item_number", "description", "technical_description",
                    "manufacturer", "part_number", "unit", "quantity", "unit_price",
                    "will_be_supplied", "specifications", "image_url", "line_total")

_TRUE_STRINGS = ("true", "1", "yes", "y", "on")


def generate_item_id() -> str:
    return uuid.uuid4().hex[:10]


# ═══════════════════════════════════════════════════════════════════════════════
# SANITIZATION: model boundary, malformed numbers become 0
# ═══════════════════════════════════════════════════════════════════════════════

def _int(value) -> int:
    return int(pricing.to_decimal(value))


def _num(value) -> float:
    return float(pricing.to_decimal(value))


def _bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _text(value) -> str:
    return "" if value is None else str(value)


def _specs(value) -> list:
    if value is None:
        return [""]
    if isinstance(value, str):
        value = value.splitlines()
    specs = [_text(s) for s in value]
    return specs or [""]


def sanitize_commercial_item(raw: dict) -> dict:
    """Typed copy of a commercial row. Accepts ``price`` as an alias of unit_price."""
    raw = raw or {}
    unit_price = raw.get("unit_price", raw.get("price"))
    return {
        "id": raw.get("id") if raw.get("id") not in (None, "") else generate_item_id(),
        "name": _text(raw.get("name")),
        "category": _text(raw.get("category")),
        "description": _text(raw.get("description")),
        "image_url": _text(raw.get("image_url")),
        "quantity": _int(raw.get("quantity", 1)),
        "unit_price": _num(unit_price),
        "discount": _num(raw.get("discount", 0)),
        "taxable": _bool(raw.get("taxable", True)),
    }


def sanitize_technical_item(raw: dict) -> dict:
    raw = raw or {}
    return {
        "id": raw.get("id") if raw.get("id") not in (None, "") else generate_item_id(),
        "item_number": _int(raw.get("item_number", 0)),
        "description": _text(raw.get("description")),
        "technical_description": _text(raw.get("technical_description")),
        "manufacturer": _text(raw.get("manufacturer")),
        "part_number": _text(raw.get("part_number")),
        "unit": _text(raw.get("unit")) or "each",
        "quantity": _int(raw.get("quantity", 1)),
        "unit_price": _num(raw.get("unit_price", 0)),
        "will_be_supplied": _text(raw.get("will_be_supplied")),
        "specifications": _specs(raw.get("specifications")),
        "image_url": _text(raw.get("image_url")),
    }


def sanitize_item(raw: dict, kind: str = COMMERCIAL) -> dict:
    if kind == TECHNICAL:
        return sanitize_technical_item(raw)
    return sanitize_commercial_item(raw)


def _clean(item: dict, kind: str) -> dict:
    """Sanitized copy of a row that keeps any extra keys the caller stored on it."""
    item = item if isinstance(item, dict) else {}
    clean = sanitize_item(item, kind)
    for k, v in item.items():
        if k not in clean:
            clean[k] = v
    return clean


def _with_total(item: dict, tax_rate, kind: str) -> dict:
    item["line_total"] = pricing.line_total(item, tax_rate, kind)
    return item


def _same_id(item: dict, item_id) -> bool:
    return str(item.get("id")) == str(item_id)


def _find(items, item_id) -> int:
    for idx, item in enumerate(items or []):
        if _same_id(item, item_id):
            return idx
    return -1


# ═══════════════════════════════════════════════════════════════════════════════
# COMMERCIAL
# ═══════════════════════════════════════════════════════════════════════════════

def check_item_bounds(quantity, unit_price, discount=0):
    """Raise ItemValidationError if the numbers can't go on a line."""
    q = pricing.to_decimal(quantity)
    p = pricing.to_decimal(unit_price)
    d = pricing.to_decimal(discount)
    if q <= 0:
        raise ItemValidationError("Quantity must be greater than 0")
    if p < 0:
        raise ItemValidationError("Unit price cannot be negative")
    if d < 0 or d > 100:
        raise ItemValidationError("Discount must be between 0 and 100")


def add_or_merge_commercial_item(items, candidate: dict, quantity=1, unit_price=None,
                                 discount=0, taxable=True, tax_rate=0) -> list:
    """Add ``candidate`` to the list, or bump the quantity of the row with its id.

    A merge keeps the existing row's price/discount/taxable and only adds the
    quantity, so adding the same product twice never produces two rows.
    """
    if unit_price is None:
        unit_price = candidate.get("unit_price", candidate.get("price", 0))
    check_item_bounds(quantity, unit_price, discount)

    items = list(items or [])
    idx = _find(items, candidate.get("id")) if candidate.get("id") not in (None, "") else -1
    if idx >= 0:
        merged = dict(items[idx])
        merged["quantity"] = _int(merged.get("quantity")) + _int(quantity)
        items[idx] = _with_total(merged, tax_rate, COMMERCIAL)
        log.debug("Merged item %s → qty %d", merged["id"], merged["quantity"])
        return items

    row = sanitize_commercial_item({
        **candidate,
        "quantity": quantity,
        "unit_price": unit_price,
        "discount": discount,
        "taxable": taxable,
    })
    items.append(_with_total(row, tax_rate, COMMERCIAL))
    return items


# ═══════════════════════════════════════════════════════════════════════════════
# TECHNICAL
# ═══════════════════════════════════════════════════════════════════════════════

def new_technical_item(items, **fields) -> dict:
    """Blank RFQ row numbered by its insertion position (len + 1)."""
    raw = dict(fields)
    raw["item_number"] = len(items or []) + 1
    raw.setdefault("specifications", [""])
    item = sanitize_technical_item(raw)
    if item["description"]:
        item["description"] = item["description"].upper()
    return _with_total(item, 0, TECHNICAL)


def add_technical_item(items, **fields) -> list:
    items = list(items or [])
    items.append(new_technical_item(items, **fields))
    return items


def add_specification(items, item_id, text: str = "") -> list:
    idx = _find(items, item_id)
    if idx < 0:
        return items
    items = list(items)
    item = dict(items[idx])
    item["specifications"] = list(item.get("specifications") or []) + [_text(text)]
    items[idx] = item
    return items


def update_specification(items, item_id, position: int, text: str) -> list:
    idx = _find(items, item_id)
    if idx < 0:
        return items
    specs = list(items[idx].get("specifications") or [""])
    if not 0 <= position < len(specs):
        return items
    specs[position] = _text(text)
    items = list(items)
    items[idx] = {**items[idx], "specifications": specs}
    return items


def remove_specification(items, item_id, position: int) -> list:
    """Drop one specification line; the last remaining slot is blanked, never removed."""
    idx = _find(items, item_id)
    if idx < 0:
        return items
    specs = list(items[idx].get("specifications") or [""])
    if not 0 <= position < len(specs):
        return items
    del specs[position]
    items = list(items)
    items[idx] = {**items[idx], "specifications": specs or [""]}
    return items


# ═══════════════════════════════════════════════════════════════════════════════
# SHARED MUTATORS
# ═══════════════════════════════════════════════════════════════════════════════

def update_item_field(items, item_id, field: str, value, tax_rate=0,
                      kind: str = COMMERCIAL) -> list:
    """Set ``field`` on the row with ``item_id`` and recompute its line total.

    Returns ``items`` itself (same object) when no row matches.
    """
    idx = _find(items, item_id)
    if idx < 0:
        return items
    if field == "id":
        raise ItemValidationError("Item id cannot be changed")
    items = list(items)
    items[idx] = _with_total(_clean({**items[idx], field: value}, kind), tax_rate, kind)
    return items


def remove_item(items, item_id) -> list:
    """Filter out the row. Technical item_numbers are left as they were."""
    return [i for i in (items or []) if not _same_id(i, item_id)]


def duplicate_item(items, item_id) -> list:
    """Append a copy of the row under a fresh id; everything else is kept."""
    idx = _find(items, item_id)
    if idx < 0:
        return items
    copy = dict(items[idx])
    if "specifications" in copy:
        copy["specifications"] = list(copy["specifications"] or [""])
    copy["id"] = generate_item_id()
    return list(items) + [copy]


def recalculate_line_totals(items, tax_rate=0, kind: str = COMMERCIAL) -> list:
    """Sanitized rows with fresh line totals.

    Runs on every recompute, so rows that arrive raw (API payloads, imported
    records) get the same coercion and defaults as rows added one at a time.
    """
    return [_with_total(_clean(i, kind), tax_rate, kind) for i in (items or [])]
