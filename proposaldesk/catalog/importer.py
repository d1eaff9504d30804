"""
Catalog import: CSV/XLSX rows → canonical product records.

Uploaded spreadsheets name their columns any number of ways ("Product Name",
"unit_price", "Qty", "Supplier", ...). FIELD_ALIASES maps each known variant
to one canonical field; normalize_row() returns a typed record and
process_imported_products() runs a whole batch, collecting one error entry per
bad row instead of aborting (partial-success import).

Canonical fields:
    name, sku, description, price, cost, quantity, category, taxable, unit,
    status, image_url, tags, vendor, weight, dimensions
"""

import io
import os
import csv
import uuid
import logging
from decimal import Decimal, InvalidOperation

import openpyxl

from proposaldesk.core.errors import ImportFormatError

log = logging.getLogger("proposaldesk.catalog.import")

CANONICAL_FIELDS = ("name", "sku", "description", "price", "cost", "quantity",
                    "category", "taxable", "unit", "status", "image_url", "tags",
                    "vendor", "weight", "dimensions")

FIELD_ALIASES = {
    # name
    "name": "name", "product name": "name", "product_name": "name",
    "productname": "name", "product": "name",
    # sku
    "sku": "sku", "product code": "sku", "product_code": "sku", "productcode": "sku",
    "item number": "sku", "item_number": "sku",
    # description
    "description": "description", "desc": "description",
    # money
    "price": "price", "unit price": "price", "unit_price": "price",
    "cost": "cost", "cost price": "cost", "cost_price": "cost",
    # stock
    "quantity": "quantity", "qty": "quantity", "stock": "quantity",
    "inventory": "quantity",
    # classification
    "category": "category", "cat": "category",
    "taxable": "taxable",
    "unit": "unit", "uom": "unit",
    "status": "status", "active": "status",
    # media / misc
    "image": "image_url", "image_url": "image_url", "imageurl": "image_url",
    "thumbnail": "image_url",
    "tags": "tags",
    "vendor": "vendor", "supplier": "vendor",
    "weight": "weight",
    "dimensions": "dimensions",
}

DEFAULTS = {
    "category": "Uncategorized",
    "unit": "pcs",
    "status": "active",
}

_TRUE_STRINGS = ("true", "1", "yes")
SUPPORTED_EXTENSIONS = (".csv", ".xlsx")


class RowError(ValueError):
    """One imported row is unusable; message goes into the error entry."""


# ═══════════════════════════════════════════════════════════════════════════════
# FIELD COERCION
# ═══════════════════════════════════════════════════════════════════════════════

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _number(value, field: str) -> Decimal:
    """Decimal for a numeric cell; blank is 0, junk raises RowError."""
    if _blank(value):
        return Decimal("0")
    if isinstance(value, bool):
        raise RowError(f"Invalid {field} format")
    text = str(value).strip().replace(",", "").lstrip("$")
    try:
        d = Decimal(text)
    except InvalidOperation:
        raise RowError(f"Invalid {field} format") from None
    if not d.is_finite():
        raise RowError(f"Invalid {field} format")
    return d


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _status(value) -> str:
    """``active`` column booleans become active/inactive; text passes through."""
    if _blank(value):
        return DEFAULTS["status"]
    if isinstance(value, bool):
        return "active" if value else "inactive"
    text = str(value).strip()
    if text.lower() in _TRUE_STRINGS:
        return "active"
    if text.lower() in ("false", "0", "no"):
        return "inactive"
    return text.lower()


def _tags(value) -> list:
    if isinstance(value, (list, tuple)):
        return [str(t).strip() for t in value if str(t).strip()]
    if _blank(value):
        return []
    return [t.strip() for t in str(value).split(",") if t.strip()]


def _text(value) -> str:
    if _blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZATION
# ═══════════════════════════════════════════════════════════════════════════════

def canonical_key(column) -> str | None:
    if column is None:
        return None
    return FIELD_ALIASES.get(str(column).strip().lower())


def map_columns(raw: dict) -> dict:
    """Rename known columns to canonical names; unknown columns are dropped.

    When two columns map to the same field, the first non-blank one wins.
    """
    mapped = {}
    for column, value in (raw or {}).items():
        key = canonical_key(column)
        if key is None:
            continue
        if key not in mapped or (_blank(mapped[key]) and not _blank(value)):
            mapped[key] = value
    return mapped


def normalize_row(raw: dict, row: int = 1) -> dict:
    """Typed canonical record for one raw row. Raises RowError when unusable."""
    m = map_columns(raw)
    name, sku = _text(m.get("name")), _text(m.get("sku"))
    if not name and not sku:
        raise RowError("Missing required fields: name or SKU")

    price = _number(m.get("price"), "price")
    cost = _number(m.get("cost"), "cost")
    quantity = _number(m.get("quantity"), "quantity")
    weight = _number(m.get("weight"), "weight")
    if price < 0:
        raise RowError("Invalid price")
    if quantity < 0:
        raise RowError("Invalid quantity")

    return {
        "name": name or f"Imported Product {row}",
        "sku": sku or f"IMP-{uuid.uuid4().hex[:8].upper()}",
        "description": _text(m.get("description")),
        "price": float(price),
        "cost": float(cost),
        "quantity": int(quantity),
        "category": _text(m.get("category")) or DEFAULTS["category"],
        "taxable": _flag(m.get("taxable")),
        "unit": _text(m.get("unit")) or DEFAULTS["unit"],
        "status": _status(m.get("status")),
        "image_url": _text(m.get("image_url")),
        "tags": _tags(m.get("tags")),
        "vendor": _text(m.get("vendor")),
        "weight": float(weight),
        "dimensions": _text(m.get("dimensions")),
    }


def process_imported_products(rows) -> dict:
    """Normalize a batch.

    Returns {"valid_products": [...], "errors": [{"row", "product", "error"}]}
    with 1-based row numbers counted over the data rows.
    """
    valid, errors = [], []
    for row, raw in enumerate(rows or [], 1):
        try:
            valid.append(normalize_row(raw, row))
        except RowError as e:
            errors.append({"row": row, "product": raw, "error": str(e)})
    log.info("Import normalized: %d valid, %d errors", len(valid), len(errors))
    return {"valid_products": valid, "errors": errors}


# ═══════════════════════════════════════════════════════════════════════════════
# READERS
# ═══════════════════════════════════════════════════════════════════════════════

def _open_text(source):
    if isinstance(source, str):
        return open(source, newline="", encoding="utf-8-sig")
    data = source.read()
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig")
    return io.StringIO(data.lstrip("\ufeff"), newline="")


def read_csv_rows(source) -> list:
    """Rows of a CSV file path or stream as dicts; fully blank rows skipped."""
    try:
        with _open_text(source) as f:
            reader = csv.DictReader(f)
            rows = []
            for rec in reader:
                clean = {k.strip(): v for k, v in rec.items() if k}
                if any(not _blank(v) for v in clean.values()):
                    rows.append(clean)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ImportFormatError(f"Failed to parse CSV: {e}") from e
    return rows


def read_xlsx_rows(source) -> list:
    """Rows of the first worksheet; header row trimmed and lower-cased."""
    try:
        wb = openpyxl.load_workbook(source, read_only=True, data_only=True)
    except Exception as e:
        # openpyxl raises a wide spread of zip/xml errors for non-workbooks
        raise ImportFormatError(f"Excel parsing failed: {e}") from e
    try:
        ws = wb.worksheets[0]
        it = ws.iter_rows(values_only=True)
        header = next(it, None)
        if header is None:
            raise ImportFormatError("Excel file is empty or has no data rows")
        headers = [str(h).strip().lower() if h is not None else "" for h in header]
        rows = []
        for values in it:
            rec = {h: v for h, v in zip(headers, values) if h}
            if any(not _blank(v) for v in rec.values()):
                rows.append(rec)
    finally:
        wb.close()
    if not rows:
        raise ImportFormatError("Excel file is empty or has no data rows")
    return rows


def load_rows(filename: str, source) -> list:
    """Pick the reader by file extension."""
    ext = os.path.splitext((filename or "").lower())[1]
    if ext not in SUPPORTED_EXTENSIONS:
        raise ImportFormatError(
            f"Please upload a CSV or Excel file ({', '.join(SUPPORTED_EXTENSIONS)})")
    if ext == ".csv":
        return read_csv_rows(source)
    return read_xlsx_rows(source)


def import_file(filename: str, source) -> dict:
    """load_rows() + process_imported_products()."""
    rows = load_rows(filename, source)
    result = process_imported_products(rows)
    result["rows_read"] = len(rows)
    log.info("Imported %s: %d rows, %d valid, %d errors", filename, len(rows),
             len(result["valid_products"]), len(result["errors"]))
    return result
