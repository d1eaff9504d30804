"""
Product Catalog: products table fed by the importer.

Rows are keyed by SKU; re-importing a SKU updates it in place. Catalog rows
turn into commercial line-item candidates via catalog_item_from_product().
"""

import json
import logging
import sqlite3
from datetime import datetime

from proposaldesk.core import db
from proposaldesk.core.errors import CollaboratorError

log = logging.getLogger("proposaldesk.catalog")

CATALOG_SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at  TEXT NOT NULL,
    updated_at  TEXT,
    sku         TEXT UNIQUE,
    name        TEXT NOT NULL,
    description TEXT,
    category    TEXT,
    unit        TEXT DEFAULT 'pcs',
    price       REAL DEFAULT 0,
    cost        REAL DEFAULT 0,
    quantity    INTEGER DEFAULT 0,
    taxable     INTEGER DEFAULT 0,
    status      TEXT DEFAULT 'active',
    image_url   TEXT,
    vendor      TEXT,
    weight      REAL DEFAULT 0,
    dimensions  TEXT,
    tags        TEXT DEFAULT '[]',
    source      TEXT DEFAULT 'import'
);
CREATE INDEX IF NOT EXISTS idx_products_category ON products(category);
CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);
"""

_COLUMNS = ("sku", "name", "description", "category", "unit", "price", "cost",
            "quantity", "taxable", "status", "image_url", "vendor", "weight",
            "dimensions", "tags", "source")


def init_catalog() -> int:
    """Create the products table; returns the current row count."""
    try:
        with db.get_db() as conn:
            conn.executescript(CATALOG_SCHEMA)
            count = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]
    except sqlite3.Error as e:
        raise CollaboratorError(f"Catalog init failed: {e}") from e
    log.info("Catalog ready: %d products", count)
    return count


def _row_to_product(row) -> dict:
    item = dict(row)
    item["tags"] = db._jl(item.get("tags"), [])
    item["taxable"] = bool(item.get("taxable"))
    return item


def upsert_products(products, source: str = "import") -> dict:
    """Insert or update by SKU. Returns {"added", "updated"}."""
    stats = {"added": 0, "updated": 0}
    now = datetime.now().isoformat()
    try:
        with db.get_db() as conn:
            for p in products or []:
                values = dict(p)
                values["tags"] = json.dumps(p.get("tags") or [])
                values["taxable"] = 1 if p.get("taxable") else 0
                values["source"] = source
                existing = conn.execute("SELECT id FROM products WHERE sku = ?",
                                        (p.get("sku"),)).fetchone()
                if existing:
                    conn.execute(f"""
                        UPDATE products SET {", ".join(f"{c} = ?" for c in _COLUMNS)},
                          updated_at = ?
                        WHERE id = ?
                    """, (*(values.get(c) for c in _COLUMNS), now, existing["id"]))
                    stats["updated"] += 1
                else:
                    conn.execute(f"""
                        INSERT INTO products (created_at, updated_at, {", ".join(_COLUMNS)})
                        VALUES (?, ?, {", ".join("?" for _ in _COLUMNS)})
                    """, (now, now, *(values.get(c) for c in _COLUMNS)))
                    stats["added"] += 1
    except sqlite3.Error as e:
        log.error("upsert_products: %s", e)
        raise CollaboratorError(str(e)) from e
    log.info("Catalog upsert: %d added, %d updated", stats["added"], stats["updated"])
    return stats


def search_catalog(query: str = "", limit: int = 50, category: str = None) -> list:
    """Name matches first, then by price."""
    q = f"%{(query or '').lower()}%"
    sql = """
        SELECT * FROM products
        WHERE (lower(name) LIKE ? OR lower(description) LIKE ? OR lower(tags) LIKE ?
               OR lower(sku) LIKE ? OR lower(category) LIKE ? OR lower(vendor) LIKE ?)
    """
    args = [q, q, q, q, q, q]
    if category:
        sql += " AND lower(category) = ?"
        args.append(category.lower())
    sql += " ORDER BY CASE WHEN lower(name) LIKE ? THEN 0 ELSE 1 END, price ASC LIMIT ?"
    args += [q, limit]
    try:
        with db.get_db() as conn:
            rows = conn.execute(sql, args).fetchall()
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    return [_row_to_product(r) for r in rows]


def get_product(product_id) -> dict | None:
    try:
        with db.get_db() as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?",
                               (product_id,)).fetchone()
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    return _row_to_product(row) if row else None


def catalog_item_from_product(product: dict) -> dict:
    """Commercial line-item candidate for a catalog row.

    The item id is derived from the product id, so adding the same product
    twice merges into one line.
    """
    return {
        "id": f"prod-{product.get('id')}",
        "name": product.get("name") or "",
        "category": product.get("category") or "",
        "description": product.get("description") or "",
        "image_url": product.get("image_url") or "",
        "unit_price": product.get("price") or 0,
        "taxable": bool(product.get("taxable")),
    }
