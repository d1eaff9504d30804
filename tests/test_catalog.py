"""
Tests for catalog import (CSV / XLSX → canonical products) and the products table.

    process_imported_products(rows) -> {"valid_products": [...], "errors": [{row, product, error}]}
    import_file(filename, source)   -> same + rows_read
"""
import io

import openpyxl
import pytest

from proposaldesk.core.errors import ImportFormatError
from proposaldesk.catalog import importer, store
from proposaldesk.catalog.importer import (
    normalize_row, process_imported_products, map_columns, import_file, RowError,
)


def _xlsx_bytes(rows) -> io.BytesIO:
    wb = openpyxl.Workbook()
    ws = wb.active
    for r in rows:
        ws.append(r)
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


# ═══════════════════════════════════════════════════════════════════════════════
# Column mapping and row normalization
# ═══════════════════════════════════════════════════════════════════════════════

class TestMapping:

    def test_aliases(self):
        m = map_columns({"Product Name": "Pump", "Unit Price": "10", "Qty": "3",
                         "Supplier": "Acme", "Colour": "red"})
        assert m == {"name": "Pump", "price": "10", "quantity": "3", "vendor": "Acme"}

    def test_first_non_blank_wins(self):
        assert map_columns({"name": "", "product": "Valve"})["name"] == "Valve"


class TestNormalizeRow:

    def test_defaults(self):
        p = normalize_row({"name": "Pump", "price": "$1,200.50"})
        assert p["price"] == 1200.5
        assert p["category"] == "Uncategorized"
        assert p["unit"] == "pcs"
        assert p["status"] == "active"
        assert p["sku"].startswith("IMP-")
        assert p["tags"] == []

    def test_name_from_row_number(self):
        assert normalize_row({"sku": "A-1"}, row=7)["name"] == "Imported Product 7"

    def test_missing_name_and_sku(self):
        with pytest.raises(RowError, match="Missing required fields: name or SKU"):
            normalize_row({"price": "3"})

    def test_invalid_price_format(self):
        with pytest.raises(RowError, match="Invalid price format"):
            normalize_row({"name": "x", "price": "cheap"})

    def test_negative_price(self):
        with pytest.raises(RowError, match="Invalid price"):
            normalize_row({"name": "x", "price": "-1"})

    def test_negative_quantity(self):
        with pytest.raises(RowError, match="Invalid quantity"):
            normalize_row({"name": "x", "qty": "-2"})

    def test_flags_and_tags(self):
        p = normalize_row({"name": "x", "taxable": "Yes", "active": "false",
                           "tags": "pump, water ,"})
        assert p["taxable"] is True
        assert p["status"] == "inactive"
        assert p["tags"] == ["pump", "water"]

    def test_numeric_sku_from_excel(self):
        assert normalize_row({"sku": 1001.0})["sku"] == "1001"


class TestBatch:

    def test_partial_success(self):
        rows = [
            {"name": "Pump", "price": "100"},
            {"description": "no name or sku"},
            {"sku": "V-2", "price": "5"},
        ]
        result = process_imported_products(rows)
        assert len(result["valid_products"]) == 2
        assert result["errors"] == [{"row": 2, "product": rows[1],
                                     "error": "Missing required fields: name or SKU"}]

    def test_empty(self):
        assert process_imported_products([]) == {"valid_products": [], "errors": []}


# ═══════════════════════════════════════════════════════════════════════════════
# File readers
# ═══════════════════════════════════════════════════════════════════════════════

class TestReaders:

    def test_csv_with_bom(self):
        data = "\ufeffProduct Name,SKU,Price,Qty\nPump,P-1,10,2\n,,,\nValve,V-1,abc,1\n"
        result = import_file("catalog.csv", io.BytesIO(data.encode("utf-8")))
        assert result["rows_read"] == 2
        assert [p["sku"] for p in result["valid_products"]] == ["P-1"]
        assert result["errors"][0]["error"] == "Invalid price format"

    def test_csv_from_path(self, tmp_path):
        path = tmp_path / "products.csv"
        path.write_text("name,price\nWidget,3.5\n", encoding="utf-8")
        result = import_file(str(path), str(path))
        assert result["valid_products"][0]["price"] == 3.5

    def test_xlsx(self):
        buf = _xlsx_bytes([["Name", "SKU", "Unit Price", "Category", "Taxable"],
                           ["Pump", "P-1", 99.9, "Pumps", True],
                           [None, None, None, None, None],
                           ["Hose", "H-1", 4, None, False]])
        result = import_file("Catalog.XLSX", buf)
        assert result["rows_read"] == 2
        pump, hose = result["valid_products"]
        assert pump["price"] == 99.9
        assert pump["taxable"] is True
        assert hose["category"] == "Uncategorized"

    def test_xlsx_header_only(self):
        with pytest.raises(ImportFormatError, match="no data rows"):
            import_file("empty.xlsx", _xlsx_bytes([["name", "price"]]))

    def test_not_a_workbook(self):
        with pytest.raises(ImportFormatError):
            import_file("broken.xlsx", io.BytesIO(b"not a zip"))

    def test_unsupported_extension(self):
        with pytest.raises(ImportFormatError, match=r"\.csv, \.xlsx"):
            importer.load_rows("products.pdf", io.BytesIO(b""))

    @pytest.mark.parametrize("filename", ["products", "products.csv.bak", "", None])
    def test_extension_must_be_last(self, filename):
        with pytest.raises(ImportFormatError):
            importer.load_rows(filename, io.BytesIO(b"name\nPump\n"))


# ═══════════════════════════════════════════════════════════════════════════════
# Products table
# ═══════════════════════════════════════════════════════════════════════════════

class TestStore:

    def _products(self):
        return process_imported_products([
            {"name": "Centrifugal Pump", "sku": "P-1", "price": "250", "category": "Pumps",
             "taxable": "yes", "tags": "water"},
            {"name": "Garden Hose", "sku": "H-1", "price": "12", "category": "Hoses"},
        ])["valid_products"]

    def test_upsert_adds_then_updates(self, initialized_db):
        assert store.upsert_products(self._products()) == {"added": 2, "updated": 0}
        changed = self._products()
        changed[0]["price"] = 275.0
        assert store.upsert_products(changed) == {"added": 0, "updated": 2}
        assert store.search_catalog("pump")[0]["price"] == 275.0

    def test_search_and_category(self, initialized_db):
        store.upsert_products(self._products())
        assert [p["sku"] for p in store.search_catalog("hose")] == ["H-1"]
        assert [p["sku"] for p in store.search_catalog("", category="pumps")] == ["P-1"]
        assert store.search_catalog("water")[0]["tags"] == ["water"]

    def test_catalog_item(self, initialized_db):
        store.upsert_products(self._products())
        product = store.search_catalog("pump")[0]
        item = store.catalog_item_from_product(store.get_product(product["id"]))
        assert item["id"] == f"prod-{product['id']}"
        assert item["unit_price"] == 250.0
        assert item["taxable"] is True

    def test_missing_product(self, initialized_db):
        assert store.get_product(999) is None
