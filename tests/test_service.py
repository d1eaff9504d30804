"""
Tests for proposals.service: numbering, save / autosave, send, status, generate.

Verified against the SQLite store in a per-test tmp dir (see conftest.py).
"""
import os
from datetime import date

import pytest

from proposaldesk.core import db
from proposaldesk.core.errors import RenderError, CollaboratorError, ItemValidationError
from proposaldesk.forms import documents
from proposaldesk.proposals import service


# ═══════════════════════════════════════════════════════════════════════════════
# Numbering
# ═══════════════════════════════════════════════════════════════════════════════

class TestNumbering:

    def test_sequential(self, initialized_db):
        assert service.next_proposal_number(year=2026) == "PROP-2026-001"
        assert service.next_proposal_number(year=2026) == "PROP-2026-002"

    def test_resets_each_year(self, initialized_db):
        service.next_proposal_number(year=2026)
        service.next_proposal_number(year=2026)
        assert service.next_proposal_number(year=2027) == "PROP-2027-001"

    def test_peek_does_not_consume(self, initialized_db):
        assert service.peek_next_proposal_number(year=2026) == "PROP-2026-001"
        assert service.peek_next_proposal_number(year=2026) == "PROP-2026-001"
        assert service.next_proposal_number(year=2026) == "PROP-2026-001"
        assert service.peek_next_proposal_number(year=2026) == "PROP-2026-002"

    def test_custom_prefix(self, initialized_db):
        assert service.next_proposal_number("QT", 2026) == "QT-2026-001"


# ═══════════════════════════════════════════════════════════════════════════════
# Model helpers
# ═══════════════════════════════════════════════════════════════════════════════

class TestNewProposal:

    def test_defaults(self):
        p = service.new_proposal()
        assert p["template_type"] == "simple-commercial"
        assert p["status"] == "draft"
        assert p["tax_rate"] == 10
        assert p["products"] == [] and p["rfq_items"] == []
        assert p["grand_total"] == 0.0
        assert p["delivery_terms"]["payment_terms"] == "50% prepayment"
        assert p["company_details"]["name"] == "Your Company Name"

    def test_fields_and_company_override(self, company_profile):
        cfg = {"companies": {"orbit": company_profile}, "default_tax_rate": 12}
        p = service.new_proposal("technical-rfq", "orbit", cfg=cfg, proposal_title="Valves")
        assert p["proposal_title"] == "Valves"
        assert p["tax_rate"] == 12
        assert p["company_details"]["tax_id"] == "305112233"

    def test_refresh_derived_leaves_input(self, sample_commercial):
        out = service.refresh_derived(sample_commercial)
        assert out["grand_total"] == 248.0
        assert out["products"][0]["line_total"] == 198.0
        assert "grand_total" not in sample_commercial
        assert "line_total" not in sample_commercial["products"][0]

    def test_change_template_keeps_other_collection(self, sample_commercial):
        out = service.change_template_type(sample_commercial, "technical-rfq")
        assert out["template_type"] == "technical-rfq"
        assert out["products"] == sample_commercial["products"]
        assert out["grand_total"] == 0.0

    def test_add_item_merges(self, sample_commercial):
        out = service.add_item(sample_commercial, {"id": "p1", "quantity": 1})
        assert len(out["products"]) == 2
        assert out["products"][0]["quantity"] == 3

    def test_add_item_bad_quantity(self, sample_commercial):
        with pytest.raises(ItemValidationError):
            service.add_item(sample_commercial, {"id": "new", "quantity": 0, "unit_price": 5})

    def test_add_technical_item(self, sample_technical):
        out = service.add_item(sample_technical, {"description": "flange", "quantity": 4,
                                                  "unit_price": 10})
        row = out["rfq_items"][-1]
        assert row["item_number"] == 3
        assert row["description"] == "FLANGE"
        assert out["grand_total"] == pytest.approx(165.0)

    def test_update_and_remove(self, sample_commercial):
        out = service.update_item(sample_commercial, "p2", "unit_price", 150)
        assert out["subtotal"] == 350.0
        out = service.remove_item(out, "p1")
        assert out["grand_total"] == 150.0

    def test_duplicate(self, sample_technical):
        out = service.duplicate_item(sample_technical, "r1")
        assert len(out["rfq_items"]) == 3
        assert out["subtotal"] == 160.0

    def test_raw_items_price_like_added_items(self):
        raw = service.new_proposal(tax_rate=10, products=[
            {"id": "a", "unit_price": "100", "quantity": "2", "discount": 10}])
        added = service.add_item(service.new_proposal(tax_rate=10),
                                 {"id": "a", "unit_price": 100, "quantity": 2, "discount": 10})
        assert raw["grand_total"] == added["grand_total"] == 198.0
        assert raw["products"][0]["quantity"] == 2


# ═══════════════════════════════════════════════════════════════════════════════
# Persistence
# ═══════════════════════════════════════════════════════════════════════════════

class TestSave:

    def test_save_assigns_id_and_totals(self, initialized_db, sample_commercial):
        saved, errors = service.save_proposal(sample_commercial)
        assert errors == []
        stored = db.get_proposal(saved["id"])
        assert stored["grand_total"] == 248.0
        assert stored["proposal_number"] == "PROP-2026-014"

    def test_save_numbers_unnumbered(self, initialized_db, sample_commercial):
        del sample_commercial["proposal_number"]
        saved, _ = service.save_proposal(sample_commercial)
        assert saved["proposal_number"].startswith("PROP-")

    def test_invalid_is_not_written(self, initialized_db, sample_commercial):
        sample_commercial["client_id"] = ""
        saved, errors = service.save_proposal(sample_commercial)
        assert errors[0] == "Please select a client for the proposal"
        assert saved is sample_commercial
        assert db.list_proposals() == []

    def test_second_save_updates(self, initialized_db, sample_commercial):
        saved, _ = service.save_proposal(sample_commercial)
        saved["proposal_title"] = "Revised"
        again, _ = service.save_proposal(saved)
        assert again["id"] == saved["id"]
        assert len(db.list_proposals()) == 1
        assert db.get_proposal(saved["id"])["proposal_title"] == "Revised"

    def test_store_failure_raises(self, temp_data_dir, sample_commercial):
        with pytest.raises(CollaboratorError):
            service.save_proposal(sample_commercial)


class TestAutosave:

    def test_creates_then_converges(self, initialized_db, sample_commercial):
        first, wrote = service.autosave(sample_commercial)
        assert wrote is True
        second, wrote = service.autosave(first)
        assert wrote is False
        third, wrote = service.autosave(second)
        assert wrote is False
        assert third == second

    def test_change_triggers_write(self, initialized_db, sample_commercial):
        first, _ = service.autosave(sample_commercial)
        first["notes"] = "Changed"
        _, wrote = service.autosave(first)
        assert wrote is True
        assert db.get_proposal(first["id"])["notes"] == "Changed"

    def test_invalid_drafts_still_saved(self, initialized_db):
        draft, wrote = service.autosave({"template_type": "technical-rfq", "rfq_items": []})
        assert wrote is True
        assert db.get_proposal(draft["id"]) is not None

    def test_missing_record_raises(self, initialized_db, sample_commercial):
        with pytest.raises(CollaboratorError):
            service.autosave({**sample_commercial, "id": "gone"})


class TestDuplicateAndExport:

    def test_duplicate_is_fresh_draft(self, initialized_db, sample_commercial):
        saved, _ = service.save_proposal(sample_commercial)
        sent, _ = service.send_proposal(saved)
        dup = service.duplicate_proposal(sent)
        assert dup["id"] != saved["id"]
        assert dup["proposal_number"].startswith("DUP-PROP-2026-014-")
        assert dup["status"] == "draft"
        assert dup["status_history"] == []
        assert dup["products"] == sent["products"]
        assert db.get_proposal(saved["id"])["status"] == "sent"
        assert len(db.list_proposals()) == 2

    def test_duplicate_unnumbered(self, initialized_db):
        dup = service.duplicate_proposal({"template_type": "technical-rfq", "rfq_items": []})
        assert dup["proposal_number"].startswith("DUP-PROP-")

    def test_export_rows(self, sample_commercial, sample_technical):
        sample_commercial["created_at"] = "2026-03-01T09:15:00"
        rows = [service.refresh_derived(sample_commercial),
                service.refresh_derived(sample_technical)]
        lines = service.export_proposals_csv(rows).splitlines()
        assert lines == [
            "number,client,company,total,status,items,created,expires",
            "PROP-2026-014,Aqua Works Ltd,Orbit Trading LLC,248.00,draft,2,2026-03-01,2026-04-01",
            "PROP-2026-015,Refinery Operations JSC,Orbit Trading LLC,121.00,draft,2,,",
        ]

    def test_export_quotes_commas(self, sample_commercial):
        sample_commercial["client_name"] = 'Aqua Works, "North"'
        line = service.export_proposals_csv([sample_commercial]).splitlines()[1]
        assert line.startswith('PROP-2026-014,"Aqua Works, ""North""",')

    def test_export_empty_is_header_only(self):
        assert service.export_proposals_csv([]) == (
            "number,client,company,total,status,items,created,expires\n")


class TestStatus:

    def test_send(self, initialized_db, sample_commercial):
        saved, _ = service.save_proposal(sample_commercial)
        sent, errors = service.send_proposal(saved, actor="sam")
        assert errors == []
        stored = db.get_proposal(saved["id"])
        assert stored["status"] == "sent"
        assert stored["status_history"][-1]["actor"] == "sam"

    def test_send_blocked_without_email(self, initialized_db, sample_commercial):
        sample_commercial["client_email"] = ""
        saved, _ = service.save_proposal(sample_commercial)
        _, errors = service.send_proposal(saved)
        assert errors == ["Please enter an email address"]
        assert db.get_proposal(saved["id"])["status"] == "draft"

    def test_set_status_persists(self, initialized_db, sample_commercial):
        saved, _ = service.save_proposal({**sample_commercial, "status": "sent"})
        moved, errors = service.set_status(saved, "accepted", notes="PO 4471")
        assert errors == []
        assert db.get_proposal(saved["id"])["status"] == "accepted"

    def test_expire_overdue(self, initialized_db, sample_commercial):
        saved, _ = service.save_proposal(sample_commercial)
        service.send_proposal(saved)
        expired = service.expire_overdue(date(2026, 5, 1))
        assert expired == [saved["id"]]
        stored = db.get_proposal(saved["id"])
        assert stored["status"] == "expired"
        assert stored["status_history"][-1]["actor"] == "system"

    def test_expire_skips_current(self, initialized_db, sample_commercial):
        saved, _ = service.save_proposal(sample_commercial)
        service.send_proposal(saved)
        assert service.expire_overdue(date(2026, 3, 15)) == []


# ═══════════════════════════════════════════════════════════════════════════════
# Document output
# ═══════════════════════════════════════════════════════════════════════════════

class TestGenerate:

    def test_pdf(self, sample_commercial):
        content, filename = service.generate_document(sample_commercial)
        assert content.startswith(b"%PDF")
        assert filename == "PROP-2026-014-proposal.pdf"

    def test_in_flight_guard(self, sample_commercial):
        sample_commercial["id"] = "abc123"
        service._inflight.add("abc123")
        with pytest.raises(RenderError, match="already in progress"):
            service.generate_document(sample_commercial)

    def test_guard_released_after_run(self, sample_commercial):
        sample_commercial["id"] = "abc123"
        service.generate_document(sample_commercial)
        assert "abc123" not in service._inflight

    def test_falls_back_to_preview(self, sample_commercial, monkeypatch):
        def broken(*args, **kwargs):
            raise RenderError("font missing")

        monkeypatch.setitem(documents.RENDERERS, "commercial", broken)
        content, filename = service.generate_document(sample_commercial)
        assert filename == "PROP-2026-014-proposal-preview.html"
        assert "<span>Total:</span><span>$248.00</span>" in content

    def test_unexpected_failure_falls_back_to_preview(self, sample_commercial, monkeypatch):
        def broken(*args, **kwargs):
            raise KeyError("logo")

        monkeypatch.setitem(documents.RENDERERS, "commercial", broken)
        content, filename = service.generate_document(sample_commercial)
        assert filename.endswith("-preview.html")

    def test_no_fallback_raises(self, sample_commercial, monkeypatch):
        def broken(*args, **kwargs):
            raise RenderError("font missing")

        monkeypatch.setitem(documents.RENDERERS, "commercial", broken)
        with pytest.raises(RenderError):
            service.generate_document(sample_commercial, fallback_to_preview=False)

    def test_preview(self, sample_technical):
        html, filename = service.generate_preview(sample_technical)
        assert filename == "RFQ-TQ_2026_07-preview.html"
        assert "$121.00" in html

    def test_save_output(self, temp_data_dir):
        path = service.save_output(b"%PDF-1.4 test", "../evil/name.pdf")
        assert os.path.dirname(path) == os.path.join(temp_data_dir, "output")
        with open(path, "rb") as f:
            assert f.read() == b"%PDF-1.4 test"

    def test_save_output_text(self, tmp_path):
        path = service.save_output("<html></html>", "x-preview.html", str(tmp_path))
        assert open(path, encoding="utf-8").read() == "<html></html>"

    def test_save_output_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(CollaboratorError):
            service.save_output(b"x", "a.pdf", str(blocker))
