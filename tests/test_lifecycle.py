"""Tests for proposal status transitions."""

from datetime import date

from proposaldesk.proposals.lifecycle import transition_status, is_expired


class TestTransitions:

    def test_draft_to_sent(self, sample_commercial):
        moved, errors = transition_status(sample_commercial, "sent", actor="sam")
        assert errors == []
        assert moved["status"] == "sent"
        entry = moved["status_history"][-1]
        assert entry["from"] == "draft"
        assert entry["status"] == "sent"
        assert entry["actor"] == "sam"
        assert "timestamp" in entry
        assert sample_commercial["status"] == "draft"

    def test_send_runs_send_validation(self, sample_commercial):
        sample_commercial["client_email"] = ""
        moved, errors = transition_status(sample_commercial, "sent")
        assert errors == ["Please enter an email address"]
        assert moved is sample_commercial

    def test_sent_to_accepted(self, sample_commercial):
        sample_commercial["status"] = "sent"
        moved, errors = transition_status(sample_commercial, "accepted", notes="PO received")
        assert errors == []
        assert moved["status_history"][-1]["notes"] == "PO received"

    def test_backwards_blocked(self, sample_commercial):
        sample_commercial["status"] = "accepted"
        moved, errors = transition_status(sample_commercial, "draft")
        assert errors == ["Cannot change status from accepted to draft"]
        assert moved["status"] == "accepted"

    def test_draft_to_accepted_blocked(self, sample_commercial):
        _, errors = transition_status(sample_commercial, "accepted")
        assert errors == ["Cannot change status from draft to accepted"]

    def test_admin_override(self, sample_commercial):
        sample_commercial["status"] = "expired"
        moved, errors = transition_status(sample_commercial, "draft", admin=True)
        assert errors == []
        assert moved["status"] == "draft"
        assert moved["status_history"][-1]["override"] is True

    def test_admin_send_skips_validation(self, sample_commercial):
        sample_commercial["client_email"] = ""
        moved, errors = transition_status(sample_commercial, "sent", admin=True)
        assert errors == []
        assert moved["status"] == "sent"

    def test_unknown_status(self, sample_commercial):
        _, errors = transition_status(sample_commercial, "archived")
        assert errors == ["Unknown status: archived"]

    def test_history_appends(self, sample_commercial):
        sample_commercial["status_history"] = [{"status": "draft"}]
        moved, _ = transition_status(sample_commercial, "sent")
        assert len(moved["status_history"]) == 2
        assert len(sample_commercial["status_history"]) == 1


class TestExpiry:

    def test_past_valid_until(self, sample_commercial):
        assert is_expired(sample_commercial, date(2026, 4, 2))

    def test_on_the_day_not_expired(self, sample_commercial):
        assert not is_expired(sample_commercial, date(2026, 4, 1))

    def test_no_valid_until(self, sample_technical):
        assert not is_expired(sample_technical, date(2030, 1, 1))
