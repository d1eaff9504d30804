"""Tests for logging_config: formatters and setup_logging()."""
import json
import logging
import os
import sys

import pytest

from logging_config import JSONFormatter, HumanFormatter, setup_logging


def _record(msg="Proposal saved", level=logging.INFO, **extra):
    record = logging.LogRecord("proposaldesk.service", level, __file__, 42, msg, (), None,
                               func="save_proposal")
    for k, v in extra.items():
        setattr(record, k, v)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for h in root.handlers:
        h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:

    def test_context_keys_only_when_set(self):
        entry = json.loads(JSONFormatter().format(
            _record(proposal_number="PROP-2026-014", total=248.0)))
        assert entry["msg"] == "Proposal saved"
        assert entry["level"] == "INFO"
        assert entry["proposal_number"] == "PROP-2026-014"
        assert entry["total"] == 248.0
        assert "template_type" not in entry
        assert entry["where"].endswith("save_proposal:42")

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(level=logging.ERROR)
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestHumanFormatter:

    def test_plain_line_with_context(self):
        line = HumanFormatter(color=False).format(
            _record(proposal_number="PROP-2026-014", template_type="technical-rfq",
                    duration_ms=12.5))
        assert line.endswith("I service: Proposal saved  [PROP-2026-014 technical-rfq 12.5ms]")

    def test_no_context_no_suffix(self):
        assert HumanFormatter(color=False).format(_record()).endswith("service: Proposal saved")

    def test_color_wraps_line(self):
        line = HumanFormatter().format(_record(level=logging.WARNING))
        assert line.startswith("\033[33m") and line.endswith("\033[0m")


class TestSetupLogging:

    def test_file_handler_writes_json(self, tmp_path, restore_root):
        setup_logging(level="DEBUG", json_logs=False, log_dir=str(tmp_path))
        logging.getLogger("proposaldesk.test").info(
            "Rendered", extra={"proposal_number": "PROP-2026-001"})
        for h in restore_root.handlers:
            h.flush()
        with open(os.path.join(tmp_path, "proposaldesk.log"), encoding="utf-8") as f:
            entries = [json.loads(line) for line in f if line.strip()]
        assert entries[-1]["msg"] == "Rendered"
        assert entries[-1]["proposal_number"] == "PROP-2026-001"
        assert restore_root.level == logging.DEBUG

    def test_noisy_libraries_capped(self, tmp_path, restore_root):
        setup_logging(log_dir=str(tmp_path))
        assert logging.getLogger("werkzeug").level == logging.WARNING
