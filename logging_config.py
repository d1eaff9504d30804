"""
Structured logging configuration for Proposal Desk.
Import and call setup_logging() once at app startup.
"""
import logging
import logging.handlers
import os
import json
from datetime import datetime, timezone

from proposaldesk.core import paths


class JSONFormatter(logging.Formatter):
    """One JSON object per line; proposal context keys ride along when set."""
    CONTEXT_KEYS = ("proposal_id", "proposal_number", "template_type", "action", "total",
                    "items", "route", "method", "status", "duration_ms", "user")

    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({k: getattr(record, k) for k in self.CONTEXT_KEYS if hasattr(record, k)})
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """``14:30:00 I service: Proposal saved  [PROP-2026-014 commercial]`` with level colour."""
    COLORS = {"D": "\033[36m", "I": "\033[32m", "W": "\033[33m", "E": "\033[31m", "C": "\033[35m"}
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    @staticmethod
    def context(record) -> str:
        parts = [str(getattr(record, k)) for k in ("proposal_number", "template_type", "action")
                 if getattr(record, k, None)]
        if getattr(record, "duration_ms", None) is not None:
            parts.append(f"{record.duration_ms}ms")
        return f"  [{' '.join(parts)}]" if parts else ""

    def format(self, record):
        level = record.levelname[0]
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        area = record.name.rsplit(".", 1)[-1]
        line = f"{ts} {level} {area}: {record.getMessage()}{self.context(record)}"
        if record.exc_info and record.exc_info[0]:
            line += "\n" + self.formatException(record.exc_info)
        if self.color and level in self.COLORS:
            line = f"{self.COLORS[level]}{line}{self.RESET}"
        return line


def _env_flag(name: str):
    val = os.environ.get(name)
    if val is None:
        return None
    return val.strip().lower() in ("1", "true", "yes", "on")


def setup_logging(level=None, json_logs=None, log_dir=None):
    """
    Configure logging for the full application.

    Args:
        level: Override log level (default: from LOG_LEVEL env or INFO)
        json_logs: Force JSON format (default: LOG_JSON env, else True when
                   running on a hosted environment, False in dev)
        log_dir: Where the rotating log file goes (default: DATA_DIR/logs)
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if json_logs is None:
        json_logs = _env_flag("LOG_JSON")
    if json_logs is None:
        json_logs = os.environ.get("RAILWAY_ENVIRONMENT") is not None
    log_dir = log_dir or paths.LOG_DIR

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers.clear()

    # Console handler
    console = logging.StreamHandler()
    console.setFormatter(JSONFormatter() if json_logs else HumanFormatter(color=console.stream.isatty()))
    root.addHandler(console)

    # File handler: rotates at 5MB, keeps 5 backups
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, "proposaldesk.log"),
            maxBytes=5_000_000, backupCount=5,
        )
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)
    except OSError as e:
        logging.getLogger("proposaldesk").warning("File logging disabled: %s", e)

    # Quiet noisy libs
    for name in ("urllib3", "werkzeug", "PIL", "reportlab"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("proposaldesk").info("Logging initialized (%s, json=%s)", level, json_logs)
