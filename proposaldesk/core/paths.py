"""
proposaldesk/core/paths.py: Centralized Path Configuration

Single source of truth for directory paths. Every module imports from here
instead of computing its own DATA_DIR.

Priority: PROPOSALDESK_DATA_DIR env → hosted volume mount → project data/
"""

import os
import logging

log = logging.getLogger("proposaldesk.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

_LOCAL_DATA_DIR = os.path.join(PROJECT_ROOT, "data")


def _resolve_data_dir() -> str:
    """Find the best persistent data directory."""
    env_dir = os.environ.get("PROPOSALDESK_DATA_DIR", "")
    if env_dir:
        return env_dir

    vol_mount = os.environ.get("RAILWAY_VOLUME_MOUNT_PATH", "")
    if vol_mount and os.path.isdir(vol_mount):
        return vol_mount if vol_mount.endswith("/data") else os.path.join(vol_mount, "data")

    return _LOCAL_DATA_DIR


def _resolve_output_dir(data_dir: str) -> str:
    env_dir = os.environ.get("PROPOSALDESK_OUTPUT_DIR", "")
    if env_dir:
        return env_dir
    return os.path.join(data_dir, "output")


DATA_DIR = _resolve_data_dir()
OUTPUT_DIR = _resolve_output_dir(DATA_DIR)
LOG_DIR = os.path.join(DATA_DIR, "logs")
MEDIA_DIR = os.environ.get("PROPOSALDESK_MEDIA_DIR", os.path.join(DATA_DIR, "media"))
DB_PATH = os.path.join(DATA_DIR, "proposaldesk.db")
CONFIG_PATH = os.environ.get("PROPOSALDESK_CONFIG",
                             os.path.join(PROJECT_ROOT, "proposaldesk_config.json"))


def ensure_dirs(*dirs):
    """Create data/output dirs on demand (not at import, so tests can redirect)."""
    for d in dirs or (DATA_DIR, OUTPUT_DIR):
        os.makedirs(d, exist_ok=True)


def validate_paths() -> dict:
    """Startup check of the resolved paths; create_app() logs the result.

    Returns:
        {"ok": bool, "errors": [str], "warnings": [str], "resolved": {name: path}}
    """
    result = {"ok": True, "errors": [], "warnings": [], "resolved": {}}

    checks = {
        "PROJECT_ROOT": (PROJECT_ROOT, True),
        "DATA_DIR": (DATA_DIR, True),
        "OUTPUT_DIR": (OUTPUT_DIR, True),
        "MEDIA_DIR": (MEDIA_DIR, False),
        "CONFIG_PATH": (CONFIG_PATH, False),
    }

    for name, (path, required) in checks.items():
        result["resolved"][name] = path
        if not os.path.exists(path):
            if required:
                result["errors"].append(f"{name} not found: {path}")
                result["ok"] = False
            else:
                result["warnings"].append(f"{name} not found: {path}")

    test_file = os.path.join(DATA_DIR, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"DATA_DIR not writable: {e}")
        result["ok"] = False

    return result
