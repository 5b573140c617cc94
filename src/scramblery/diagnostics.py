"""Diagnostics — structured logging, faulthandler, crash dumps.

Everything lives under ~/.scramblery:
    logs/scramblery.log*        JSON lines, rotated at 10 MB, 7 backups
    logs/scramblery_fault.log   faulthandler output (separate fd)
    crash_reports/crash_*.json  unhandled exceptions, PII-scrubbed
"""

import datetime
import faulthandler
import json
import logging
import logging.handlers
import os
import sys
import traceback
from pathlib import Path

from scramblery.security import strip_pii

logger = logging.getLogger(__name__)

APP_DIR = "~/.scramblery"
LOG_NAME = "scramblery.log"
FAULT_LOG_NAME = "scramblery_fault.log"

MAX_CRASH_REPORTS = 5
MAX_LOG_AGE_DAYS = 7
LOG_MAX_BYTES = 10_000_000
LOG_BACKUPS = 7


def app_dir() -> str:
    return os.path.expanduser(APP_DIR)


def resolve_log_dir(requested: str | None) -> str:
    """Return ``requested`` if it sits under the app dir, else the default."""
    default = os.path.join(app_dir(), "logs")
    if not requested:
        return default
    resolved = os.path.realpath(requested)
    allowed = os.path.realpath(app_dir())
    if resolved != allowed and not resolved.startswith(allowed + os.sep):
        logger.warning("APP_LOG_DIR outside %s, using default", APP_DIR)
        return default
    return resolved


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry)


def prune_old_logs(log_dir: str, max_age_days: int = MAX_LOG_AGE_DAYS) -> int:
    """Delete rotated logs older than ``max_age_days``. Returns count removed."""
    cutoff = (
        datetime.datetime.now() - datetime.timedelta(days=max_age_days)
    ).timestamp()
    removed = 0
    for f in Path(log_dir).glob(f"{LOG_NAME}*"):
        try:
            if f.stat().st_mtime < cutoff:
                f.unlink(missing_ok=True)
                removed += 1
        except OSError as e:
            logger.debug("Could not prune %s: %s", f.name, e)
    return removed


def prune_crash_reports(crash_dir: str, keep: int = MAX_CRASH_REPORTS) -> int:
    """Keep only the newest ``keep`` crash reports. Returns count removed."""
    reports = sorted(
        Path(crash_dir).glob("crash_*.json"),
        key=lambda f: f.stat().st_mtime,
        reverse=True,
    )
    for old in reports[keep:]:
        old.unlink(missing_ok=True)
    return max(0, len(reports) - keep)


def setup_structured_logging(log_dir: str | None = None) -> str:
    """Attach a rotating JSON handler to the root logger.

    Directory comes from ``log_dir`` or APP_LOG_DIR; level from APP_LOG_LEVEL.
    """
    resolved_dir = resolve_log_dir(log_dir or os.environ.get("APP_LOG_DIR", ""))
    os.makedirs(resolved_dir, mode=0o700, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        os.path.join(resolved_dir, LOG_NAME),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUPS,
    )
    handler.setFormatter(JSONFormatter())

    level_name = os.environ.get("APP_LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    prune_old_logs(resolved_dir)
    return resolved_dir


def setup_faulthandler(log_dir: str):
    """Route C-level crash tracebacks to their own file.

    Not the rotating log: rotation would invalidate faulthandler's fd.
    """
    fault_path = os.path.join(log_dir, FAULT_LOG_NAME)
    try:
        fault_file = open(fault_path, "a", buffering=1)  # noqa: SIM115
        os.chmod(fault_path, 0o600)
        faulthandler.enable(file=fault_file, all_threads=True)
    except OSError as e:
        print(f"WARNING: Could not enable faulthandler: {e}", file=sys.stderr)


def write_crash_report(exc_type, exc_value, exc_tb, crash_dir: str) -> Path:
    """Write a PII-scrubbed JSON crash report and prune old ones."""
    os.makedirs(crash_dir, mode=0o700, exist_ok=True)
    timestamp = datetime.datetime.now(tz=datetime.timezone.utc).strftime(
        "%Y%m%dT%H%M%S%fZ"
    )
    report = {
        "timestamp": timestamp,
        "exception_type": exc_type.__name__ if exc_type else "Unknown",
        "exception_message": str(exc_value),
        "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
        "python_version": sys.version,
        "platform": sys.platform,
    }
    report = strip_pii({"extra": report}, {})["extra"]

    crash_path = Path(crash_dir) / f"crash_{timestamp}.json"
    old_umask = os.umask(0o077)
    try:
        crash_path.write_text(json.dumps(report, indent=2))
    finally:
        os.umask(old_umask)

    prune_crash_reports(crash_dir)
    return crash_path


def setup_excepthook(crash_dir: str | None = None):
    """Install a sys.excepthook that writes a crash report, then defers to the default."""
    target = crash_dir or os.path.join(app_dir(), "crash_reports")

    def _crash_excepthook(exc_type, exc_value, exc_tb):
        try:
            write_crash_report(exc_type, exc_value, exc_tb, target)
        except OSError as e:
            print(f"WARNING: Could not write crash report: {e}", file=sys.stderr)
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _crash_excepthook


def init_diagnostics():
    """Initialize all diagnostic layers. Call from main."""
    log_dir = setup_structured_logging()
    setup_faulthandler(log_dir)
    setup_excepthook()
    logger.info("Diagnostics initialized: logging=%s, faulthandler=enabled", log_dir)
