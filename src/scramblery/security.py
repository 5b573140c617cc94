"""Security validation gates for Scramblery."""

import json
import os
import re
from pathlib import Path

# SEC-1: Import validation
MAX_UPLOAD_SIZE = 100 * 1024 * 1024  # 100 MB
ALLOWED_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".bmp",
    ".gif",
    ".webp",
    ".tif",
    ".tiff",
}

# SEC-2: Decoded image size cap (50 MP)
MAX_PIXELS = 50_000_000

# SEC-3: Chain depth cap
MAX_CHAIN_DEPTH = 10


def validate_upload(path: str) -> list[str]:
    """Validate an image import path. Returns list of errors (empty = valid).

    Checks (SEC-1):
    - Path resolves under the user's home directory
    - File exists
    - Not a symlink
    - Extension in whitelist
    - File size <= 100 MB
    - Filename is safe (no path traversal)
    """
    errors: list[str] = []
    p = Path(path)

    # Path traversal check — resolved path must be under user home
    if not p.resolve().is_relative_to(Path.home().resolve()):
        errors.append("Path must be within user home directory")
        return errors

    if not p.exists():
        errors.append(f"File not found: {path}")
        return errors

    if p.is_symlink():
        errors.append("Symlinks are not allowed")
        return errors

    ext = p.suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        errors.append(
            f"Extension '{ext}' not allowed. Allowed: {sorted(ALLOWED_EXTENSIONS)}"
        )

    size = p.stat().st_size
    if size > MAX_UPLOAD_SIZE:
        size_mb = size / (1024 * 1024)
        errors.append(
            f"File too large: {size_mb:.1f} MB (max {MAX_UPLOAD_SIZE // (1024 * 1024)} MB)"
        )

    name = p.name
    if ".." in name or "/" in name or "\\" in name or "\x00" in name:
        errors.append(f"Unsafe filename: {name}")

    return errors


def validate_dimensions(width, height) -> list[str]:
    """Validate image dimensions against the SEC-2 pixel cap. Returns list of errors."""
    errors: list[str] = []
    for label, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{label} must be an integer")
        elif value <= 0:
            errors.append(f"{label} must be positive")
    if errors:
        return errors
    if width * height > MAX_PIXELS:
        errors.append(
            f"Image {width}x{height} exceeds maximum {MAX_PIXELS} pixels (SEC-2)"
        )
    return errors


def validate_chain_depth(chain: list) -> list[str]:
    """Validate effect chain depth against SEC-3 cap. Returns list of errors."""
    errors: list[str] = []
    if len(chain) > MAX_CHAIN_DEPTH:
        errors.append(
            f"Chain depth {len(chain)} exceeds maximum {MAX_CHAIN_DEPTH} (SEC-3)"
        )
    return errors


# --- PII stripping for Sentry and crash dumps ---

_HOME = os.path.expanduser("~")
_USERNAME = os.path.basename(_HOME)
_PATH_PATTERN = re.compile(r"/Users/[^/\s]+|/home/[^/\s]+|C:\\Users\\[^\\\s]+")
_SENSITIVE_KEYS = {"_token", "token", "auth", "key", "secret", "password", "dsn"}


def _scrub_dict(d: dict):
    """Redact values for keys that look sensitive."""
    for key in list(d.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            d[key] = "<REDACTED>"


def strip_pii(event: dict, hint: dict) -> dict:
    """Sentry before_send hook. Strips file paths and auth tokens.

    Also usable for crash dump sanitization.
    """
    event_str = json.dumps(event)
    event_str = event_str.replace(_HOME, "<HOME>")
    if _USERNAME:
        event_str = event_str.replace(_USERNAME, "<USER>")
    event_str = _PATH_PATTERN.sub("<REDACTED_PATH>", event_str)
    event = json.loads(event_str)

    _scrub_dict(event.get("extra", {}))
    for ctx in event.get("contexts", {}).values():
        if isinstance(ctx, dict):
            _scrub_dict(ctx)
    return event
