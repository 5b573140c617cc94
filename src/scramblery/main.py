import os
import platform
import sys
from pathlib import Path

import sentry_sdk

from scramblery._version import __version__
from scramblery.diagnostics import init_diagnostics
from scramblery.security import strip_pii
from scramblery.zmq_server import ZMQServer

# 4 GB address-space cap (POSIX only)
MAX_MEMORY_BYTES = 4 * 1024 * 1024 * 1024

CONSENT_PATH = "~/.scramblery/telemetry_consent"


def _init_sentry():
    """Sentry stays disabled (empty DSN) unless the user opted in."""
    consent_path = os.path.expanduser(CONSENT_PATH)
    dsn = ""
    if os.path.exists(consent_path) and Path(consent_path).read_text().strip() == "yes":
        dsn = os.environ.get("SENTRY_DSN", "")

    sentry_sdk.init(
        dsn=dsn,
        release=f"scramblery@{__version__}",
        environment=os.environ.get("SENTRY_ENV", "development"),
        traces_sample_rate=0.1,
        before_send=strip_pii,
        max_breadcrumbs=50,
    )


def _apply_resource_limits():
    """Apply the memory limit. Skipped on Windows."""
    if platform.system() == "Windows":
        return
    try:
        import resource

        _, hard = resource.getrlimit(resource.RLIMIT_AS)
        resource.setrlimit(resource.RLIMIT_AS, (MAX_MEMORY_BYTES, hard))
    except (ImportError, ValueError, OSError):
        print("WARNING: Could not set memory limit", file=sys.stderr)


def main():
    _init_sentry()
    init_diagnostics()
    _apply_resource_limits()
    server = ZMQServer()
    print(f"ZMQ_PORT={server.port}", flush=True)
    print(f"ZMQ_PING_PORT={server.ping_port}", flush=True)
    print(f"ZMQ_TOKEN={server.token}", flush=True)
    server.run()


if __name__ == "__main__":
    main()
