"""relaylog constants: filesystem layout, timeouts, and limits."""

from __future__ import annotations

from enum import IntEnum

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    VALIDATION_ERROR = 3
    VERIFY_FAILED = 4
    STORAGE_ERROR = 5


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

RELAYLOG_DIR_NAME = ".relaylog"
CONFIG_FILENAME = "config.toml"
DB_FILENAME = "relaylog.db"
SPOOL_FILENAME = "outbound.jsonl"

# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

SIGNATURE_PREFIX = "FP"
SIGNATURE_DIGEST_CHARS = 16  # hex chars of SHA-256 kept in the signature
DEFAULT_TX_PREFIX = "TX"

# ---------------------------------------------------------------------------
# Transmission
# ---------------------------------------------------------------------------

DEFAULT_SEND_TIMEOUT_SECONDS = 10.0
DEFAULT_REMOTE_LATENCY_MS = 240  # simulated long-haul link delay for remote records
DEFAULT_PAGE_SIZE = 100  # rows per keyset page when iterating the store
