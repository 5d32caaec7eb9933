"""
relaylog - append-only, fingerprinted, offline-tolerant event journal.

Every event handed to relaylog is stamped, fingerprinted and written to a
local SQLite store before anything touches the network. When the link is up
the record is forwarded to a remote sink straight away; when it is down the
record waits in the local queue until a drain pass flushes it, oldest first.

Package layout (src/relaylog/):
  core/       - record model, signature, event log, connectivity, config
  core/store/ - LocalStore interface and the SQLite implementation
  sinks/      - transmission sinks (disabled, JSONL spool, HTTP)
  cli/        - Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
