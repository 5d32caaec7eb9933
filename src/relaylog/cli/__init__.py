"""relaylog.cli - Click-based CLI entry point and command handlers."""
