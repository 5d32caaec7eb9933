"""
relaylog test suite.

Tests are organized by layer:
    tests/unit/         Unit tests (SQLite in tmp_path, no network)
    tests/integration/  End-to-end scenarios and the CLI
    tests/safety/       Guards on defaults that must not drift

Run all tests:
    pytest
"""
