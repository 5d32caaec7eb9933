from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_relaylog_logger():
    """CLI commands install a stderr handler on the package logger; undo it."""
    yield
    logger = logging.getLogger("relaylog")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
