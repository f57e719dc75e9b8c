"""
Pytest Configuration

Makes ``src`` importable for runs from a plain checkout and quiets the
package logger's handlers between tests.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def _reset_pipeline_logger():
    """Drop handlers installed by ``setup_logging`` during a test."""

    yield
    logger = logging.getLogger("HttpClients.Pipeline")
    for handler in list(logger.handlers):
        if getattr(handler, "_http_clients_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)
