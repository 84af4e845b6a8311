"""
pytest configuration for restlink tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import os
import sys
from pathlib import Path

import pytest

# Set test environment variables BEFORE any imports
os.environ.setdefault("TEST_MODE", "true")

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

RESTLINK_ENV_VARS = ("RESTLINK_HOST", "RESTLINK_USERNAME", "RESTLINK_PASSWORD", "RESTLINK_TOKEN")


@pytest.fixture(autouse=True)
def isolate_restlink_env(monkeypatch):
    """Keep developer shells from leaking connection settings into tests."""
    for name in RESTLINK_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
