"""
pytest configuration and fixtures for the schema decoder tests.

Provides reusable fixtures for:
- The default reader registry
- MPS7 record and log builders
- Hypothesis property-based testing configuration
"""

import os
import struct
import sys
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from scalar_readers import build_registry  # noqa: E402

# Configure Hypothesis profiles
from hypothesis import settings, Verbosity  # noqa: E402

# Default profile
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


SCHEMA_DIR = Path(__file__).parent.parent / "schemas"


@pytest.fixture(scope="session")
def registry():
    return build_registry()


@pytest.fixture(scope="session")
def mps7_yaml():
    return SCHEMA_DIR / "mps7.yaml"


def _record(record_type, timestamp, user_id, amount=None):
    data = struct.pack('>BIQ', record_type, timestamp, user_id)
    if amount is not None:
        data += struct.pack('>d', amount)
    return data


def _log(records, count=None, magic=b'MPS7', version=1):
    body = b''.join(_record(*r) for r in records)
    if count is None:
        count = len(records)
    return magic + struct.pack('>BI', version, count) + body


@pytest.fixture
def make_record():
    """
    Build one MPS7 record.

    Usage:
        def test_x(make_record):
            data = make_record(0, 1393108945, 4136353673894269217, 604.27)
    """
    return _record


@pytest.fixture
def make_log():
    """
    Build a complete MPS7 log from record tuples.

    Usage:
        def test_x(make_log):
            data = make_log([(0, 1, 2, 10.0), (2, 3, 4)], count=2)
    """
    return _log


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as end-to-end tests"
    )
