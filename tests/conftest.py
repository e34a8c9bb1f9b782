"""
pytest configuration and fixtures for the EMV QR codec tests.

Provides:
- Hypothesis profiles (select with HYPOTHESIS_PROFILE=ci|dev|debug)
- Sample merchant-presented payloads built with a tlv() helper
- A Flask test client for qr_appserver
"""

import os
import sys
from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from qr_crc import calculate_crc  # noqa: E402

# Default profile: balanced speed and coverage
settings.register_profile("default", max_examples=100, deadline=None)
# CI profile: more thorough testing
settings.register_profile("ci", max_examples=500, deadline=None)
# Dev profile: fast iteration
settings.register_profile("dev", max_examples=10, deadline=None)
# Debug profile: verbose output
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


def tlv(tag, value):
    return f"{tag}{len(value):02}{value}"


def sign(body):
    """Appends a correct CRC field to a payload body."""
    return body + "6304" + calculate_crc(body + "6304")


def assert_consistent(records):
    """Every length matches its value, and every template value encodes its children."""
    for record in records:
        assert record.length == f"{len(record.value):02}"
        if record.children:
            assert record.value == "".join(f"{c.id}{c.length}{c.value}" for c in record.children)
            assert_consistent(record.children)


MERCHANT_BODY = (
    tlv("00", "01")
    + tlv("01", "12")
    + tlv("26", tlv("00", "org.x9") + tlv("01", "bank.com/fetch/42"))
    + tlv("52", "5812")
    + tlv("53", "840")
    + tlv("54", "12.50")
    + tlv("58", "US")
    + tlv("59", "Sunset Cafe")
    + tlv("60", "Santa Barbara")
    + tlv("62", tlv("07", "A6008667"))
)

VIETQR_BODY = (
    tlv("00", "01")
    + tlv("01", "11")
    + tlv("38", tlv("00", "A000000727")
          + tlv("01", tlv("00", "970436") + tlv("01", "0011012345678"))
          + tlv("02", "QRIBFTTA"))
    + tlv("53", "704")
    + tlv("58", "VN")
)


@pytest.fixture
def tlv_builder():
    return tlv


@pytest.fixture
def merchant_body():
    return MERCHANT_BODY


@pytest.fixture
def merchant_payload():
    return sign(MERCHANT_BODY)


@pytest.fixture
def vietqr_payload():
    return sign(VIETQR_BODY)


@pytest.fixture
def client():
    from qr_appserver import app

    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client
