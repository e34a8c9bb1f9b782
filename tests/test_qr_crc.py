"""
Tests for the CRC-16/IBM-3740 engine and checksum field handling.
"""

import pytest

from conftest import MERCHANT_BODY, tlv
from qr_crc import (
    CRC_TABLE,
    calculate_crc,
    crc16,
    find_checksum,
    recompute_crc,
    serialize_for_checksum,
    validate_crc,
)
from qr_errors import ChecksumFieldMissingError, ChecksumMismatchError
from qr_parser import decode, encode


def bitwise_crc16(data):
    """Reference implementation, one bit at a time."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def _wrong(checksum):
    return "0000" if checksum != "0000" else "FFFF"


class TestCrc16:

    def test_check_value(self):
        assert crc16(b"123456789") == 0x29B1
        assert calculate_crc("123456789") == "29B1"

    def test_empty(self):
        assert crc16(b"") == 0xFFFF
        assert calculate_crc("") == "FFFF"

    def test_table(self):
        assert len(CRC_TABLE) == 256
        assert CRC_TABLE[0] == 0x0000
        assert CRC_TABLE[1] == 0x1021
        assert CRC_TABLE[255] == 0x1EF0

    @pytest.mark.parametrize("text", ["A", "000201", MERCHANT_BODY, "Cà phê Sài Gòn"])
    def test_matches_bitwise_reference(self, text):
        assert crc16(text) == bitwise_crc16(text.encode("utf-8"))

    def test_uppercase_four_digits(self):
        for text in ("A", "B", "000201010211"):
            checksum = calculate_crc(text)
            assert len(checksum) == 4
            assert checksum == checksum.upper()


class TestSerializeForChecksum:

    def test_excludes_top_level_checksum_only(self):
        inner = tlv("63", "ABCD")
        tree = decode("000201" + tlv("62", inner) + "6304ABCD")
        assert serialize_for_checksum(tree) == "000201" + tlv("62", inner)

    def test_checksum_in_the_middle(self):
        tree = decode("000201" + "63041234" + "5802US")
        assert serialize_for_checksum(tree) == "0002015802US"

    def test_matches_encoding_of_consistent_tree(self, vietqr_payload):
        tree = decode(vietqr_payload)
        assert serialize_for_checksum(tree) + vietqr_payload[-8:] == encode(tree)


class TestFindChecksum:

    def test_found(self, merchant_payload):
        assert find_checksum(decode(merchant_payload)) == 10

    def test_missing(self):
        assert find_checksum(decode("000201")) is None


class TestValidateCrc:

    def test_valid(self, merchant_payload):
        assert validate_crc(decode(merchant_payload)) == merchant_payload[-4:]

    def test_missing(self):
        with pytest.raises(ChecksumFieldMissingError):
            validate_crc(decode("000201"))

    def test_mismatch(self, merchant_payload):
        stored = _wrong(merchant_payload[-4:])
        tree = decode(merchant_payload[:-4] + stored)
        with pytest.raises(ChecksumMismatchError) as excinfo:
            validate_crc(tree)
        assert excinfo.value.expected == merchant_payload[-4:]
        assert excinfo.value.found == stored

    def test_comparison_is_case_sensitive(self):
        body = "000201"
        checksum = calculate_crc(body + "6304")
        if checksum == checksum.lower():
            pytest.skip("checksum has no letters")
        with pytest.raises(ChecksumMismatchError):
            validate_crc(decode(body + "6304" + checksum.lower()))

    def test_tampered_value_detected(self, merchant_payload):
        tampered = merchant_payload.replace("Sunset Cafe", "Sunset Cafy")
        with pytest.raises(ChecksumMismatchError):
            validate_crc(decode(tampered))


class TestRecomputeCrc:

    def test_repairs_checksum(self, merchant_payload):
        broken = decode(merchant_payload[:-4] + _wrong(merchant_payload[-4:]))
        fixed = recompute_crc(broken)
        assert encode(fixed) == merchant_payload
        assert validate_crc(fixed) == merchant_payload[-4:]

    def test_does_not_mutate_input(self, merchant_payload):
        broken = decode(merchant_payload[:-4] + _wrong(merchant_payload[-4:]))
        snapshot = list(broken)
        recompute_crc(broken)
        assert broken == snapshot

    def test_idempotent(self, vietqr_payload):
        once = recompute_crc(decode(vietqr_payload))
        assert recompute_crc(once) == once

    def test_no_checksum_field(self):
        tree = decode("000201")
        assert recompute_crc(tree) is tree

    def test_fixes_checksum_length(self):
        tree = decode("000201" + "6302AB")
        fixed = recompute_crc(tree)
        assert fixed[1].length == "04"
        validate_crc(fixed)

    def test_checksum_not_last(self):
        tree = recompute_crc(decode("000201" + "63040000" + "5802US"))
        assert tree[1].value == calculate_crc("0002015802US" + "6304")
        validate_crc(tree)
