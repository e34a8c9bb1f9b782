# Purpose: CRC-16 checksum (ID 63) for EMV QR payloads.
# CRC-16/IBM-3740 a.k.a. CCITT-FALSE: poly 0x1021, init 0xFFFF, no final XOR, MSB first.

from dataclasses import replace

from qr_errors import ChecksumFieldMissingError, ChecksumMismatchError

CRC_POLYNOMIAL = 0x1021
CRC_INITIAL = 0xFFFF
CHECKSUM_ID = "63"
CHECKSUM_LENGTH = "04"


def _make_table():
    table = []
    for byte in range(256):
        crc = byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ CRC_POLYNOMIAL
            else:
                crc = crc << 1
            crc &= 0xFFFF
        table.append(crc)
    return tuple(table)


CRC_TABLE = _make_table()


def crc16(data):
    """CRC-16/IBM-3740 of bytes, or of the UTF-8 encoding of a string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    crc = CRC_INITIAL
    for byte in data:
        crc = ((crc << 8) & 0xFFFF) ^ CRC_TABLE[((crc >> 8) ^ byte) & 0xFF]
    return crc


def calculate_crc(data_string):
    """Calculates the CRC as the 4 uppercase hex digits stored in ID 63."""
    return f"{crc16(data_string):04X}"


def _serialize(record):
    if record.children:
        return record.id + record.length + "".join(_serialize(child) for child in record.children)
    return record.id + record.length + record.value


def serialize_for_checksum(tree):
    """TLV string of the whole tree with the top-level checksum record left out."""
    return "".join(_serialize(record) for record in tree if record.id != CHECKSUM_ID)


def find_checksum(tree):
    """Index of the top-level checksum record, or None."""
    for index, record in enumerate(tree):
        if record.id == CHECKSUM_ID:
            return index
    return None


def validate_crc(tree):
    """Checks the stored checksum against a freshly computed one.

    Returns the checksum on success; raises ChecksumFieldMissingError or
    ChecksumMismatchError otherwise.
    """
    index = find_checksum(tree)
    if index is None:
        raise ChecksumFieldMissingError()
    checksum = tree[index]
    expected = calculate_crc(serialize_for_checksum(tree) + CHECKSUM_ID + checksum.length)
    if expected != checksum.value:
        raise ChecksumMismatchError(expected, checksum.value)
    return expected


def recompute_crc(tree):
    """Returns a copy of tree with the checksum record rewritten.

    A tree without a checksum record is returned unchanged.
    """
    index = find_checksum(tree)
    if index is None:
        return tree
    value = calculate_crc(serialize_for_checksum(tree) + CHECKSUM_ID + CHECKSUM_LENGTH)
    updated = list(tree)
    updated[index] = replace(tree[index], value=value, length=CHECKSUM_LENGTH)
    return updated
