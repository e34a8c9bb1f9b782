# Purpose: Decode and re-encode EMVCo merchant-presented QR payloads (ID/Length/Value).
# Parsing is schema-driven: template fields are decoded recursively into child records.

import argparse
import os
import re
import sys
from dataclasses import dataclass
from typing import Optional, Tuple

from qr_crc import validate_crc
from qr_errors import FieldTooLongError, InvalidLengthError, QRPayloadError, TruncatedInputError
from qr_schema import default_registry, is_structured

# --- CONFIGURATION ---
QR_TEXT_FILE = "qrcode.txt"

ID_SIZE = 2
LEN_SIZE = 2
MAX_VALUE_LENGTH = 99
LENGTH_PATTERN = re.compile(r"[0-9]{2}")

# Format hints that are checked by validate_field; the others are free text.
FORMAT_PATTERNS = {
    "N": re.compile(r"[0-9]*"),
}


@dataclass(frozen=True)
class Record:
    """One decoded TLV triplet. Template records also carry their decoded children."""
    id: str
    length: str
    value: str
    children: Optional[Tuple["Record", ...]] = None
    name: Optional[str] = None
    format: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_template(self):
        return self.children is not None

    def to_dict(self):
        data = {
            "id": self.id,
            "length": self.length,
            "value": self.value,
            "name": self.name,
            "format": self.format,
            "description": self.description,
        }
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data):
        children = data.get("children")
        if children is not None:
            children = tuple(cls.from_dict(child) for child in children)
        return cls(
            id=data["id"],
            length=data["length"],
            value=data["value"],
            children=children,
            name=data.get("name"),
            format=data.get("format"),
            description=data.get("description"),
        )


def format_length(field_id, value):
    """Two-digit length field for value."""
    if len(value) > MAX_VALUE_LENGTH:
        raise FieldTooLongError(field_id, len(value))
    return f"{len(value):02}"


def build_record(field_id, value, node=None, children=None, length=None):
    """Creates a Record, copying name/format/description from the schema node if any."""
    if length is None:
        length = format_length(field_id, value)
    return Record(
        id=field_id,
        length=length,
        value=value,
        children=children,
        name=node.name if node else None,
        format=node.format if node else None,
        description=node.describe(value) if node else None,
    )


def _read_record(data, index, registry, ancestor_ids):
    remaining = len(data) - index
    if remaining < ID_SIZE + LEN_SIZE:
        raise TruncatedInputError(data[index:index + ID_SIZE], ID_SIZE + LEN_SIZE, remaining)

    field_id = data[index:index + ID_SIZE]
    length_text = data[index + ID_SIZE:index + ID_SIZE + LEN_SIZE]
    if not LENGTH_PATTERN.fullmatch(length_text):
        raise InvalidLengthError(field_id, length_text)
    length = int(length_text)

    start = index + ID_SIZE + LEN_SIZE
    if len(data) < start + length:
        raise TruncatedInputError(field_id, length, len(data) - start)
    value = data[start:start + length]

    node = registry.lookup(field_id, ancestor_ids)
    children = None
    if node is not None and node.is_template and is_structured(field_id, ancestor_ids):
        children = tuple(decode(value, registry, ancestor_ids + (field_id,)))

    return build_record(field_id, value, node, children, length_text), start + length


def decode(raw, registry=None, ancestor_ids=()):
    """Parses a TLV string into an ordered list of Records.

    ancestor_ids places the string inside a template (root first), so the
    right schema level is used. Any malformed triplet aborts the whole decode.
    """
    if registry is None:
        registry = default_registry()
    ancestor_ids = tuple(ancestor_ids)
    records = []
    index = 0
    while index < len(raw):
        record, index = _read_record(raw, index, registry, ancestor_ids)
        records.append(record)
    return records


def encode(tree):
    """Flattens a record tree back into the TLV string."""
    return "".join(f"{record.id}{record.length}{record.value}" for record in tree)


def format_tree(tree, indent=0):
    """Plain-text dump: one line per record, children indented below their template."""
    lines = []
    prefix = ". " * indent
    for record in tree:
        line = f"{prefix}{record.id} {record.length}"
        if not record.children:
            line += f" {record.value}"
        lines.append(line + "\n")
        if record.children:
            lines.append(format_tree(record.children, indent + 3))
    return "".join(lines)


def validate_field(node, value):
    """Validates a value against the checks declared on its schema node."""
    if node is None:
        return True, "N/A"

    # Check length constraints
    if node.min_len is not None and len(value) < node.min_len:
        return False, f"ERR: Too short (min {node.min_len})"
    if node.max_len is not None and len(value) > node.max_len:
        return False, f"ERR: Too long (max {node.max_len})"

    # Check pattern
    if node.pattern and not re.match(node.pattern, value):
        return False, "ERR: Format mismatch"

    format_pattern = FORMAT_PATTERNS.get(node.format)
    if format_pattern and not format_pattern.fullmatch(value):
        return False, f"ERR: Not numeric (format {node.format})"

    return True, "OK"


def check_fields(tree, registry=None, ancestor_ids=()):
    """Runs validate_field over every record; returns the failing ones as issues."""
    if registry is None:
        registry = default_registry()
    ancestor_ids = tuple(ancestor_ids)
    issues = []
    for record in tree:
        node = registry.lookup(record.id, ancestor_ids)
        is_valid, msg = validate_field(node, record.value)
        path = ancestor_ids + (record.id,)
        if not is_valid:
            name = node.name if node else "Unknown Tag"
            issues.append({"path": list(path), "message": f"{name}: {msg}"})
        if record.children:
            issues.extend(check_fields(record.children, registry, path))
    return issues


def _print_rows(records, registry, ancestor_ids=()):
    for record in records:
        node = registry.lookup(record.id, ancestor_ids)
        is_valid, msg = validate_field(node, record.value)
        status = "[OK]" if is_valid else f"[{msg}]"
        tag = ".".join(ancestor_ids + (record.id,))
        name = record.name or ("Unknown Subtag" if ancestor_ids else "Unknown Tag")
        value = "" if record.children else record.value
        print(f"{tag:9} | {record.length:3} | {status:12} | {name:40} | {value}")
        if record.children:
            _print_rows(record.children, registry, ancestor_ids + (record.id,))


def main(argv=None):
    parser = argparse.ArgumentParser(description="EMV QR payload parser")
    parser.add_argument("qr", nargs="?", default=QR_TEXT_FILE,
                        help="QR content string or path to a file containing it")
    parser.add_argument("--tree", action="store_true", help="Print the plain-text tree dump instead of the table")
    args = parser.parse_args(argv)

    if os.path.exists(args.qr):
        with open(args.qr, "r", encoding="utf-8") as f:
            qr_content = f.read().strip()
    else:
        qr_content = args.qr.strip()

    if len(qr_content) < ID_SIZE + LEN_SIZE:
        print(f"[!] Error: QR content too short or {QR_TEXT_FILE} not found.")
        return 1

    print("=" * 110)
    print("EMV QR PARSER")
    print("=" * 110)
    print(f"Raw Content: {qr_content}\n")

    try:
        fields = decode(qr_content)
    except QRPayloadError as e:
        print(f"[!] Error: Failed to parse QR code data - {e}")
        return 1

    # 1. CRC Validation
    try:
        crc = validate_crc(fields)
        print(f"[OK] CRC-16/CCITT-FALSE Valid: {crc}")
    except QRPayloadError as e:
        print(f"[!] {e}")

    # 2. Field Display
    if args.tree:
        print()
        print(format_tree(fields), end="")
    else:
        print(f"\n{'TAG':9} | {'LEN':3} | {'VALID':12} | {'DESCRIPTION':40} | {'VALUE'}")
        print("-" * 110)
        _print_rows(fields, default_registry())

    print("=" * 110)
    return 0


if __name__ == "__main__":
    sys.exit(main())
