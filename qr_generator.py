# Purpose: Build canonical EMV QR payloads from a field template and render them as QR images.
# The payload is assembled through qr_editor, so lengths and the CRC come out consistent.

import argparse
import io
import json
import os
import sys

import qrcode

from qr_crc import CHECKSUM_ID, recompute_crc
from qr_editor import insert_field, new_record, set_value
from qr_errors import QRPayloadError
from qr_parser import encode
from qr_schema import default_registry

# --- CONFIGURATION ---
QR_TEXT_FILE = "qrcode.txt"
QR_IMAGE_FILE = "qrcode.png"
CURRENCY_FIELD_ID = "53"

CURRENCY_TO_NUMERIC = {
    "USD": "840",
    "EUR": "978",
    "GBP": "826",
    "CAD": "124",
    "BRL": "986",
    "VND": "704",
    "IDR": "360",
    "PHP": "608",
    "SGD": "702",
    "THB": "764",
    "MYR": "458",
    "INR": "356",
}


def _add_fields(tree, parent_path, fields):
    for field_id in sorted(fields):
        value = fields[field_id]
        path = parent_path + (field_id,)
        tree = insert_field(tree, parent_path, field_id)
        if isinstance(value, dict):
            tree = _add_fields(tree, path, value)
            continue
        value = str(value)
        if not parent_path and field_id == CURRENCY_FIELD_ID:
            value = CURRENCY_TO_NUMERIC.get(value.upper(), value)
        tree = set_value(tree, path, value)
    return tree


def build_tree(fields):
    """Builds a record tree from {id: value or {sub id: ...}} and appends a fresh CRC.

    The checksum record is placed last, as EMVCo requires; any "63" in fields is ignored.
    """
    fields = {field_id: value for field_id, value in fields.items() if field_id != CHECKSUM_ID}
    tree = _add_fields([], (), fields)
    tree.append(new_record(CHECKSUM_ID, default_registry().lookup(CHECKSUM_ID)))
    return recompute_crc(tree)


def build_payload(fields):
    """Constructs the EMVCo Merchant Presented Mode QR Content String."""
    return encode(build_tree(fields))


def make_qr_image(payload):
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white")


def save_qr_image(payload, path=QR_IMAGE_FILE):
    make_qr_image(payload).save(path)
    return path


def qr_png_bytes(payload):
    buffer = io.BytesIO()
    make_qr_image(payload).save(buffer)
    return buffer.getvalue()


def main(argv=None):
    parser = argparse.ArgumentParser(description="EMV QR Code Generator")
    parser.add_argument("template", help='Path to a JSON template: {"fields": {"00": "01", ...}}')
    parser.add_argument("--text", default=QR_TEXT_FILE, help="Output file for the raw QR string")
    parser.add_argument("--image", default=QR_IMAGE_FILE, help="Output file for the QR code PNG")
    args = parser.parse_args(argv)

    if not os.path.exists(args.template):
        print(f"[!] Error: Template file '{args.template}' not found.")
        return 1

    with open(args.template, "r", encoding="utf-8") as f:
        template_data = json.load(f)

    print(f"[*] Processing template: {args.template}")
    try:
        emv_qr_string = build_payload(template_data.get("fields", {}))
    except QRPayloadError as e:
        print(f"[!] Error: Invalid template - {e}")
        return 1

    with open(args.text, "w", encoding="utf-8") as f:
        f.write(emv_qr_string)
    print(f"[*] Raw QR string saved to '{args.text}'.")

    print("[*] Generating QR Code Image...")
    save_qr_image(emv_qr_string, args.image)
    print(f"[*] QR Code image saved as '{args.image}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
