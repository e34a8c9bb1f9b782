# Purpose: Command-line client for qr_appserver.py.

import argparse
import json
import os
import sys

import requests

# --- CONFIGURATION ---
PORT = 5010
HOST = "127.0.0.1"
BASE_URL = f"http://{HOST}:{PORT}"
TIMEOUT = 10


def load_content(qr_input):
    """QR content from a file path, or the argument itself."""
    if os.path.exists(qr_input):
        with open(qr_input, "r", encoding="utf-8") as f:
            return f.read().strip()
    return qr_input.strip()


def parse_remote(qr_content, base_url=BASE_URL):
    response = requests.post(f"{base_url}/parse", json={"qrCodeContent": qr_content}, timeout=TIMEOUT)
    return response.status_code, response.json()


def recompute_remote(qr_content, base_url=BASE_URL):
    response = requests.post(f"{base_url}/recompute", json={"qrCodeContent": qr_content}, timeout=TIMEOUT)
    return response.status_code, response.json()


def edit_remote(qr_content, operation, path, value=None, field_id=None, base_url=BASE_URL):
    body = {"qrCodeContent": qr_content, "operation": operation, "path": list(path)}
    if value is not None:
        body["value"] = value
    if field_id is not None:
        body["id"] = field_id
    response = requests.post(f"{base_url}/edit", json=body, timeout=TIMEOUT)
    return response.status_code, response.json()


def allowed_remote(path=(), base_url=BASE_URL):
    response = requests.get(f"{base_url}/fields", params={"path": ",".join(path)}, timeout=TIMEOUT)
    return response.status_code, response.json()


def _split_path(text):
    return tuple(part for part in text.split(".") if part) if text else ()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Client for the EMV QR Editor App Server")
    parser.add_argument("--url", default=BASE_URL, help="Base URL of qr_appserver.py")
    parser.add_argument("--parse", metavar="QR", help="QR content string or file to decode")
    parser.add_argument("--recompute", metavar="QR", help="QR content string or file to re-checksum")
    parser.add_argument("--edit", metavar="QR", help="QR content string or file to edit")
    parser.add_argument("--op", choices=["set", "insert", "delete"], default="set", help="Edit operation")
    parser.add_argument("--path", default="", help="Dotted field path, e.g. 62.07")
    parser.add_argument("--value", help="New value for --op set")
    parser.add_argument("--id", dest="field_id", help="Field id to add for --op insert")
    parser.add_argument("--fields", nargs="?", const="", metavar="PATH", help="List ids allowed under a dotted path")
    args = parser.parse_args(argv)

    try:
        if args.parse:
            status, body = parse_remote(load_content(args.parse), args.url)
        elif args.recompute:
            status, body = recompute_remote(load_content(args.recompute), args.url)
        elif args.edit:
            status, body = edit_remote(load_content(args.edit), args.op, _split_path(args.path),
                                       args.value, args.field_id, args.url)
        elif args.fields is not None:
            status, body = allowed_remote(_split_path(args.fields), args.url)
        else:
            parser.print_help()
            return 0
    except requests.exceptions.ConnectionError:
        print(f"QR_CLIENT: [!] Error: Could not connect to {args.url}. Is qr_appserver.py running?")
        return 1

    print(f"QR_CLIENT: [*] Status Code: {status}")
    print("QR_CLIENT: [*] Response Body:")
    print(json.dumps(body, indent=4, ensure_ascii=False))
    return 0 if status == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
