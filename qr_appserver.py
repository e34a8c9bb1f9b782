# Purpose: HTTP back-end for a browser-based EMV QR payload editor.
# Request bodies are validated against schema/openapi.yaml before they reach the codec.

import argparse
import re

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from qr_crc import recompute_crc, validate_crc
from qr_editor import delete_field, insert_field, set_value
from qr_errors import (
    ChecksumFieldMissingError,
    ChecksumMismatchError,
    FieldTooLongError,
    ParentNotStructuredError,
    QRPayloadError,
    SchemaNotFoundError,
)
from qr_generator import qr_png_bytes
from qr_parser import check_fields, decode, encode, format_tree
from qr_schema import default_registry, schema_errors

app = Flask(__name__)
CORS(app)

# --- CONFIGURATION ---
PORT = 5010
HOST = "127.0.0.1"

FIELD_PATH_PATTERN = re.compile(r"([0-9]{2}(,[0-9]{2})*)?")

# Edit errors leave the payload untouched; everything else means the payload is unusable.
EDIT_ERRORS = (SchemaNotFoundError, ParentNotStructuredError, FieldTooLongError)


class InvalidRequest(Exception):
    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


@app.errorhandler(InvalidRequest)
def handle_invalid_request(e):
    body = {"error": e.message}
    if e.details:
        body["details"] = e.details
    return jsonify(body), 400


@app.errorhandler(QRPayloadError)
def handle_payload_error(e):
    status = 422 if isinstance(e, EDIT_ERRORS) else 400
    print(f"QR_APPSERVER: [!] {e.kind}: {e}")
    return jsonify({"error": str(e), "kind": e.kind}), status


def read_json(schema_name):
    """Returns the request JSON after validating it against the named component schema."""
    data = request.get_json(silent=True)
    if data is None:
        print("QR_APPSERVER: [!] Received invalid JSON payload")
        raise InvalidRequest("Invalid JSON")
    errors = schema_errors(data, schema_name)
    if errors:
        print(f"QR_APPSERVER: [!] Request Validation Error ({schema_name}): {errors[0]}")
        raise InvalidRequest(f"Request does not match {schema_name}", errors)
    return data


def tree_json(tree):
    return [record.to_dict() for record in tree]


def crc_status(fields):
    try:
        return {"valid": True, "expected": validate_crc(fields)}
    except ChecksumMismatchError as e:
        return {"valid": False, "expected": e.expected, "error": str(e)}
    except ChecksumFieldMissingError as e:
        return {"valid": False, "error": str(e)}


@app.route('/parse', methods=['POST'])
def parse_payload():
    """Decodes qrCodeContent and reports its CRC status and field issues."""
    data = read_json("PayloadRequest")
    print("QR_APPSERVER: [*] Received Parse Request")
    fields = decode(data["qrCodeContent"].strip())
    return jsonify({
        "fields": tree_json(fields),
        "formatted": format_tree(fields),
        "crc": crc_status(fields),
        "issues": check_fields(fields),
    })


@app.route('/recompute', methods=['POST'])
def recompute_payload():
    data = read_json("PayloadRequest")
    print("QR_APPSERVER: [*] Received Recompute Request")
    fields = recompute_crc(decode(data["qrCodeContent"].strip()))
    return jsonify({"qrCodeContent": encode(fields), "fields": tree_json(fields)})


@app.route('/edit', methods=['POST'])
def edit_payload():
    """Applies one set/insert/delete edit, then recomputes the CRC."""
    data = read_json("EditRequest")
    operation = data["operation"]
    path = tuple(data["path"])
    print(f"QR_APPSERVER: [*] Received Edit Request: {operation} {'.'.join(path) or 'root'}")

    fields = decode(data["qrCodeContent"].strip())
    if operation == "set":
        fields = set_value(fields, path, data["value"])
    elif operation == "insert":
        fields = insert_field(fields, path, data["id"])
    else:
        fields = delete_field(fields, path)
    fields = recompute_crc(fields)

    return jsonify({"qrCodeContent": encode(fields), "fields": tree_json(fields)})


@app.route('/fields', methods=['GET'])
def allowed_fields():
    """Lists the ids that may be added under ?path=38,01 (the root when omitted)."""
    raw_path = request.args.get("path", "")
    if not FIELD_PATH_PATTERN.fullmatch(raw_path):
        raise InvalidRequest(f"Invalid field path: {raw_path}")
    path = tuple(raw_path.split(",")) if raw_path else ()

    registry = default_registry()
    node = registry.node_at(path)
    if path and node is None:
        return jsonify({"error": f"Unknown field path: {raw_path}"}), 404

    allowed = [
        {"id": field_id, "name": registry.lookup(field_id, path).name}
        for field_id in registry.allowed_field_ids(node)
    ]
    return jsonify({"path": list(path), "allowed": allowed})


@app.route('/render', methods=['POST'])
def render_payload():
    data = read_json("PayloadRequest")
    print("QR_APPSERVER: [*] Received Render Request")
    return Response(qr_png_bytes(data["qrCodeContent"].strip()), mimetype="image/png")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="EMV QR Editor App Server")
    parser.add_argument("--host", default=HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on")
    args = parser.parse_args()

    default_registry()
    print(f"QR_APPSERVER: Starting App Server on port {args.port}...")
    app.run(host=args.host, port=args.port)
