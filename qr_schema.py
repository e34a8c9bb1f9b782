# Purpose: Schema registry for EMVCo merchant-presented QR fields.
# Maps two-digit ids, exact ("52") or ranged ("26-37"), to field metadata.

import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

import yaml
from jsonschema import Draft7Validator
import referencing
from referencing.jsonschema import DRAFT7

# --- CONFIGURATION ---
SCHEMA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema")
REGISTRY_FILE = os.path.join(SCHEMA_DIR, "emvco.yaml")
OPENAPI_FILE = os.path.join(SCHEMA_DIR, "openapi.yaml")
OPENAPI_URI = "http://emvqr.local/openapi.yaml"

FIELD_ID_PATTERN = re.compile(r"[0-9]{2}")

# Ids whose value is itself a TLV sequence (inclusive ranges).
STRUCTURED_RANGES = (
    (26, 51),  # Merchant Account Information Templates
    (38, 38),  # VietQR Code through NAPAS
    (62, 62),  # Additional Data Field Template
    (64, 64),  # Merchant Information - Language Template
)

# (parent id, child id) pairs where the child holds one more nested level.
NESTED_TEMPLATES = frozenset({
    ("38", "01"),  # VietQR: Acquirer ID + Merchant ID
})


def field_number(field_id):
    """Returns the numeric value of a two-digit id, or None when it is not numeric."""
    if FIELD_ID_PATTERN.fullmatch(field_id):
        return int(field_id)
    return None


def is_structured(field_id, ancestor_ids=()):
    """True when a field with this id is decoded as a nested TLV sequence."""
    if ancestor_ids and (ancestor_ids[-1], field_id) in NESTED_TEMPLATES:
        return True
    number = field_number(field_id)
    if number is None:
        return False
    return any(start <= number <= end for start, end in STRUCTURED_RANGES)


@dataclass(frozen=True)
class FieldKey:
    """A table key: an exact id or an inclusive numeric range."""
    start: int
    end: int
    text: str

    @classmethod
    def parse(cls, text):
        if "-" in text:
            start, end = text.split("-")
            return cls(int(start), int(end), text)
        return cls(int(text), int(text), text)

    @property
    def is_range(self):
        return "-" in self.text

    def contains(self, field_id):
        number = field_number(field_id)
        return number is not None and self.start <= number <= self.end


@dataclass(frozen=True, eq=False)
class SchemaNode:
    name: str
    format: str
    description: str
    sub_fields: Optional[Tuple[Tuple[FieldKey, "SchemaNode"], ...]] = None
    payload_description: Optional[Dict[str, str]] = None
    min_len: Optional[int] = None
    max_len: Optional[int] = None
    pattern: Optional[str] = None

    @property
    def is_template(self):
        return self.sub_fields is not None

    def child(self, field_id):
        if self.sub_fields is None:
            return None
        return resolve(self.sub_fields, field_id)

    def describe(self, value):
        """Description text, with the value's label appended for enumerated fields."""
        if not self.payload_description:
            return self.description
        label = self.payload_description.get(value, value)
        return f"{self.description}\n{value}:{label}"


def resolve(table, field_id):
    """Finds the node for field_id in one table level: exact keys first, then ranges."""
    for key, node in table:
        if not key.is_range and key.text == field_id:
            return node
    for key, node in table:
        if key.is_range and key.contains(field_id):
            return node
    return None


def _build_node(definition):
    pattern = definition.get("pattern")
    if pattern is not None:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid pattern {pattern!r} for {definition['name']}: {e}")
    sub_fields = definition.get("subFields")
    return SchemaNode(
        name=definition["name"],
        format=definition["format"],
        description=definition["description"],
        sub_fields=_build_table(sub_fields) if sub_fields is not None else None,
        payload_description=definition.get("payload_description"),
        min_len=definition.get("min_len"),
        max_len=definition.get("max_len"),
        pattern=pattern,
    )


def _build_table(table):
    return tuple((FieldKey.parse(key), _build_node(value)) for key, value in table.items())


@lru_cache(maxsize=None)
def _openapi_registry():
    with open(OPENAPI_FILE, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f)
    resource = referencing.Resource.from_contents(document, default_specification=DRAFT7)
    return referencing.Registry().with_resource(uri=OPENAPI_URI, resource=resource)


def schema_errors(data, schema_name):
    """Validates data against a component schema of schema/openapi.yaml.

    Returns a list of readable error messages; an empty list means the data is valid.
    """
    target_schema = {"$ref": f"{OPENAPI_URI}#/components/schemas/{schema_name}"}
    validator = Draft7Validator(target_schema, registry=_openapi_registry())
    errors = sorted(validator.iter_errors(data), key=lambda e: e.json_path)
    return [f"{e.json_path}: {e.message}" for e in errors]


def load_table(path=REGISTRY_FILE):
    """Reads and validates a registry table from YAML."""
    with open(path, "r", encoding="utf-8") as f:
        table = yaml.safe_load(f) or {}
    errors = schema_errors(table, "SchemaTable")
    if errors:
        raise ValueError(f"Invalid schema table {path}: " + "; ".join(errors))
    return table


class SchemaRegistry:
    """Read-only, hierarchical id -> SchemaNode table."""

    def __init__(self, table):
        self.root = _build_table(table)

    @classmethod
    def from_file(cls, path=REGISTRY_FILE):
        return cls(load_table(path))

    def lookup(self, field_id, ancestor_ids=()):
        """Resolves field_id below the chain of ancestor ids (root first).

        Returns None if any ancestor is unknown or cannot hold sub-fields.
        """
        table = self.root
        for ancestor_id in ancestor_ids:
            node = resolve(table, ancestor_id)
            if node is None or node.sub_fields is None:
                return None
            table = node.sub_fields
        return resolve(table, field_id)

    def node_at(self, path):
        """Node for a full id path; None for the root (empty path) or an unknown path."""
        path = tuple(path)
        if not path:
            return None
        return self.lookup(path[-1], path[:-1])

    def allowed_field_ids(self, node=None):
        """Ids 00..99 that resolve under node, or at the root when node is None."""
        if node is None:
            table = self.root
        elif node.sub_fields is None:
            return []
        else:
            table = node.sub_fields
        ids = []
        for number in range(100):
            field_id = f"{number:02d}"
            if resolve(table, field_id) is not None:
                ids.append(field_id)
        return ids


@lru_cache(maxsize=None)
def default_registry():
    """The process-wide registry loaded from schema/emvco.yaml."""
    return SchemaRegistry.from_file(REGISTRY_FILE)


def lookup(field_id, ancestor_ids=()):
    return default_registry().lookup(field_id, tuple(ancestor_ids))


def allowed_field_ids(node=None):
    return default_registry().allowed_field_ids(node)
