# Purpose: Structural edits on decoded EMV QR record trees.
# Every edit returns a new tree and rebuilds only the templates on the edited
# path, so each template's value/length keeps matching its children.
# The checksum (ID 63) is not touched here; run qr_crc.recompute_crc afterwards.

from dataclasses import replace

from qr_errors import ParentNotStructuredError, SchemaNotFoundError
from qr_parser import Record, build_record, decode, encode, format_length
from qr_schema import default_registry, field_number


def find_record(tree, path):
    """Record addressed by a path of ids (root first), or None."""
    records = tree
    record = None
    for field_id in path:
        if records is None:
            return None
        index = _locate(records, field_id)
        if index is None:
            return None
        record = records[index]
        records = record.children
    return record


def new_record(field_id, node):
    """Empty record for field_id built from its schema node."""
    return Record(
        id=field_id,
        length="00",
        value="",
        children=() if node.is_template else None,
        name=node.name,
        format=node.format,
        description=node.description,
    )


def _locate(records, field_id):
    for index, record in enumerate(records):
        if record.id == field_id:
            return index
    return None


def _sort_key(record):
    number = field_number(record.id)
    if number is None:
        return (1, record.id)
    return (0, number)


def _with_children(record, children):
    children = tuple(children)
    value = encode(children)
    return replace(record, value=value, length=format_length(record.id, value), children=children)


def _rewrite(records, parent_path, edit):
    """Applies edit to the level below parent_path, rebuilding each ancestor.

    edit gets a list copy of that level and returns the new level, or None when
    there is nothing to change. Returns None if parent_path does not resolve.
    """
    if not parent_path:
        return edit(list(records))
    index = _locate(records, parent_path[0])
    if index is None or records[index].children is None:
        return None
    children = _rewrite(records[index].children, parent_path[1:], edit)
    if children is None:
        return None
    updated = list(records)
    updated[index] = _with_children(records[index], children)
    return updated


def set_value(tree, path, new_value, registry=None):
    """Replaces the value of the record at path.

    Setting a template's value re-decodes it into children. An unresolved
    path, or an unchanged value, returns the input tree as is.
    """
    path = tuple(path)
    if not path:
        return tree
    if registry is None:
        registry = default_registry()
    parent_path, field_id = path[:-1], path[-1]

    def edit(level):
        index = _locate(level, field_id)
        if index is None or level[index].value == new_value:
            return None
        record = level[index]
        children = None
        if record.children is not None:
            children = tuple(decode(new_value, registry, path))
        node = registry.lookup(field_id, parent_path)
        if node is None:
            level[index] = replace(
                record,
                value=new_value,
                length=format_length(field_id, new_value),
                children=children,
            )
        else:
            level[index] = build_record(field_id, new_value, node, children)
        return level

    updated = _rewrite(tree, parent_path, edit)
    return tree if updated is None else updated


def insert_field(tree, parent_path, new_id, schema_node=None, registry=None):
    """Adds an empty field new_id under parent_path (the root when empty).

    The level is re-sorted by numeric id. schema_node defaults to the
    registry's definition for new_id at that position.
    """
    parent_path = tuple(parent_path)
    if parent_path:
        parent = find_record(tree, parent_path)
        if parent is None:
            return tree
        if parent.children is None:
            raise ParentNotStructuredError(parent_path)

    if field_number(new_id) is None:
        raise SchemaNotFoundError(new_id, parent_path)
    if schema_node is None:
        if registry is None:
            registry = default_registry()
        schema_node = registry.lookup(new_id, parent_path)
        if schema_node is None:
            raise SchemaNotFoundError(new_id, parent_path)
    record = new_record(new_id, schema_node)

    def edit(level):
        level.append(record)
        level.sort(key=_sort_key)
        return level

    return _rewrite(tree, parent_path, edit)


def delete_field(tree, path):
    """Removes the record at path. An unresolved path returns the input tree as is."""
    path = tuple(path)
    if not path:
        return tree
    parent_path, field_id = path[:-1], path[-1]

    def edit(level):
        index = _locate(level, field_id)
        if index is None:
            return None
        del level[index]
        return level

    updated = _rewrite(tree, parent_path, edit)
    return tree if updated is None else updated
