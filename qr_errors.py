# Purpose: Typed errors raised by the EMV QR payload codec and editor.
# All of them are ValueError subclasses so callers can catch a single type.


class QRPayloadError(ValueError):
    """Base class for every error raised while decoding, checking or editing a payload."""

    @property
    def kind(self):
        return type(self).__name__


class TruncatedInputError(QRPayloadError):
    """Fewer characters remain than an id/length header or a declared length requires."""

    def __init__(self, field_id, expected, available):
        self.field_id = field_id
        self.expected = expected
        self.available = available
        super().__init__(
            f"Data too short for ID {field_id}: expected {expected} characters, got {available}"
        )


class InvalidLengthError(QRPayloadError):
    def __init__(self, field_id, length_text):
        self.field_id = field_id
        self.length_text = length_text
        super().__init__(f"Invalid payload length for ID {field_id}: {length_text!r}")


class ChecksumFieldMissingError(QRPayloadError):
    def __init__(self):
        super().__init__("CRC checksum (ID 63) not found in data")


class ChecksumMismatchError(QRPayloadError):
    def __init__(self, expected, found):
        self.expected = expected
        self.found = found
        super().__init__(f"CRC checksum mismatch: expected {expected}, got {found}")


class SchemaNotFoundError(QRPayloadError):
    def __init__(self, field_id, parent_path=()):
        self.field_id = field_id
        self.parent_path = tuple(parent_path)
        where = ".".join(self.parent_path) or "root"
        super().__init__(f"No schema definition for ID {field_id} under {where}")


class ParentNotStructuredError(QRPayloadError):
    def __init__(self, parent_path):
        self.parent_path = tuple(parent_path)
        super().__init__(f"Field {'.'.join(self.parent_path)} cannot hold sub-fields")


class FieldTooLongError(QRPayloadError):
    """A value would not fit the two-digit length field."""

    def __init__(self, field_id, length):
        self.field_id = field_id
        self.length = length
        super().__init__(f"Value of ID {field_id} is {length} characters long (max 99)")
