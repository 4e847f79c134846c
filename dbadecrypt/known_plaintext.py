"""
Known-Plaintext Template Builder

Builds the synthetic ALTER statement whose encrypted form is compared
byte-for-byte against the real secret. The engine's obfuscation is keyed by
statement length, so the statement is prefixed with exactly ``secret_length``
spaces and the caller must pass that length explicitly.
"""

import logging
from typing import Dict, Optional

from .exceptions import InvalidDescriptorError, UnsupportedObjectKindError
from .models import EncryptedObjectDescriptor, ObjectKind, TextEncoding, quote_name

logger = logging.getLogger(__name__)

PADDING_CHAR = " "

TEMPLATES: Dict[ObjectKind, str] = {
    ObjectKind.STORED_PROCEDURE: (
        "ALTER PROCEDURE {name} WITH ENCRYPTION AS RETURN 0;"
    ),
    ObjectKind.SCALAR_FUNCTION: (
        "ALTER FUNCTION {name}() RETURNS INT WITH ENCRYPTION AS BEGIN RETURN 0 END;"
    ),
    ObjectKind.TABLE_FUNCTION: (
        "ALTER FUNCTION {name}() RETURNS @r TABLE(i INT) WITH ENCRYPTION AS BEGIN RETURN END;"
    ),
    ObjectKind.INLINE_FUNCTION: (
        "ALTER FUNCTION {name}() RETURNS TABLE WITH ENCRYPTION AS RETURN SELECT 0 i;"
    ),
    ObjectKind.VIEW: "ALTER VIEW {name} WITH ENCRYPTION AS SELECT NULL AS [Value];",
    ObjectKind.TRIGGER: (
        "ALTER TRIGGER {name} ON {parent} WITH ENCRYPTION AFTER INSERT AS "
        "RAISERROR('...', 16, 10);"
    ),
}


def build_template(
    kind: ObjectKind,
    schema: str,
    name: str,
    secret_length: int,
    parent: Optional[str] = None,
) -> str:
    """
    Build the padded known-plaintext ALTER statement for an object.

    Args:
        kind: Kind of the encrypted object
        schema: Schema the object (and, for triggers, its parent) lives in
        name: Object name
        secret_length: Byte length of the real encrypted secret
        parent: Parent table or view name, required for triggers

    Returns:
        ``secret_length`` spaces followed by the ALTER ... WITH ENCRYPTION clause

    Raises:
        UnsupportedObjectKindError: If no template exists for ``kind``
        InvalidDescriptorError: If required fields are missing
    """
    if not isinstance(kind, ObjectKind) or kind not in TEMPLATES:
        raise UnsupportedObjectKindError(
            f"No known-plaintext template for object kind '{kind}'",
            object_kind=str(getattr(kind, "value", kind)),
        )
    if not schema or not schema.strip():
        raise InvalidDescriptorError("Object schema is required", object_name=name)
    if not name or not name.strip():
        raise InvalidDescriptorError("Object name is required")
    if secret_length < 0:
        raise InvalidDescriptorError(
            f"Secret length must be non-negative, got {secret_length}",
            object_name=f"{schema}.{name}",
        )

    qualified_name = f"{quote_name(schema)}.{quote_name(name)}"
    qualified_parent = None
    if kind.requires_parent:
        if not parent or not parent.strip():
            raise InvalidDescriptorError(
                "Trigger descriptor is missing its parent table or view",
                object_name=f"{schema}.{name}",
            )
        # DML triggers always share their parent's schema
        qualified_parent = f"{quote_name(schema)}.{quote_name(parent)}"

    clause = TEMPLATES[kind].format(name=qualified_name, parent=qualified_parent)
    return PADDING_CHAR * secret_length + clause


def build_template_for(descriptor: EncryptedObjectDescriptor, secret_length: int) -> str:
    """Build the known-plaintext statement for a descriptor."""
    return build_template(
        descriptor.kind,
        descriptor.schema,
        descriptor.name,
        secret_length,
        parent=descriptor.parent,
    )


def build_known_plain(
    descriptor: EncryptedObjectDescriptor,
    secret_length: int,
    encoding: TextEncoding = TextEncoding.ASCII,
) -> bytes:
    """Encode the known-plaintext statement with the selected codec."""
    statement = build_template_for(descriptor, secret_length)
    logger.debug(
        f"Built {descriptor.kind.value} template for {descriptor.full_name} "
        f"({len(statement)} chars, padding {secret_length})"
    )
    return statement.encode(encoding.codec, errors="replace")
