"""
Data model for encrypted SQL Server objects and their recovered definitions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import UnsupportedObjectKindError


class FunctionSubtype(str, Enum):
    """Subtype of a user-defined function."""

    SCALAR = "Scalar"
    TABLE = "Table"
    INLINE = "Inline"


class ObjectKind(str, Enum):
    """Kinds of module that can be created WITH ENCRYPTION."""

    STORED_PROCEDURE = "StoredProcedure"
    SCALAR_FUNCTION = "ScalarFunction"
    TABLE_FUNCTION = "TableFunction"
    INLINE_FUNCTION = "InlineFunction"
    VIEW = "View"
    TRIGGER = "Trigger"

    @property
    def type_code(self) -> str:
        """The sys.objects.type code for this kind."""
        return _TYPE_CODES[self]

    @property
    def subtype(self) -> Optional[FunctionSubtype]:
        """Function subtype, or None for non-function kinds."""
        return _FUNCTION_SUBTYPES.get(self)

    @property
    def requires_parent(self) -> bool:
        return self is ObjectKind.TRIGGER

    @classmethod
    def from_type_code(cls, type_code: str) -> "ObjectKind":
        """
        Resolve a sys.objects.type code (e.g. 'P', 'FN') to an ObjectKind.

        Raises:
            UnsupportedObjectKindError: If the code has no known-plaintext template
        """
        code = (type_code or "").strip().upper()
        for kind, kind_code in _TYPE_CODES.items():
            if kind_code == code:
                return kind
        raise UnsupportedObjectKindError(
            f"Object type code '{type_code}' is not supported", object_kind=type_code
        )

    @classmethod
    def parse(cls, value: str) -> "ObjectKind":
        """
        Resolve a kind name ('View', 'storedprocedure') or type code ('V').

        Raises:
            UnsupportedObjectKindError: If the value matches no kind
        """
        text = (value or "").strip()
        for kind in cls:
            if kind.value.lower() == text.lower():
                return kind
        return cls.from_type_code(text)


_TYPE_CODES: Dict[ObjectKind, str] = {
    ObjectKind.STORED_PROCEDURE: "P",
    ObjectKind.SCALAR_FUNCTION: "FN",
    ObjectKind.TABLE_FUNCTION: "TF",
    ObjectKind.INLINE_FUNCTION: "IF",
    ObjectKind.VIEW: "V",
    ObjectKind.TRIGGER: "TR",
}

_FUNCTION_SUBTYPES: Dict[ObjectKind, FunctionSubtype] = {
    ObjectKind.SCALAR_FUNCTION: FunctionSubtype.SCALAR,
    ObjectKind.TABLE_FUNCTION: FunctionSubtype.TABLE,
    ObjectKind.INLINE_FUNCTION: FunctionSubtype.INLINE,
}


class TextEncoding(str, Enum):
    """Codec applied to known plaintext and recovered bytes."""

    ASCII = "ASCII"
    UTF8 = "UTF8"

    @property
    def codec(self) -> str:
        return "ascii" if self is TextEncoding.ASCII else "utf-8"

    @classmethod
    def parse(cls, value: str) -> "TextEncoding":
        normalized = (value or "").strip().upper().replace("-", "")
        for encoding in cls:
            if encoding.value == normalized:
                return encoding
        raise ValueError(f"Encoding must be one of: {[e.value for e in cls]}")


def quote_name(identifier: str) -> str:
    """Bracket-quote an identifier the way T-SQL QUOTENAME does."""
    return "[" + identifier.replace("]", "]]") + "]"


@dataclass(frozen=True)
class EncryptedObjectDescriptor:
    """Identifies a single encrypted module in a database."""

    schema: str
    name: str
    kind: ObjectKind
    parent: Optional[str] = None
    object_id: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @property
    def schema_qualified_name(self) -> str:
        return f"{quote_name(self.schema)}.{quote_name(self.name)}"


@dataclass
class DecryptionResult:
    """A recovered definition together with the object it came from."""

    descriptor: EncryptedObjectDescriptor
    script: str
    server: str = ""
    database: str = ""
    output_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured output."""
        return {
            "server": self.server,
            "database": self.database,
            "type": self.descriptor.kind.value,
            "schema": self.descriptor.schema,
            "name": self.descriptor.name,
            "full_name": self.descriptor.full_name,
            "script": self.script,
            "output_file": self.output_file,
        }
