"""
dbadecrypt

Known-plaintext recovery of SQL Server modules created WITH ENCRYPTION.
"""

from .exceptions import (
    DbaDecryptError,
    InvalidDescriptorError,
    KnownSecretAcquisitionError,
    UnsupportedObjectKindError,
)
from .known_plaintext import build_known_plain, build_template
from .models import (
    DecryptionResult,
    EncryptedObjectDescriptor,
    FunctionSubtype,
    ObjectKind,
    TextEncoding,
)
from .xor_recovery import decrypt, decrypt_object, recover_bytes

__version__ = "0.1.0"

__all__ = [
    "DbaDecryptError",
    "DecryptionResult",
    "EncryptedObjectDescriptor",
    "FunctionSubtype",
    "InvalidDescriptorError",
    "KnownSecretAcquisitionError",
    "ObjectKind",
    "TextEncoding",
    "UnsupportedObjectKindError",
    "build_known_plain",
    "build_template",
    "decrypt",
    "decrypt_object",
    "recover_bytes",
]
