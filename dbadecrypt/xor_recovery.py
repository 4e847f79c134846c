"""
XOR Recovery Engine

Recovers the definition of an encrypted module from three byte blobs:
the real secret, the known plaintext, and the engine's ciphertext of that
known plaintext. The legacy WITH ENCRYPTION scheme is a stream cipher keyed
identically for same-length statements on the same server, so
``secret ^ known_secret`` cancels the keystream.

Only even offsets are recovered. Odd offsets are left as 0x00 and the
decoded string keeps them as NUL characters.
"""

from .known_plaintext import build_known_plain
from .models import EncryptedObjectDescriptor, TextEncoding


def recover_bytes(secret: bytes, known_plain: bytes, known_secret: bytes) -> bytes:
    """
    XOR the three blobs at every even offset of ``secret``.

    Lengths are not validated. Iteration is bounded by ``len(secret)`` and a
    byte missing from a shorter blob counts as zero.
    """
    recovered = bytearray(len(secret))
    plain_length = len(known_plain)
    known_length = len(known_secret)

    for i in range(0, len(secret), 2):
        plain_byte = known_plain[i] if i < plain_length else 0
        known_byte = known_secret[i] if i < known_length else 0
        recovered[i] = secret[i] ^ plain_byte ^ known_byte

    return bytes(recovered)


def decrypt(
    secret: bytes,
    known_plain: bytes,
    known_secret: bytes,
    encoding: TextEncoding = TextEncoding.ASCII,
) -> str:
    """Recover and decode the plaintext of ``secret``."""
    return recover_bytes(secret, known_plain, known_secret).decode(
        encoding.codec, errors="replace"
    )


def decrypt_object(
    descriptor: EncryptedObjectDescriptor,
    secret: bytes,
    known_secret: bytes,
    encoding: TextEncoding = TextEncoding.ASCII,
) -> str:
    """
    Decrypt an object's secret given the engine's ciphertext of its template.

    The known plaintext is rebuilt from ``descriptor`` sized to ``len(secret)``,
    so ``known_secret`` must come from executing that same template.

    Raises:
        UnsupportedObjectKindError: If the descriptor's kind has no template
        InvalidDescriptorError: If the descriptor is incomplete
    """
    known_plain = build_known_plain(descriptor, len(secret), encoding)
    return decrypt(secret, known_plain, known_secret, encoding)
