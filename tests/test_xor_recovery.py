"""
Tests for the XOR recovery engine.
"""

import pytest

from dbadecrypt.exceptions import InvalidDescriptorError, UnsupportedObjectKindError
from dbadecrypt.known_plaintext import build_known_plain
from dbadecrypt.models import EncryptedObjectDescriptor, ObjectKind, TextEncoding
from dbadecrypt.xor_recovery import decrypt, decrypt_object, recover_bytes


def _xor(data: bytes, key: bytes) -> bytes:
    return bytes(b ^ k for b, k in zip(data, key))


class TestRecoverBytes:
    """Test cases for recover_bytes."""

    def test_known_vector(self):
        """Test the documented four-byte vector."""
        secret = bytes([0x41, 0x00, 0x42, 0x00])
        known_plain = bytes([0x11, 0x00, 0x22, 0x00])
        known_secret = bytes([0x30, 0x00, 0x60, 0x00])

        assert recover_bytes(secret, known_plain, known_secret) == bytes(
            [0x60, 0x00, 0x40, 0x00]
        )

    def test_decoded_known_vector(self):
        """Test that the vector decodes to '`' and '@' with NULs between."""
        secret = bytes([0x41, 0x00, 0x42, 0x00])
        known_plain = bytes([0x11, 0x00, 0x22, 0x00])
        known_secret = bytes([0x30, 0x00, 0x60, 0x00])

        text = decrypt(secret, known_plain, known_secret, TextEncoding.ASCII)
        assert text == "`\x00@\x00"

    def test_empty_secret(self):
        """Test that an empty secret yields an empty result."""
        assert recover_bytes(b"", b"abc", b"def") == b""
        assert decrypt(b"", b"", b"") == ""

    def test_odd_offsets_are_never_populated(self):
        """Test that odd offsets stay zero regardless of input."""
        secret = bytes(range(1, 11))
        recovered = recover_bytes(secret, bytes(10), bytes(10))
        assert recovered[1::2] == bytes(5)
        assert recovered[0::2] == secret[0::2]

    def test_odd_offset_bytes_do_not_affect_output(self):
        """Test that changing secret bytes at odd offsets changes nothing."""
        secret = bytearray(b"\x10\x20\x30\x40\x50")
        known_plain = b"\x01\x02\x03\x04\x05"
        known_secret = b"\x0a\x0b\x0c\x0d\x0e"
        before = recover_bytes(bytes(secret), known_plain, known_secret)

        secret[1] = 0xFF
        secret[3] = 0xEE
        after = recover_bytes(bytes(secret), known_plain, known_secret)

        assert before == after

    def test_output_length_follows_secret(self):
        """Test that the output has exactly len(secret) bytes."""
        assert len(recover_bytes(bytes(7), bytes(3), bytes(20))) == 7

    def test_shorter_known_blobs_are_tolerated(self):
        """Test that missing known bytes count as zero."""
        secret = bytes([0x41, 0x00, 0x42, 0x00, 0x43, 0x00])
        recovered = recover_bytes(secret, bytes([0x01]), b"")
        assert recovered == bytes([0x40, 0x00, 0x42, 0x00, 0x43, 0x00])

    def test_self_consistency(self):
        """Test that decrypting a known pair against itself returns the plaintext."""
        known_plain = b"A\x00L\x00T\x00E\x00R\x00"
        known_secret = bytes([0x9C, 0x11, 0x02, 0x7F, 0x55, 0x00, 0xA1, 0x3B, 0xEE, 0x42])

        recovered = recover_bytes(known_secret, known_plain, known_secret)
        assert recovered[0::2] == known_plain[0::2]

    def test_deterministic(self):
        """Test that identical inputs give identical output."""
        args = (bytes(range(40)), bytes(range(40, 80)), bytes(range(80, 120)))
        assert decrypt(*args) == decrypt(*args)

    def test_utf8_decoding_replaces_invalid_bytes(self):
        """Test that bytes invalid in the codec do not raise."""
        text = decrypt(bytes([0xFF, 0x00]), bytes(2), bytes(2), TextEncoding.UTF8)
        assert text == "\ufffd\x00"


class TestDecryptObject:
    """Test cases for decrypt_object against a simulated engine."""

    DEFINITION = "CREATE PROCEDURE dbo.GetX WITH ENCRYPTION AS SELECT 42 AS answer;"

    def _engine_encrypt(self, plaintext: bytes, keystream: bytes) -> bytes:
        return _xor(plaintext, keystream)

    def test_recovers_definition(self, procedure_descriptor, engine_keystream):
        """Test full recovery with a shared keystream."""
        plaintext = self.DEFINITION.encode("utf-16-le")
        stream = engine_keystream(4 * len(plaintext))
        secret = self._engine_encrypt(plaintext, stream)

        known_plain = build_known_plain(procedure_descriptor, len(secret))
        known_secret = self._engine_encrypt(known_plain, stream)

        text = decrypt_object(procedure_descriptor, secret, known_secret)

        assert text == plaintext.decode("ascii")
        assert text.replace("\x00", "") == self.DEFINITION

    def test_unsupported_kind(self):
        """Test that a descriptor without a template is rejected."""
        descriptor = EncryptedObjectDescriptor(
            schema="dbo", name="agg", kind="AggregateFunction"
        )
        with pytest.raises(UnsupportedObjectKindError):
            decrypt_object(descriptor, b"\x01\x02", b"\x03\x04")

    def test_trigger_without_parent(self):
        """Test that a trigger without parent is rejected before decrypting."""
        descriptor = EncryptedObjectDescriptor(
            schema="dbo", name="trg", kind=ObjectKind.TRIGGER
        )
        with pytest.raises(InvalidDescriptorError):
            decrypt_object(descriptor, b"\x01\x02", b"\x03\x04")
