"""Unit tests for checksums, key material and the encryption engine."""

import base64
import io
import threading

import pytest

from secure_vault.crypto import checksum
from secure_vault.crypto.engine import ALGORITHM, TAG_SIZE, EncryptionEngine
from secure_vault.crypto.key_material import IV_SIZE, KEY_SIZE, KeyMaterial, decode, encode
from secure_vault.exceptions import (
    DecryptionError,
    EntropySourceError,
    MalformedKeyError,
    OperationCancelledError,
)


class TestChecksum:
    """Tests for SHA-256 content checksums."""

    def test_digest_known_value(self):
        """Digest matches the published SHA-256 of 'abc'."""
        assert checksum.digest(b"abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_digest_empty(self):
        """Empty input has the well-known empty digest."""
        assert checksum.digest(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_digest_stable(self):
        """Same content always hashes the same."""
        data = b"quarterly report" * 100
        assert checksum.digest(data) == checksum.digest(data)

    def test_digest_differs(self):
        """Different content hashes differently."""
        assert checksum.digest(b"file-a") != checksum.digest(b"file-b")

    def test_digest_is_lowercase_hex(self):
        """Digest is 64 lowercase hex characters."""
        value = checksum.digest(b"data")
        assert len(value) == 64
        assert value == value.lower()
        int(value, 16)

    def test_digest_stream_and_file_match_bytes(self, tmp_path):
        """Stream and file digests agree with the in-memory digest."""
        data = b"x" * 10_000 + b"tail"
        path = tmp_path / "data.bin"
        path.write_bytes(data)

        assert checksum.digest_stream(io.BytesIO(data), chunk_size=1024) == checksum.digest(data)
        assert checksum.digest_file(path) == checksum.digest(data)

    def test_digest_file_missing(self, tmp_path):
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            checksum.digest_file(tmp_path / "nope.bin")

    def test_verify_checksum(self):
        """verify_checksum accepts upper-case and padded hex."""
        expected = checksum.digest(b"content")
        assert checksum.verify_checksum(b"content", expected)
        assert checksum.verify_checksum(b"content", f"  {expected.upper()} ")
        assert not checksum.verify_checksum(b"other", expected)
        assert not checksum.verify_checksum(b"content", "é" * 64)


class TestKeyMaterial:
    """Tests for key material generation and the transport string."""

    def test_generate_sizes(self):
        """Generated key is 256 bits and IV is 96 bits."""
        material = KeyMaterial.generate()
        assert len(material.key) == KEY_SIZE == 32
        assert len(material.iv) == IV_SIZE == 12

    def test_generate_unique(self):
        """Each generation produces new key material."""
        keys = {KeyMaterial.generate().key for _ in range(10)}
        assert len(keys) == 10

    def test_encode_format(self):
        """Encoded form is base64(key) '.' base64(iv)."""
        material = KeyMaterial(key=b"k" * 32, iv=b"i" * 12)
        encoded = encode(material)

        key_part, iv_part = encoded.split(".")
        assert base64.b64decode(key_part) == b"k" * 32
        assert base64.b64decode(iv_part) == b"i" * 12

    def test_decode_roundtrip(self):
        """decode(encode(k)) == k."""
        material = KeyMaterial.generate()
        assert decode(encode(material)) == material

    def test_decode_strips_whitespace(self):
        """Pasted keys with surrounding whitespace are accepted."""
        material = KeyMaterial.generate()
        assert decode(f"  {encode(material)}\n") == material

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "no-separator-here",
            ".",
            "." + base64.b64encode(b"i" * 12).decode(),
            base64.b64encode(b"k" * 32).decode() + ".",
            base64.b64encode(b"k" * 32).decode() + ".not*base64!",
            base64.b64encode(b"k" * 16).decode() + "." + base64.b64encode(b"i" * 12).decode(),
            base64.b64encode(b"k" * 32).decode() + "." + base64.b64encode(b"i" * 16).decode(),
        ],
    )
    def test_decode_rejects_malformed(self, value):
        """Missing separators, bad base64 and wrong lengths are rejected."""
        with pytest.raises(MalformedKeyError):
            decode(value)

    def test_decode_rejects_extra_separator(self):
        """A third segment makes the string malformed."""
        encoded = encode(KeyMaterial.generate())
        with pytest.raises(MalformedKeyError):
            decode(encoded + ".AAAA")

    def test_wrong_length_construction(self):
        """KeyMaterial refuses keys of the wrong size."""
        with pytest.raises(MalformedKeyError):
            KeyMaterial(key=b"short", iv=b"i" * 12)

    def test_repr_hides_key(self):
        """repr never shows key bytes."""
        material = KeyMaterial(key=b"k" * 32, iv=b"i" * 12)
        assert "kkkk" not in repr(material)

    def test_entropy_failure(self, monkeypatch):
        """Missing OS randomness surfaces as EntropySourceError."""
        import secure_vault.crypto.key_material as km

        def broken(size):
            raise NotImplementedError("no entropy")

        monkeypatch.setattr(km.os, "urandom", broken)

        with pytest.raises(EntropySourceError):
            KeyMaterial.generate()


class TestEncryptionEngine:
    """Tests for AES-256-GCM encryption."""

    @pytest.fixture
    def engine(self):
        return EncryptionEngine(chunk_size=1024)

    def test_encrypt_decrypt_roundtrip(self, engine):
        """Decrypting with the returned key gives back the plaintext."""
        plaintext = b"This is some test data to encrypt."

        payload = engine.encrypt(plaintext)

        assert payload.algorithm == ALGORITHM == "AES-256-GCM"
        assert payload.ciphertext != plaintext
        assert engine.decrypt(payload.ciphertext, payload.key_material) == plaintext

    def test_empty_file_roundtrip(self, engine):
        """A 0-byte file encrypts and decrypts to empty bytes."""
        payload = engine.encrypt(b"")

        assert len(payload.ciphertext) == TAG_SIZE
        assert payload.checksum == checksum.digest(b"")
        assert engine.decrypt(payload.ciphertext, payload.key_material) == b""

    def test_checksum_is_of_plaintext(self, engine):
        """The payload checksum covers the plaintext, not the ciphertext."""
        plaintext = b"original content"
        payload = engine.encrypt(plaintext)

        assert payload.checksum == checksum.digest(plaintext)
        assert payload.checksum != checksum.digest(payload.ciphertext)

    def test_fresh_key_per_encryption(self, engine):
        """Encrypting the same data twice uses different keys."""
        first = engine.encrypt(b"same data")
        second = engine.encrypt(b"same data")

        assert first.key_material != second.key_material
        assert first.ciphertext != second.ciphertext

    def test_deterministic_with_fixed_key(self, engine):
        """Fixed key material gives identical ciphertext."""
        material = KeyMaterial(key=b"\x01" * 32, iv=b"\x02" * 12)

        first = engine.encrypt_with(b"payload", material)
        second = engine.encrypt_with(b"payload", material)

        assert first.ciphertext == second.ciphertext

    def test_wrong_key_rejected(self, engine):
        """Another file's key fails with DecryptionError, not garbage output."""
        payload = engine.encrypt(b"secret document")
        other = engine.encrypt(b"secret document")

        with pytest.raises(DecryptionError) as exc_info:
            engine.decrypt(payload.ciphertext, other.key_material)

        assert str(exc_info.value) == "Invalid key or corrupted file."

    def test_tampered_ciphertext_rejected(self, engine):
        """Flipping a bit fails authentication."""
        payload = engine.encrypt(b"secret document")
        tampered = bytearray(payload.ciphertext)
        tampered[0] ^= 0x01

        with pytest.raises(DecryptionError):
            engine.decrypt(bytes(tampered), payload.key_material)

    def test_truncated_ciphertext_rejected(self, engine):
        """Data shorter than the tag fails cleanly."""
        payload = engine.encrypt(b"secret document")

        with pytest.raises(DecryptionError):
            engine.decrypt(payload.ciphertext[:5], payload.key_material)

    def test_malformed_key_propagates(self, engine):
        """Unparseable key material is reported as MalformedKeyError."""
        payload = engine.encrypt(b"data")

        with pytest.raises(MalformedKeyError):
            engine.decrypt(payload.ciphertext, "not-a-key")

    def test_payload_repr_hides_key(self, engine):
        """repr of a payload does not leak the key material."""
        payload = engine.encrypt(b"data")
        assert payload.key_material not in repr(payload)

    def test_invalid_chunk_size(self):
        """chunk_size must be positive."""
        with pytest.raises(ValueError):
            EncryptionEngine(chunk_size=0)


class TestFileEncryption:
    """Tests for streaming file encryption."""

    @pytest.fixture
    def engine(self):
        return EncryptionEngine(chunk_size=1024)

    def test_file_roundtrip(self, engine, tmp_path):
        """Files spanning several chunks roundtrip through disk."""
        data = b"Test data " * 1000
        source = tmp_path / "source.bin"
        source.write_bytes(data)
        encrypted = tmp_path / "source.bin.enc"
        decrypted = tmp_path / "decrypted.bin"

        payload = engine.encrypt_file(source, encrypted)
        actual = engine.decrypt_file(encrypted, decrypted, payload.key_material)

        assert encrypted.read_bytes() != data
        assert decrypted.read_bytes() == data
        assert payload.checksum == actual == checksum.digest(data)

    def test_file_format_matches_memory(self, engine, tmp_path):
        """Streaming output equals in-memory output for the same key."""
        data = b"abc" * 2000
        material = KeyMaterial.generate()
        source = tmp_path / "source.bin"
        source.write_bytes(data)
        encrypted = tmp_path / "out.enc"

        engine.encrypt_file(source, encrypted, material=material)

        assert encrypted.read_bytes() == engine.encrypt_with(data, material).ciphertext
        assert engine.decrypt(encrypted.read_bytes(), material.encode()) == data

    def test_empty_file(self, engine, tmp_path):
        """Empty files roundtrip on disk too."""
        source = tmp_path / "empty.txt"
        source.write_bytes(b"")
        encrypted = tmp_path / "empty.enc"
        decrypted = tmp_path / "empty.out"

        payload = engine.encrypt_file(source, encrypted)
        engine.decrypt_file(encrypted, decrypted, payload.key_material)

        assert decrypted.read_bytes() == b""

    def test_wrong_key_leaves_no_output(self, engine, tmp_path):
        """Failed decryption does not create the destination file."""
        source = tmp_path / "source.bin"
        source.write_bytes(b"content " * 500)
        encrypted = tmp_path / "source.enc"
        decrypted = tmp_path / "decrypted.bin"

        engine.encrypt_file(source, encrypted)
        wrong_key = KeyMaterial.generate().encode()

        with pytest.raises(DecryptionError):
            engine.decrypt_file(encrypted, decrypted, wrong_key)

        assert not decrypted.exists()
        assert list(tmp_path.glob("*.tmp")) == []

    def test_cancelled_encryption_leaves_no_output(self, engine, tmp_path):
        """A set cancel event aborts without writing the destination."""
        source = tmp_path / "big.bin"
        source.write_bytes(b"z" * 10_000)
        encrypted = tmp_path / "big.enc"
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            engine.encrypt_file(source, encrypted, cancel_event=cancel)

        assert not encrypted.exists()
        assert [p.name for p in tmp_path.iterdir()] == ["big.bin"]

    def test_cancelled_decryption_leaves_no_output(self, engine, tmp_path):
        """Cancelling decryption leaves no partial plaintext."""
        source = tmp_path / "big.bin"
        source.write_bytes(b"z" * 10_000)
        encrypted = tmp_path / "big.enc"
        decrypted = tmp_path / "big.out"
        payload = engine.encrypt_file(source, encrypted)

        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            engine.decrypt_file(encrypted, decrypted, payload.key_material, cancel_event=cancel)

        assert not decrypted.exists()

    def test_truncated_file_rejected(self, engine, tmp_path):
        """Files shorter than a tag are rejected."""
        encrypted = tmp_path / "short.enc"
        encrypted.write_bytes(b"abc")

        with pytest.raises(DecryptionError):
            engine.decrypt_file(encrypted, tmp_path / "out", KeyMaterial.generate().encode())
