# tests/test_crypto_codec.py
"""Tests for the AES-GCM envelope and the row codec."""

import logging
from datetime import datetime

import pytest

from unitable.codec import decode_row, decode_rows, encode_row, encrypted_fields
from unitable.config.models import Field, FieldType, Table
from unitable.crypto import decrypt, decrypt_field, encrypt, encrypt_field
from unitable.errors import ConfigurationError

SECRET = "s3cret"


@pytest.fixture
def vault_table():
    return Table(
        id="vault",
        name="Vault",
        source_id="mem",
        fields=[
            Field(id="id", name="Id", is_key=True, is_required=True),
            Field(id="ssn", name="SSN", encrypted=True),
            Field(id="profile", name="Profile", type=FieldType.JSON, encrypted=True),
            Field(id="born", name="Born", type=FieldType.DATE, encrypted=True),
            Field(id="note", name="Note"),
        ],
    )


class TestEnvelope:
    def test_round_trip(self):
        assert decrypt(encrypt("hello wörld", SECRET), SECRET) == "hello wörld"

    def test_envelope_shape(self):
        iv, tag, ct = encrypt("abc", SECRET).split(":")
        assert len(iv) == 32
        assert len(tag) == 32
        assert len(ct) == 6

    def test_fresh_iv_per_call(self):
        assert encrypt("same", SECRET) != encrypt("same", SECRET)

    def test_wrong_secret_is_unavailable(self, caplog):
        envelope = encrypt("hello", SECRET)
        with caplog.at_level(logging.WARNING, logger="unitable"):
            assert decrypt(envelope, "other") is None
        assert "Decryption failed" in caplog.text

    def test_tampered_ciphertext(self):
        iv, tag, ct = encrypt("hello", SECRET).split(":")
        flipped = format(int(ct[:2], 16) ^ 0x01, "02x") + ct[2:]
        assert decrypt(f"{iv}:{tag}:{flipped}", SECRET) is None

    @pytest.mark.parametrize("envelope", ["", "abc", "zz:zz:zz", "00:00:00", "a:b:c:d"])
    def test_malformed(self, envelope):
        assert decrypt(envelope, SECRET) is None

    @pytest.mark.parametrize("value", ["text", 42, 1.5, True, None, {"a": [1, 2]}, [1, "x"]])
    def test_field_values_survive(self, value):
        assert decrypt_field(encrypt_field(value, SECRET), SECRET) == value

    def test_decrypted_non_json_is_unavailable(self):
        assert decrypt_field(encrypt("not json {", SECRET), SECRET) is None


class TestRowCodec:
    def test_encrypted_fields(self, vault_table):
        assert encrypted_fields(vault_table) == ["ssn", "profile", "born"]

    def test_encode_then_decode(self, vault_table):
        row = {
            "id": "1",
            "ssn": "123-45-6789",
            "profile": {"pets": ["cat"]},
            "born": datetime(1990, 5, 17, 8, 30),
            "note": "plain",
        }
        encoded = encode_row(row, vault_table, SECRET)

        assert encoded["id"] == "1"
        assert encoded["note"] == "plain"
        assert encoded["ssn"] != row["ssn"]
        assert encoded["ssn"].count(":") == 2
        assert isinstance(encoded["profile"], str)
        assert row["ssn"] == "123-45-6789"  # input untouched

        assert decode_row(encoded, vault_table, SECRET) == row

    def test_nulls_are_not_encrypted(self, vault_table):
        encoded = encode_row({"id": "1", "ssn": None}, vault_table, SECRET)
        assert encoded == {"id": "1", "ssn": None}

    def test_encode_without_secret_refuses(self, vault_table):
        with pytest.raises(ConfigurationError):
            encode_row({"id": "1", "ssn": "x"}, vault_table, None)

    def test_encode_without_secret_ok_when_nothing_to_encrypt(self, vault_table):
        assert encode_row({"id": "1", "note": "n"}, vault_table, None) == {"id": "1", "note": "n"}

    def test_decode_without_secret_passes_through(self, vault_table):
        encoded = encode_row({"id": "1", "ssn": "x"}, vault_table, SECRET)
        assert decode_row(encoded, vault_table, None) == encoded

    def test_decode_with_wrong_secret(self, vault_table):
        encoded = encode_row({"id": "1", "ssn": "x"}, vault_table, SECRET)
        assert decode_row(encoded, vault_table, "wrong") == {"id": "1", "ssn": None}

    def test_decode_rows(self, vault_table):
        rows = [encode_row({"id": str(i), "ssn": f"s{i}"}, vault_table, SECRET) for i in range(3)]
        assert [r["ssn"] for r in decode_rows(rows, vault_table, SECRET)] == ["s0", "s1", "s2"]
