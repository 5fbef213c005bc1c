# src/unitable/codec.py
"""Row-level encode/decode of fields marked `encrypted`."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from unitable.config.models import FieldType, Table
from unitable.crypto import decrypt_field, encrypt_field
from unitable.errors import ConfigurationError
from unitable.validation.compiler import parse_datetime


def encrypted_fields(table: Table) -> List[str]:
    return [f.id for f in table.fields if f.encrypted]


def encode_row(row: Dict[str, Any], table: Table, secret: Optional[str]) -> Dict[str, Any]:
    """
    Replace every non-null encrypted column with its envelope.

    The whole column value is the unit of encryption; sub-fields of a json
    column are never encrypted individually.

    Raises:
        ConfigurationError: the table has encrypted fields present in `row`
            but no secret is available.
    """
    targets = [fid for fid in encrypted_fields(table) if row.get(fid) is not None]
    if not targets:
        return dict(row)
    if not secret:
        raise ConfigurationError(
            f"Table '{table.id}' has encrypted fields ({', '.join(targets)}) "
            "but no encryption secret is configured"
        )
    out = dict(row)
    for fid in targets:
        out[fid] = encrypt_field(out[fid], secret)
    return out


def decode_row(row: Dict[str, Any], table: Table, secret: Optional[str]) -> Dict[str, Any]:
    """
    Inverse of `encode_row`.

    Values that cannot be decrypted come back as None. Without a secret the
    row is returned unchanged.
    """
    if not secret:
        return row
    out = dict(row)
    for field in table.fields:
        if not field.encrypted:
            continue
        value = out.get(field.id)
        if not isinstance(value, str):
            continue
        plain = decrypt_field(value, secret)
        if field.type == FieldType.DATE and plain is not None:
            plain = parse_datetime(plain)
        out[field.id] = plain
    return out


def decode_rows(rows: List[Dict[str, Any]], table: Table, secret: Optional[str]) -> List[Dict[str, Any]]:
    if not secret or not encrypted_fields(table):
        return rows
    return [decode_row(r, table, secret) for r in rows]
