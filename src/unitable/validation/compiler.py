# src/unitable/validation/compiler.py
"""
Compile a table's declarative field list into a row validator.

Each table becomes a pydantic model built with `create_model`:

    text / reference  str (strict), min_length / max_length
    email             str matching an address pattern
    number            int | float (bools rejected), min_value / max_value
    boolean           strict bool
    date              datetime (date and ISO strings accepted), start / end bounds
    dropdown          one of `options` (no options: nothing validates)
    json              nested model from `fields`, else any value
    list              list of `child`, else list of anything

Optional fields accept a missing key or null. Unknown keys are rejected.

Compiled validators are memoized per `table.id` plus a hash of the field
list, so editing a field in place never serves a stale validator.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Annotated, Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import (
    BaseModel,
    ConfigDict,
    Field as PydField,
    StrictBool,
    StringConstraints,
    ValidationError as PydanticValidationError,
    create_model,
)
from pydantic.functional_validators import PlainValidator
from pydantic_core import PydanticCustomError

from unitable.cache import TTLCache
from unitable.config.models import MAX_FIELD_DEPTH, Field, FieldType, Table
from unitable.errors import SchemaInvariantError, ValidationError
from unitable.logging import get_logger

_logger = get_logger(__name__)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_STRICT_CONFIG = ConfigDict(extra="forbid", populate_by_name=False)


# ---------------------------------------------------------------------------
# Scalar checks
# ---------------------------------------------------------------------------


def to_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are shifted to UTC; naive ones are taken as UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(value: Any) -> Optional[datetime]:
    """datetime / date / ISO-8601 string → naive UTC datetime, else None."""
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def _number_check(field: Field) -> Callable[[Any], Any]:
    lo, hi = field.min_value, field.max_value

    def check(value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PydanticCustomError("number_type", "Expected a number")
        if isinstance(value, float) and math.isnan(value):
            raise PydanticCustomError("number_type", "Expected a number, got NaN")
        if lo is not None and value < lo:
            raise PydanticCustomError(
                "too_small",
                "Number must be greater than or equal to {min}",
                {"min": lo},
            )
        if hi is not None and value > hi:
            raise PydanticCustomError(
                "too_big",
                "Number must be less than or equal to {max}",
                {"max": hi},
            )
        return value

    return check


def _date_check(field: Field) -> Callable[[Any], datetime]:
    start = to_naive_utc(field.start_date) if field.start_date else None
    end = to_naive_utc(field.end_date) if field.end_date else None

    def check(value: Any) -> datetime:
        parsed = parse_datetime(value)
        if parsed is None:
            raise PydanticCustomError("invalid_date", "Expected a date")
        if start is not None and parsed < start:
            raise PydanticCustomError(
                "too_small", "Date must be on or after {start}", {"start": start.isoformat()}
            )
        if end is not None and parsed > end:
            raise PydanticCustomError(
                "too_big", "Date must be on or before {end}", {"end": end.isoformat()}
            )
        return parsed

    return check


def _dropdown_check(field: Field) -> Callable[[Any], str]:
    options = list(field.options or [])

    def check(value: Any) -> str:
        if not isinstance(value, str) or value not in options:
            raise PydanticCustomError(
                "invalid_enum_value",
                "Expected one of: {expected}",
                {"expected": ", ".join(repr(o) for o in options) or "<no options>"},
            )
        return value

    return check


# ---------------------------------------------------------------------------
# Field → type
# ---------------------------------------------------------------------------


def _base_type(field: Field, depth: int) -> Any:
    if depth > MAX_FIELD_DEPTH:
        raise SchemaInvariantError(
            f"Field '{field.id}' nests deeper than {MAX_FIELD_DEPTH} levels"
        )

    t = field.type
    if t in (FieldType.TEXT, FieldType.REFERENCE):
        return Annotated[
            str,
            StringConstraints(
                strict=True, min_length=field.min_length, max_length=field.max_length
            ),
        ]
    if t == FieldType.EMAIL:
        return Annotated[str, StringConstraints(strict=True, pattern=EMAIL_PATTERN)]
    if t == FieldType.NUMBER:
        return Annotated[Any, PlainValidator(_number_check(field))]
    if t == FieldType.BOOLEAN:
        return StrictBool
    if t == FieldType.DATE:
        return Annotated[Any, PlainValidator(_date_check(field))]
    if t == FieldType.DROPDOWN:
        return Annotated[Any, PlainValidator(_dropdown_check(field))]
    if t == FieldType.JSON:
        if field.fields:
            return _model_from_fields(f"Json_{field.id}", field.fields, depth + 1)
        return Any
    if t == FieldType.LIST:
        if field.child is not None:
            return List[_field_type(field.child, depth + 1)]  # type: ignore[misc]
        return List[Any]
    raise SchemaInvariantError(f"Unsupported field type '{t}' on '{field.id}'")


def _field_type(field: Field, depth: int) -> Any:
    base = _base_type(field, depth)
    return base if field.is_required else Optional[base]


def _model_from_fields(name: str, fields: List[Field], depth: int) -> Type[BaseModel]:
    # Attribute names are positional; the field id travels as the alias so
    # any id (spaces, dashes, reserved words) is a valid key.
    definitions: Dict[str, Tuple[Any, Any]] = {}
    for i, f in enumerate(fields):
        tp = _field_type(f, depth)
        if f.is_required:
            definitions[f"f{i}"] = (tp, PydField(alias=f.id))
        else:
            definitions[f"f{i}"] = (tp, PydField(default=None, alias=f.id))
    return create_model(name, __config__=_STRICT_CONFIG, **definitions)  # type: ignore[call-overload]


def _issue_path(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(p) for p in loc)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class RowValidator:
    """Validates plain-dict rows against one compiled table model."""

    def __init__(self, table_id: str, model: Type[BaseModel]):
        self.table_id = table_id
        self.model = model

    def validate(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate `row` and return the normalized values for the keys it had.

        Raises:
            ValidationError: with one issue per problem, paths dotted
        """
        if not isinstance(row, dict):
            raise ValidationError(
                self.table_id,
                [{"path": "", "message": "Row must be an object", "code": "invalid_type"}],
            )
        try:
            instance = self.model.model_validate(row)
        except PydanticValidationError as e:
            issues = [
                {
                    "path": _issue_path(err["loc"]),
                    "message": err["msg"],
                    "code": err["type"],
                }
                for err in e.errors()
            ]
            raise ValidationError(self.table_id, issues) from e
        return instance.model_dump(by_alias=True, exclude_unset=True)

    def is_valid(self, row: Dict[str, Any]) -> bool:
        try:
            self.validate(row)
        except ValidationError:
            return False
        return True


def compile_table(table: Table) -> RowValidator:
    """Build a validator for `table` without caching."""
    model = _model_from_fields(f"Row_{table.id}", table.fields, depth=0)
    return RowValidator(table.id, model)


def compile_field(field: Field) -> RowValidator:
    """Validator for a single-field row `{field.id: value}`; handy in tests and forms."""
    return RowValidator(field.id, _model_from_fields(f"Field_{field.id}", [field], depth=0))


class ValidatorCompiler:
    """
    Memoizing front for `compile_table`.

    Cache keys are `"{table.id}:{fields_fingerprint}"`; `invalidate` drops
    every entry for a table id regardless of fingerprint.
    """

    def __init__(self, cache: Optional[TTLCache[RowValidator]] = None):
        self.cache: TTLCache[RowValidator] = cache or TTLCache(
            max_size=500, ttl_seconds=3600.0, name="validators"
        )

    @staticmethod
    def cache_key(table: Table) -> str:
        return f"{table.id}:{table.fields_fingerprint()}"

    def compile(self, table: Table) -> RowValidator:
        key = self.cache_key(table)
        validator = self.cache.get(key)
        if validator is None:
            _logger.debug("Compiling validator for table %s", table.id)
            validator = compile_table(table)
            self.cache.set(key, validator)
        return validator

    def validate(self, table: Table, row: Dict[str, Any]) -> Dict[str, Any]:
        return self.compile(table).validate(row)

    def invalidate(self, table_id: str) -> int:
        prefix = f"{table_id}:"
        return self.cache.delete_where(lambda k: isinstance(k, str) and k.startswith(prefix))
