# tests/test_adapters_inference.py
"""Tests for adapters, descriptors and table inference."""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

import pytest
from pydantic import BaseModel, Field as PydField

from unitable.adapters import (
    AdapterCapabilities,
    AdapterRegistry,
    ConnectionSource,
    FileSource,
    InlineSource,
    JsonFileAdapter,
    MemoryAdapter,
    StreamSource,
    UrlSource,
    as_descriptor,
    create_adapter,
    register_adapter,
)
from unitable.adapters.registry import adapter_types
from unitable.config.models import Field, FieldType, Schema
from unitable.errors import AdapterNotFoundError, DuplicateAdapterError, KeyFieldRequiredError
from unitable.inference import field_from_duckdb_type, infer_table, table_from_model

from conftest import make_users_table


# =============================================================================
# Registry and capabilities
# =============================================================================


class TestRegistry:
    def test_builtin_types(self):
        assert {"memory", "json-file"} <= set(adapter_types())

    def test_create_adapter(self, tmp_path):
        adapter = create_adapter("json-file", path=tmp_path / "db.json", adapter_id="files")
        assert isinstance(adapter, JsonFileAdapter)
        assert adapter.adapter_id == "files"

    def test_create_unknown(self):
        with pytest.raises(AdapterNotFoundError):
            create_adapter("carrier-pigeon")

    def test_register_type_twice(self):
        with pytest.raises(DuplicateAdapterError):
            register_adapter("memory")(MemoryAdapter)

    def test_duplicate_instance_id(self):
        registry = AdapterRegistry([MemoryAdapter(adapter_id="a")])
        with pytest.raises(DuplicateAdapterError):
            registry.register(MemoryAdapter(adapter_id="a"))

    def test_lookup(self):
        a = MemoryAdapter(adapter_id="a")
        registry = AdapterRegistry([a])
        assert registry.get("a") is a
        assert registry.get("b") is None
        assert "a" in registry
        assert registry.ids() == ["a"]
        with pytest.raises(AdapterNotFoundError):
            registry.require("b")

    def test_supports(self):
        adapter = MemoryAdapter()
        assert adapter.supports(AdapterCapabilities.ADD_ROW)
        assert adapter.supports(AdapterCapabilities.ROW_WRITES)
        assert not adapter.supports(AdapterCapabilities.GET_DATA_STREAM)
        assert not adapter.supports(AdapterCapabilities.GET_DATA | AdapterCapabilities.AUTHORIZE)

    def test_unimplemented_methods_raise(self):
        with pytest.raises(NotImplementedError):
            MemoryAdapter().authorize({})


class TestDescriptors:
    def test_as_descriptor(self):
        rows = [{"id": 1}]
        assert as_descriptor(rows) == InlineSource(rows)
        assert isinstance(as_descriptor(iter(rows)), StreamSource)
        assert as_descriptor(None) is None
        src = FileSource("a.csv")
        assert as_descriptor(src) is src
        with pytest.raises(TypeError):
            as_descriptor({"id": 1})

    def test_format_is_checked(self):
        with pytest.raises(ValueError):
            FileSource("a.xml", format="xml")
        assert UrlSource("https://x.io/a", format="csv", headers={"Authorization": "t"}).headers

    def test_frozen(self):
        src = ConnectionSource(module="postgres", connection_string="dbname=x", target="public.users")
        with pytest.raises(AttributeError):
            src.target = "other"


# =============================================================================
# Reference adapters
# =============================================================================


class TestMemoryAdapter:
    def test_rows_are_copied(self):
        rows = [{"id": "1", "tags": ["a"]}]
        adapter = MemoryAdapter({"t": rows})
        rows[0]["tags"].append("b")
        data = adapter.get_data(make_users_table(path=["t"])).data
        assert data == [{"id": "1", "tags": ["a"]}]
        data[0]["id"] = "changed"
        assert adapter.tables["t"][0]["id"] == "1"

    def test_writes_hit_first_match_only(self, users_table):
        adapter = MemoryAdapter({"users": [{"id": "1", "n": 1}, {"id": "1", "n": 2}]})
        adapter.update_row(users_table, None, {"id": "1"}, {"n": 9})
        assert [r["n"] for r in adapter.tables["users"]] == [9, 2]
        adapter.delete_row(users_table, None, {"id": "1"})
        assert adapter.tables["users"] == [{"id": "1", "n": 2}]

    def test_falls_back_to_table_id(self):
        adapter = MemoryAdapter()
        table = make_users_table(path=[])
        adapter.add_row(table, None, {"id": "1"})
        assert adapter.tables == {"users": [{"id": "1"}]}

    def test_discovery(self):
        adapter = MemoryAdapter({"people": [{"id": 1, "name": "A"}], "pets": []}, adapter_id="m")
        assert [t.name for t in adapter.list_tables([])] == ["people", "pets"]
        table = adapter.get_table(["people"])
        assert table.source_id == "m"
        assert [f.id for f in table.key_fields()] == ["id"]

    def test_schema_store(self):
        adapter = MemoryAdapter()
        adapter.save_schema(Schema(id="s", name="S"))
        assert adapter.get_schema("s").name == "S"
        adapter.delete_schema("s")
        assert adapter.get_schema("s") is None


class TestJsonFileAdapter:
    def test_missing_file_is_empty(self, tmp_path, users_table):
        adapter = JsonFileAdapter(tmp_path / "db.json")
        assert adapter.get_data(users_table).data == []
        assert adapter.list_tables([]) == []

    def test_persists_across_instances(self, tmp_path, users_table):
        path = tmp_path / "nested" / "db.json"
        first = JsonFileAdapter(path)
        first.add_row(users_table, None, {"id": "1", "name": "Ann", "joined": datetime(2024, 1, 1)})
        first.add_row(users_table, None, {"id": "2", "name": "Bob"})
        first.update_row(users_table, None, {"id": "1"}, {"name": "Annie"})
        first.delete_row(users_table, None, {"id": "2"})
        first.save_schema(Schema(id="s", name="S"))

        second = JsonFileAdapter(path)
        assert second.get_data(users_table).data == [
            {"id": "1", "name": "Annie", "joined": "2024-01-01 00:00:00"}
        ]
        assert second.get_schema("s") == Schema(id="s", name="S")


# =============================================================================
# Inference
# =============================================================================


class TestInferTable:
    def test_types_from_values(self):
        table = infer_table(
            "t",
            ["t"],
            [
                {"id": 1, "name": "A", "when": datetime(2024, 1, 1), "tags": ["x"], "meta": {"a": 1}, "ok": True},
                {"id": 2, "name": None, "mixed": 1},
                {"id": 3, "mixed": "one"},
            ],
            source_id="mem",
        )
        types = {f.id: f.type for f in table.fields}
        assert types == {
            "id": FieldType.NUMBER,
            "name": FieldType.TEXT,
            "when": FieldType.DATE,
            "tags": FieldType.LIST,
            "meta": FieldType.JSON,
            "ok": FieldType.BOOLEAN,
            "mixed": FieldType.TEXT,
        }
        assert [f.id for f in table.key_fields()] == ["id"]

    def test_first_field_is_key_without_id(self):
        table = infer_table("t", [], [{"code": "a", "label": "b"}], source_id="mem")
        assert [f.id for f in table.key_fields()] == ["code"]

    def test_no_rows(self):
        assert infer_table("t", [], [], source_id="mem").fields == []

    @pytest.mark.parametrize(
        "type_name,expected",
        [
            ("BIGINT", FieldType.NUMBER),
            ("DECIMAL(10,2)", FieldType.NUMBER),
            ("VARCHAR", FieldType.TEXT),
            ("BOOLEAN", FieldType.BOOLEAN),
            ("TIMESTAMP WITH TIME ZONE", FieldType.DATE),
            ("DATE", FieldType.DATE),
            ("STRUCT(a INTEGER)", FieldType.JSON),
            ("MAP(VARCHAR, INTEGER)", FieldType.JSON),
        ],
    )
    def test_duckdb_types(self, type_name, expected):
        assert field_from_duckdb_type("c", type_name).type == expected

    def test_duckdb_list_type(self):
        f = field_from_duckdb_type("c", "INTEGER[]")
        assert f.type == FieldType.LIST
        assert f.child.type == FieldType.NUMBER


class Color(str, Enum):
    RED = "red"
    BLUE = "blue"


class Address(BaseModel):
    street: str
    zip: Optional[str] = None


class Customer(BaseModel):
    id: str
    name: str = PydField(min_length=2, max_length=40)
    age: Optional[int] = PydField(default=None, ge=0, le=130)
    color: Color = Color.RED
    tier: Literal["free", "pro"] = "free"
    signed_up: datetime
    address: Optional[Address] = None
    tags: List[str] = []
    vip: bool = False


class TestTableFromModel:
    def test_fields(self):
        table = table_from_model(Customer, table_id="customers", name="Customers", source_id="mem")
        by_id = {f.id: f for f in table.fields}

        assert table.path == []
        assert [f.id for f in table.key_fields()] == ["id"]
        assert by_id["id"].is_required
        assert (by_id["name"].min_length, by_id["name"].max_length) == (2, 40)
        assert by_id["age"].type == FieldType.NUMBER
        assert not by_id["age"].is_required
        assert (by_id["age"].min_value, by_id["age"].max_value) == (0, 130)
        assert by_id["color"].options == ["red", "blue"]
        assert by_id["tier"].options == ["free", "pro"]
        assert by_id["signed_up"].type == FieldType.DATE
        assert [f.id for f in by_id["address"].fields] == ["street", "zip"]
        assert by_id["tags"].child.type == FieldType.TEXT
        assert by_id["vip"].type == FieldType.BOOLEAN

    def test_missing_primary_key(self):
        with pytest.raises(KeyFieldRequiredError):
            table_from_model(Address, source_id="mem")

    def test_recursive_model_stays_finite(self):
        table = table_from_model(Field, source_id="mem")
        nested = next(f for f in table.fields if f.id == "fields")
        assert nested.type == FieldType.LIST
        assert nested.child.type == FieldType.JSON
        assert nested.child.fields is None
        assert table.get_field("isRequired") is not None
