# tests/test_service.py
"""Tests for DataService: schemas, connections, permissions and data access."""

import pytest

from unitable.cache import TTLCache
from unitable.config.models import (
    Connection,
    Permission,
    PermissionLevel,
    PermissionTarget,
    PermissionTargetType,
    Schema,
    TableQueryOptions,
)
from unitable.config.settings import UnitableSettings
from unitable.errors import ConfigurationError
from unitable.schema_ops import SchemaMutator, SchemaNotFoundError
from unitable.service import DataService, SystemTableOptions

from conftest import CountingAdapter, make_users_table


def _target(target_id="app-1", target_type=PermissionTargetType.APP):
    return PermissionTarget(target_type=target_type, target_id=target_id)


def _perm(pid, email, level, target_id="app-1", target_type=PermissionTargetType.APP):
    return Permission(id=pid, target_type=target_type, target_id=target_id, email=email, level=level)


# =============================================================================
# Schemas
# =============================================================================


class TestSchemas:
    def test_set_then_get_hits_cache(self, service, store, app_schema):
        service.set_schema(app_schema)
        reads = store.reads

        assert service.get_schema("app-1") == app_schema
        assert service.get_schema("app-1") == app_schema
        assert store.reads == reads

    def test_round_trip_through_store(self, service, app_schema):
        service.set_schema(app_schema)
        service.schema_cache.clear()

        loaded = service.get_schema("app-1")
        assert loaded == app_schema
        assert loaded.get_table("users").key_fields()[0].id == "id"

    def test_expiry_goes_back_to_store(self, store, memory, settings, clock, app_schema):
        service = DataService(
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            [store, memory],
            settings,
            schema_cache=TTLCache(max_size=10, ttl_seconds=60, clock=clock),
        )
        service.set_schema(app_schema)
        reads = store.reads

        clock.advance(30)
        service.get_schema("app-1")
        assert store.reads == reads

        clock.advance(31)
        assert service.get_schema("app-1") == app_schema
        assert store.reads == reads + 1

    def test_entry_expiring_between_lock_acquisitions(self, store, memory, settings, clock, app_schema):
        class ExpiresOnContains(TTLCache):
            def contains(self, key):
                found = super().contains(key)
                clock.advance(120)
                return found

        service = DataService(
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            [store, memory],
            settings,
            schema_cache=ExpiresOnContains(max_size=10, ttl_seconds=60, clock=clock),
        )
        service.set_schema(app_schema)
        assert service.get_schema("app-1") == app_schema

        service.set_schema(app_schema)
        assert len(store.tables["schemas"]) == 1

    def test_missing_schema_is_cached_as_none(self, service, store):
        assert service.get_schema("ghost") is None
        reads = store.reads
        assert service.get_schema("ghost") is None
        assert store.reads == reads

    def test_update_replaces_stored_document(self, service, store, app_schema):
        service.set_schema(app_schema)
        renamed = app_schema.model_copy(update={"name": "Renamed"})
        service.set_schema(renamed)
        service.schema_cache.clear()

        assert service.get_schema("app-1").name == "Renamed"
        assert len(store.tables["schemas"]) == 1

    def test_owner_gets_admin_on_first_write(self, service, app_schema):
        service.set_schema(app_schema, owner="Owner@Example.com")
        assert service.has_permission(_target(), "owner@example.com", PermissionLevel.ADMIN)

        service.set_schema(app_schema, owner="someone@example.com")
        assert not service.has_permission(_target(), "someone@example.com", PermissionLevel.READ)

    def test_delete(self, service, app_schema):
        service.set_schema(app_schema)
        assert service.delete_schema("app-1") is True
        assert service.get_schema("app-1") is None
        assert service.delete_schema("app-1") is False

    def test_field_change_invalidates_validator(self, service, app_schema):
        users = app_schema.get_table("users")
        service.set_schema(app_schema)
        service.compiler.compile(users)
        key = service.compiler.cache_key(users)
        assert key in service.compiler.cache

        changed = app_schema.model_copy(deep=True)
        changed.get_table("users").get_field("name").max_length = 3
        service.set_schema(changed)
        assert key not in service.compiler.cache


class TestSchemaMutator:
    def test_edit_is_saved(self, service, app_schema):
        service.set_schema(app_schema)
        SchemaMutator(service).delete("app-1", "fields", "email", parent_id="users")

        service.schema_cache.clear()
        table = service.get_schema("app-1").get_table("users")
        assert table.get_field("email") is None

    def test_reorder(self, service, app_schema):
        service.set_schema(app_schema)
        out = SchemaMutator(service).reorder("app-1", "views", 1, 0)
        assert [v.id for v in out.views] == ["names", "all"]
        assert [v.id for v in service.get_schema("app-1").views] == ["names", "all"]

    def test_missing_schema(self, service):
        with pytest.raises(SchemaNotFoundError):
            SchemaMutator(service).add("ghost", "views", {"id": "v", "name": "v", "tableId": "t"})


# =============================================================================
# Connections
# =============================================================================


class TestConnections:
    def test_content_is_stored_encrypted(self, service, store):
        service.set_connection(Connection(id="c1", source_id="mem", name="Sheet", content="token-123"))

        stored = store.tables["connections"][0]
        assert stored["content"] != "token-123"

        service.connection_cache.clear()
        assert service.get_connection("c1").content == "token-123"

    def test_get_connections(self, service):
        service.set_connection(Connection(id="c1", source_id="mem", content="a"))
        service.set_connection(Connection(id="c2", source_id="mem", content="b"))
        assert sorted(c.content for c in service.get_connections()) == ["a", "b"]

    def test_owner_and_delete(self, service):
        service.set_connection(Connection(id="c1", source_id="mem", content="a"), owner="me@x.io")
        target = _target("c1", PermissionTargetType.CONNECTION)
        assert service.has_permission(target, "me@x.io", PermissionLevel.WRITE)

        assert service.delete_connection("c1") is True
        assert service.get_connection("c1") is None
        assert service.delete_connection("c1") is False

    def test_secret_required_for_content(self, store, memory):
        service = DataService(
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            [store, memory],
            UnitableSettings(),
        )
        with pytest.raises(ConfigurationError):
            service.set_connection(Connection(id="c1", source_id="mem", content="token"))


# =============================================================================
# Permissions
# =============================================================================


class TestPermissions:
    @pytest.fixture
    def granted(self, service):
        service.set_permission(_perm("p1", "Ann@Example.com", PermissionLevel.WRITE))
        service.set_permission(_perm("p2", "bob@example.com", PermissionLevel.READ))
        service.set_permission(_perm("p3", "ann@example.com", PermissionLevel.ADMIN, target_id="app-2"))
        return service

    def test_email_is_lowercased(self, granted):
        assert granted.get_permission("p1").email == "ann@example.com"

    @pytest.mark.parametrize(
        "level,expected",
        [(PermissionLevel.READ, True), (PermissionLevel.WRITE, True), (PermissionLevel.ADMIN, False)],
    )
    def test_has_permission_orders_levels(self, granted, level, expected):
        assert granted.has_permission(_target(), "ANN@example.com", level) is expected

    def test_unknown_user(self, granted):
        assert not granted.has_permission(_target(), "eve@example.com", PermissionLevel.READ)

    def test_get_permissions_for_target(self, granted):
        assert sorted(p.id for p in granted.get_permissions(_target())) == ["p1", "p2"]

    def test_by_user(self, granted):
        assert sorted(p.id for p in granted.get_permissions_by_user("ann@example.com")) == ["p1", "p3"]
        only_apps = granted.get_permissions_by_user("ann@example.com", PermissionTargetType.CONNECTION)
        assert only_apps == []

    def test_update_level(self, granted):
        granted.set_permission(_perm("p2", "bob@example.com", PermissionLevel.ADMIN))
        assert granted.get_permission("p2").level == PermissionLevel.ADMIN
        assert len(granted.get_permissions(_target())) == 2

    def test_delete(self, granted):
        assert granted.delete_permission("p2") is True
        assert granted.delete_permission("p2") is False
        assert granted.delete_permissions(_target()) == 1
        assert granted.get_permissions(_target()) == []
        assert granted.get_permission("p3") is not None


# =============================================================================
# Data access
# =============================================================================


class TestData:
    def test_execute_and_query(self, service, people):
        table = make_users_table()
        result = service.execute_action(table, "add", people)
        assert result.applied["add"] == 3

        rows = service.get_data(table, TableQueryOptions(limit=2))
        assert len(rows) == 2

    def test_connection_content_is_the_adapter_secret(self, settings):
        sheet = CountingAdapter(adapter_id="sheet")
        store = CountingAdapter(adapter_id="store")
        service = DataService(
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            [store, sheet],
            settings,
        )
        service.set_connection(Connection(id="c1", source_id="sheet", content="api-token"))
        table = make_users_table(source_id="sheet", connection_id="c1")

        service.execute_action(table, "add", [{"id": "1", "name": "Ann"}])
        assert sheet.secrets == ["api-token"]

    def test_system_store_secret_overrides_connection(self, settings):
        store = CountingAdapter(adapter_id="store")
        service = DataService(
            SystemTableOptions(source_id="store", secret="static"),
            SystemTableOptions(source_id="store"),
            SystemTableOptions(source_id="store"),
            [store],
            settings,
        )
        service.set_schema(Schema(id="s", name="S"))
        assert store.secrets == ["static"]
