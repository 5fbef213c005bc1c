from datetime import datetime

import pytest

from unitable.adapters import AdapterRegistry, MemoryAdapter
from unitable.config.models import Action, ActionType, Field, FieldType, Schema, Table, View
from unitable.config.settings import UnitableSettings
from unitable.service import DataService, SystemTableOptions

SECRET = "unit-test-secret"


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingAdapter(MemoryAdapter):
    """MemoryAdapter that records reads and the secrets it was handed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0
        self.secrets = []

    def get_data(self, table, secret=None):
        self.reads += 1
        return super().get_data(table, secret)

    def add_row(self, table, secret, row):
        self.secrets.append(secret)
        super().add_row(table, secret, row)


def make_users_table(source_id: str = "mem", **overrides) -> Table:
    data = dict(
        id="users",
        name="Users",
        source_id=source_id,
        path=["users"],
        fields=[
            Field(id="id", name="Id", type=FieldType.TEXT, is_required=True, is_key=True),
            Field(id="name", name="Name", type=FieldType.TEXT, is_required=True, min_length=1),
            Field(id="email", name="Email", type=FieldType.EMAIL),
            Field(id="age", name="Age", type=FieldType.NUMBER, min_value=0, max_value=150),
            Field(id="active", name="Active", type=FieldType.BOOLEAN),
            Field(id="joined", name="Joined", type=FieldType.DATE),
        ],
        actions=[
            Action(id="add", type=ActionType.ADD),
            Action(id="update", type=ActionType.UPDATE),
            Action(id="delete", type=ActionType.DELETE),
        ],
    )
    data.update(overrides)
    return Table(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def users_table() -> Table:
    return make_users_table()


@pytest.fixture
def people():
    return [
        {"id": "1", "name": "Alice", "age": 30, "active": True, "joined": datetime(2024, 1, 5)},
        {"id": "2", "name": "Bob", "age": 25, "active": False, "joined": datetime(2023, 6, 1)},
        {"id": "3", "name": "Charlie", "age": 35, "active": True, "joined": datetime(2024, 3, 9)},
    ]


@pytest.fixture
def memory() -> MemoryAdapter:
    return MemoryAdapter(adapter_id="mem")


@pytest.fixture
def registry(memory) -> AdapterRegistry:
    return AdapterRegistry([memory])


@pytest.fixture
def settings() -> UnitableSettings:
    return UnitableSettings(encryption_secret=SECRET)


@pytest.fixture
def store() -> CountingAdapter:
    return CountingAdapter(adapter_id="store")


@pytest.fixture
def service(store, memory, settings) -> DataService:
    return DataService(
        SystemTableOptions(source_id="store"),
        SystemTableOptions(source_id="store"),
        SystemTableOptions(source_id="store"),
        [store, memory],
        settings,
    )


@pytest.fixture
def app_schema(users_table) -> Schema:
    return Schema(
        id="app-1",
        name="CRM",
        tables=[users_table],
        views=[
            View(
                id="all",
                name="Everything",
                table_id="users",
                config={"fields": [f.id for f in users_table.fields]},
            ),
            View(id="names", name="Names", table_id="users", config={"fields": ["id", "name"]}),
        ],
    )
