"""
Shared test fixtures.

Services talk to Supabase through a chainable query builder. The
InMemorySupabaseClient below implements the subset they use (filters,
ordering, limits, counts, insert/update/delete) over plain dicts, so
multi-step operations can be checked end to end, including rollback.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

# Settings require these; tests never reach a real project
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import importlib
import pytest
from contextlib import ExitStack
from datetime import datetime, timedelta
from typing import Any, Callable, Generator, Optional
from unittest.mock import patch


# ===================
# IN-MEMORY SUPABASE CLIENT
# ===================

class InMemoryResponse:
    """Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data if data is not None else []
        self.count = count


class InMemoryQuery:
    """Chainable query over one table of an InMemorySupabaseClient."""

    def __init__(self, client: "InMemorySupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: list[Callable[[dict], bool]] = []
        self._orders: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._single = False
        self._count_mode: Optional[str] = None

    # Operations

    def select(self, *columns, count: Optional[str] = None):
        self._op = "select"
        self._count_mode = count
        return self

    def insert(self, rows):
        self._op = "insert"
        self._payload = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, changes: dict):
        self._op = "update"
        self._payload = dict(changes)
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters

    def eq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def lt(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] < value)
        return self

    def lte(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self

    def gt(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] > value)
        return self

    def gte(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def in_(self, column: str, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column: str, value):
        if value in ("null", None):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) is value)
        return self

    # Modifiers

    def order(self, column: str, desc: bool = False):
        self._orders.append((column, desc))
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def single(self):
        self._single = True
        return self

    def execute(self) -> InMemoryResponse:
        self._client._check_failure(self._table, self._op)
        rows = self._client._tables.setdefault(self._table, [])

        if self._op == "insert":
            created = [self._client._new_row(self._table, row) for row in self._payload]
            rows.extend(created)
            return InMemoryResponse(copy.deepcopy(created), len(created))

        matched = [row for row in rows if all(f(row) for f in self._filters)]

        if self._op == "update":
            now = self._client._tick()
            for row in matched:
                row.update(copy.deepcopy(self._payload))
                row["updated_at"] = now
            return InMemoryResponse(copy.deepcopy(matched), len(matched))

        if self._op == "delete":
            self._client._tables[self._table] = [row for row in rows if row not in matched]
            return InMemoryResponse(copy.deepcopy(matched), len(matched))

        for column, desc in reversed(self._orders):
            matched.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)

        count = len(matched) if self._count_mode else None
        if self._limit is not None:
            matched = matched[:self._limit]

        data = copy.deepcopy(matched)
        if self._single:
            return InMemoryResponse(data[0] if data else None, count)
        return InMemoryResponse(data, count)


class InMemorySupabaseClient:
    """
    In-memory stand-in for the Supabase client.

    Rows get sequential ids ("orders-0001") and strictly increasing
    created_at timestamps, so insertion order is also enumeration order.
    """

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._ids = 0
        self._clock = datetime(2026, 1, 1, 0, 0, 0)
        self._failures: list[dict] = []

    def table(self, name: str) -> InMemoryQuery:
        return InMemoryQuery(self, name)

    # Test helpers

    def set_table_data(self, table_name: str, data: list):
        """Seed a table (rows are copied)."""
        self._tables[table_name] = copy.deepcopy(data)

    def rows(self, table_name: str) -> list[dict]:
        """Current rows of a table (copies)."""
        return copy.deepcopy(self._tables.get(table_name, []))

    def row(self, table_name: str, row_id: str) -> Optional[dict]:
        for row in self._tables.get(table_name, []):
            if row["id"] == row_id:
                return copy.deepcopy(row)
        return None

    def fail_on(self, table: str, op: str, after: int = 0):
        """Make the next op on table fail, after letting `after` such calls pass."""
        self._failures.append({"table": table, "op": op, "skip": after})

    # Internals

    def _check_failure(self, table: str, op: str):
        for failure in self._failures:
            if failure["table"] == table and failure["op"] == op:
                if failure["skip"] > 0:
                    failure["skip"] -= 1
                    return
                self._failures.remove(failure)
                raise RuntimeError(f"injected {op} failure on {table}")

    def _tick(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat() + "Z"

    def _new_row(self, table: str, row: dict) -> dict:
        self._ids += 1
        now = self._tick()
        created = copy.deepcopy(row)
        created.setdefault("id", f"{table}-{self._ids:04d}")
        created.setdefault("created_at", now)
        created.setdefault("updated_at", now)
        return created


# ===================
# FIXTURES
# ===================

SERVICE_SINGLETONS = {
    "services.settings_service": "_settings_service",
    "services.notification_service": "_notifier",
    "services.capacity_service": "_capacity_service",
    "services.period_service": "_period_service",
    "services.availability_service": "_availability_service",
    "services.cycle_service": "_cycle_service",
    "services.materialization_service": "_materialization_service",
    "services.demand_service": "_demand_service",
    "services.fulfillment_service": "_fulfillment_service",
    "services.subscription_service": "_subscription_service",
}


@pytest.fixture(autouse=True)
def reset_service_singletons() -> Generator:
    """Each test builds services against its own client."""
    modules = [importlib.import_module(name) for name in SERVICE_SINGLETONS]
    for module, attr in zip(modules, SERVICE_SINGLETONS.values()):
        setattr(module, attr, None)
    yield
    for module, attr in zip(modules, SERVICE_SINGLETONS.values()):
        setattr(module, attr, None)


@pytest.fixture
def fake_db() -> Generator[InMemorySupabaseClient, None, None]:
    """
    Patch every service's database client with one in-memory client.

    Usage:
        def test_something(fake_db):
            fake_db.set_table_data("weeks", [PeriodFactory.create()])
            # Any service built now reads and writes fake_db
    """
    client = InMemorySupabaseClient()
    with ExitStack() as stack:
        stack.enter_context(patch("config.database.get_supabase_client", return_value=client))
        for module in SERVICE_SINGLETONS:
            stack.enter_context(patch(f"{module}.get_supabase_client", return_value=client))
        yield client


@pytest.fixture
def operator_alerts() -> Generator:
    """Capture Telegram operator alerts instead of sending them."""
    with patch("services.materialization_service.send_operator_alert") as materialization_alert:
        with patch("services.cycle_service.send_operator_alert") as cycle_alert:
            yield {"materialization": materialization_alert, "cycle": cycle_alert}


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(fake_db):
    """
    FastAPI test client backed by the in-memory database.

    Usage:
        def test_endpoint(test_client, fake_db):
            fake_db.set_table_data("weeks", [...])
            response = test_client.get("/api/periods/current")
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
