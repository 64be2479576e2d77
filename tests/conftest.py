"""
Pytest fixtures and configuration for the SLA escalation tests.

Provides:
- Mock Supabase client for isolated testing
- A real SupabaseClient store wired to the mock tables
- Recording notification transports
- Test client with the engine's store patched
"""
import os

# Settings are loaded at import time; these must exist before any app import
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("RUN_SCHEDULER", "false")

import pytest
from typing import Any, Dict, Generator, Optional
from unittest.mock import patch

from fastapi.testclient import TestClient

from sla_escalation.core.database import SupabaseClient
from sla_escalation.services.notifications import Dispatcher

from helpers import RecordingTransport


# ==========================================
# MOCK SUPABASE RESPONSE & TABLE
# ==========================================

class MockSupabaseResponse:
    """Mock response from Supabase operations."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)

    def execute(self):
        return self


class MockNotFilter:
    """Helper class to handle negated filters like .not_.in_()."""

    def __init__(self, table: "MockSupabaseTable"):
        self._table = table

    def in_(self, column: str, values: list):
        """Add a NOT IN filter."""
        self._table._filters.append(("not_in", column, values))
        return self._table

    def is_(self, column: str, value: Any):
        """Add a NOT IS filter (e.g. not null)."""
        self._table._filters.append(("not_is", column, value))
        return self._table


class MockSupabaseTable:
    """Mock Supabase table operations."""

    def __init__(self, table_name: str, mock_data: Dict[str, list]):
        self.table_name = table_name
        self.mock_data = mock_data
        self._filters = []
        self._select_fields = "*"
        self._limit = None
        self._update_data = None

    def select(self, fields: str = "*"):
        self._select_fields = fields
        return self

    def eq(self, column: str, value: Any):
        self._filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: list):
        self._filters.append(("in", column, values))
        return self

    def is_(self, column: str, value: Any):
        """IS filter (for null checks)."""
        self._filters.append(("is", column, value))
        return self

    @property
    def not_(self):
        """Return a MockNotFilter for negation chaining (e.g., .not_.in_())."""
        return MockNotFilter(self)

    def limit(self, count: int):
        self._limit = count
        return self

    def update(self, data: dict):
        """Mock update operation - returns self for chaining."""
        self._update_data = data
        return self

    @staticmethod
    def _matches_is(row: dict, column: str, value: Any) -> bool:
        if value == "null":
            return row.get(column) is None
        return row.get(column) == value

    def _apply_filters(self, results: list) -> list:
        """Apply all filters to results."""
        for op, column, value in self._filters:
            if op == "eq":
                results = [r for r in results if r.get(column) == value]
            elif op == "in":
                results = [r for r in results if r.get(column) in value]
            elif op == "not_in":
                results = [r for r in results if r.get(column) not in value]
            elif op == "is":
                results = [r for r in results if self._matches_is(r, column, value)]
            elif op == "not_is":
                results = [r for r in results if not self._matches_is(r, column, value)]
        return results

    def execute(self):
        """Execute the query and return results."""
        self.mock_data.setdefault("_queries", []).append(
            (self.table_name, list(self._filters))
        )
        results = self._apply_filters(list(self.mock_data.get(self.table_name, [])))

        if self._update_data is not None:
            for result in results:
                result.update(self._update_data)
            return MockSupabaseResponse(results)

        if self._limit:
            results = results[:self._limit]

        return MockSupabaseResponse([dict(r) for r in results])


class FailingSupabaseTable(MockSupabaseTable):
    """Table whose queries fail, for load-failure paths."""

    def execute(self):
        raise ConnectionError("connection refused")


class MockSupabaseClientInner:
    """Mock inner Supabase client (the actual client with table() method)."""

    def __init__(self, mock_data: Dict[str, list], failing_tables: Optional[set] = None):
        self.mock_data = mock_data
        self.failing_tables = failing_tables if failing_tables is not None else set()

    def table(self, table_name: str) -> MockSupabaseTable:
        if table_name in self.failing_tables:
            return FailingSupabaseTable(table_name, self.mock_data)
        return MockSupabaseTable(table_name, self.mock_data)


def make_store(mock_data: Dict[str, list], failing_tables: Optional[set] = None) -> SupabaseClient:
    """
    A real SupabaseClient whose inner client is the in-memory mock.

    Bypasses the singleton so each test gets its own store.
    """
    store = object.__new__(SupabaseClient)
    store._client = MockSupabaseClientInner(mock_data, failing_tables)
    return store


# ==========================================
# FIXTURES
# ==========================================

@pytest.fixture(scope="function")
def mock_data() -> Dict[str, list]:
    """Fresh in-memory tables for each test."""
    return {
        "finding_sla_configs": [],
        "area_inspection_findings": [],
        "profiles": [],
    }


@pytest.fixture(scope="function")
def store(mock_data) -> SupabaseClient:
    return make_store(mock_data)


@pytest.fixture(scope="function")
def store_factory(mock_data):
    """Build stores over the same tables, optionally with failing tables."""
    def _factory(failing_tables: Optional[set] = None) -> SupabaseClient:
        return make_store(mock_data, failing_tables)
    return _factory


@pytest.fixture(scope="function")
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture(scope="function")
def dispatcher(recording_transport) -> Dispatcher:
    return recording_transport.build_dispatcher()


@pytest.fixture(scope="function")
def client(store) -> Generator[TestClient, None, None]:
    """
    Create test client with the store patched.

    Routes and the engine builder both get the in-memory store.
    """
    from sla_escalation.main import app

    with patch("sla_escalation.api.routes.sla_routes.get_supabase_client", return_value=store), \
         patch("sla_escalation.services.orchestrator.get_supabase_client", return_value=store):
        with TestClient(app) as test_client:
            yield test_client


# ==========================================
# MARKERS
# ==========================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (isolated, fast)")
    config.addinivalue_line("markers", "e2e: End-to-end tests (full run through the engine)")
    config.addinivalue_line("markers", "edge: Edge case tests")
