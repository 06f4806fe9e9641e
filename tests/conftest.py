"""
Shared fixtures: an in-memory stand-in for the async Supabase client
"""

import copy
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from tailor_ops.config.settings import Settings
from tailor_ops.core.models import Party, Viewer


class FakeQuery:
    """Chainable select/insert/update builder over a list of rows"""

    _ids = itertools.count(1)

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []
        self.ordering = None

    def select(self, *columns):
        self.action = "select"
        return self

    def insert(self, row):
        self.action = "insert"
        self.payload = row
        return self

    def update(self, data):
        self.action = "update"
        self.payload = data
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    async def execute(self):
        if self.db.fail_with is not None:
            raise self.db.fail_with
        self.db.calls.append((self.table, self.action, copy.deepcopy(self.payload), list(self.filters)))
        rows = self.db.tables.setdefault(self.table, [])

        if self.action == "insert":
            row = copy.deepcopy(self.payload)
            row.setdefault("id", f"{self.table}-{next(self._ids)}")
            rows.append(row)
            return SimpleNamespace(data=[copy.deepcopy(row)])

        matched = [row for row in rows if self._matches(row)]
        if self.action == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matched))

        if self.ordering:
            column, desc = self.ordering
            matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
        return SimpleNamespace(data=copy.deepcopy(matched))


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail_with = None
        self.auth = Mock()
        self.auth.sign_up = AsyncMock()
        self.auth.sign_in_with_password = AsyncMock()
        self.auth.sign_out = AsyncMock()
        self.auth.reset_password_for_email = AsyncMock()
        self.auth.get_user = AsyncMock()
        self.bucket = Mock()
        self.bucket.upload = AsyncMock()
        self.bucket.get_public_url = AsyncMock(side_effect=lambda key: f"https://cdn.test/object/public/inspiration/{key}")
        self.bucket.remove = AsyncMock()
        self.storage = Mock()
        self.storage.from_ = Mock(return_value=self.bucket)

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def settings():
    return Settings(
        SUPABASE_URL="https://project.supabase.co",
        SUPABASE_ANON_KEY="anon-key",
        EMAILJS_SERVICE_ID="service_1",
        EMAILJS_TEMPLATE_ID="template_1",
        EMAILJS_PUBLIC_KEY="public_1",
    )


@pytest.fixture
def fixed_now():
    return datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tailor_viewer():
    return Viewer(user_id="tailor-1", role=Party.TAILOR, name="Sam")


@pytest.fixture
def customer_viewer():
    return Viewer(user_id="cust-1", role=Party.CUSTOMER, name="Alice")


def build_order(order_id="o1", **fields):
    order = {
        "id": order_id,
        "customer_id": "cust-1",
        "customer_name": "Alice",
        "customer_email": "alice@example.com",
        "garment_type": "Business Suit",
        "status": "pending",
        "progress": 0,
        "modified_by": "customer",
        "updated_at": "2024-03-01T10:00:00+00:00",
        "last_modified": "2024-03-01T10:00:00+00:00",
        "created_at": "2024-03-01T10:00:00+00:00",
        "due_date": "2024-03-30T10:00:00+00:00",
    }
    order.update(fields)
    return order


@pytest.fixture
def make_order():
    """Factory for order rows as the orders table returns them"""
    return build_order
