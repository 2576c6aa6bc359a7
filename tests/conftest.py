"""Pytest configuration and shared fixtures."""

import os
import re
import uuid
from itertools import count
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("DISPATCH_API_KEY", "test-dispatch-key")

from fastapi.testclient import TestClient  # noqa: E402

from app.config import Settings  # noqa: E402
from app.main import app  # noqa: E402


class FakeAPIError(Exception):
    """Stands in for postgrest's APIError"""


# relation name -> foreign key column on the embedding row
EMBEDS = {
    "forms": "form_id",
    "form_fields": "field_id",
}


def _split_top_level(expr: str) -> List[str]:
    parts, depth, current, quoted = [], 0, "", False
    for char in expr:
        if char == '"':
            quoted = not quoted
        elif not quoted and char == "(":
            depth += 1
        elif not quoted and char == ")":
            depth -= 1
        elif not quoted and char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return parts


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is None:
        return False
    if op == "eq":
        return left == right
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    if op == "lte":
        return left <= right
    raise ValueError(f"Unsupported operator {op}")


def _parse_term(term: str) -> Callable[[Dict], bool]:
    term = term.strip()
    if term.startswith("and(") and term.endswith(")"):
        parts = [_parse_term(t) for t in _split_top_level(term[4:-1])]
        return lambda row: all(part(row) for part in parts)

    column, op, value = term.split(".", 2)
    value = _unquote(value)
    if op == "is":
        assert value == "null"
        return lambda row: row.get(column) is None
    return lambda row: _compare(op, row.get(column), value)


class FakeQuery:
    """Just enough of the postgrest query builder for this service"""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.values: Any = None
        self.filters: List[Callable[[Dict], bool]] = []
        self.orders: List[tuple] = []
        self.row_limit: Optional[int] = None
        self.want_single = False
        self.embeds: List[str] = []
        self.count_method: Optional[str] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.embeds = [name for name in re.findall(r"(\w+)\s*\(", columns) if name in EMBEDS]
        self.count_method = count
        return self

    def insert(self, values: Dict):
        self.action = "insert"
        self.values = values
        return self

    def update(self, values: Dict):
        self.action = "update"
        self.values = values
        return self

    def eq(self, column: str, value: Any):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column: str, value: Any):
        self.filters.append(lambda row: _compare("gte", row.get(column), value))
        return self

    def lte(self, column: str, value: Any):
        self.filters.append(lambda row: _compare("lte", row.get(column), value))
        return self

    def or_(self, expr: str):
        terms = [_parse_term(t) for t in _split_top_level(expr)]
        self.filters.append(lambda row: any(term(row) for term in terms))
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, size: int):
        self.row_limit = size
        return self

    def single(self):
        self.want_single = True
        return self

    def _matching(self) -> List[Dict]:
        rows = self.db.tables.setdefault(self.table_name, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def _embed(self, row: Dict) -> Dict:
        row = dict(row)
        for relation in self.embeds:
            target_id = row.get(EMBEDS[relation])
            matches = [r for r in self.db.tables.get(relation, []) if r.get("id") == target_id]
            row[relation] = dict(matches[0]) if matches else None
        return row

    def execute(self):
        self.db.calls.append((self.table_name, self.action))
        if self.table_name in self.db.failing_tables:
            raise FakeAPIError(f"relation {self.table_name} unavailable")

        if self.action == "insert":
            row = dict(self.values)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", self.db.now())
            row.setdefault("updated_at", row["created_at"])
            self.db.tables.setdefault(self.table_name, []).append(row)
            return SimpleNamespace(data=[dict(row)], count=None)

        if self.action == "update":
            updated = []
            for row in self._matching():
                row.update(self.values)
                updated.append(dict(row))
            return SimpleNamespace(data=updated, count=None)

        rows = self._matching()
        total = len(rows)
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.row_limit is not None:
            rows = rows[:self.row_limit]
        rows = [self._embed(row) for row in rows]

        if self.want_single:
            if len(rows) != 1:
                raise FakeAPIError("JSON object requested, multiple (or no) rows returned")
            return SimpleNamespace(data=rows[0], count=None)

        return SimpleNamespace(data=rows, count=total if self.count_method else None)


class FakeSupabase:
    """In-memory stand-in for a supabase Client"""

    def __init__(self):
        self.tables: Dict[str, List[Dict]] = {}
        self.calls: List[tuple] = []
        self.failing_tables: set = set()
        self.rpc_handlers: Dict[str, Callable[[Dict], Any]] = {
            "can_access_form": lambda params: True
        }
        self._clock = count()

    def now(self) -> str:
        return f"2024-06-01T00:00:{next(self._clock) % 60:02d}+00:00"

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict):
        handler = self.rpc_handlers[name]
        return SimpleNamespace(execute=lambda: SimpleNamespace(data=handler(params)))

    def rows(self, table: str) -> List[Dict]:
        return self.tables.get(table, [])


class Seeder:
    """Writes form, field, response, answer and integration rows"""

    def __init__(self, db: FakeSupabase):
        self.db = db

    def form(self, form_id: str = "form-1", title: str = "Customer Survey") -> Dict:
        row = {"id": form_id, "title": title}
        self.db.tables.setdefault("forms", []).append(row)
        return row

    def field(self, field_id: str, label: str, field_type: str, form_id: str = "form-1") -> Dict:
        row = {"id": field_id, "form_id": form_id, "label": label, "type": field_type}
        self.db.tables.setdefault("form_fields", []).append(row)
        return row

    def response(
        self,
        response_id: str,
        form_id: str = "form-1",
        created_at: Optional[str] = "2024-05-01T10:00:00+00:00",
        submitted_at: Optional[str] = "2024-05-01T10:00:30+00:00",
        is_partial: bool = False,
        **extra
    ) -> Dict:
        row = {
            "id": response_id,
            "form_id": form_id,
            "respondent_id": extra.pop("respondent_id", None),
            "respondent_email": extra.pop("respondent_email", None),
            "is_partial": is_partial,
            "created_at": created_at,
            "submitted_at": submitted_at,
            "url_params": extra.pop("url_params", {}),
        }
        row.update(extra)
        self.db.tables.setdefault("form_responses", []).append(row)
        return row

    def answer(
        self,
        answer_id: str,
        response_id: str,
        field_id: str,
        value: Any,
        file_urls: Any = None
    ) -> Dict:
        row = {
            "id": answer_id,
            "response_id": response_id,
            "field_id": field_id,
            "value": value,
            "file_urls": file_urls,
            "created_at": "2024-05-01T10:00:30+00:00",
        }
        self.db.tables.setdefault("form_response_answers", []).append(row)
        return row

    def integration(
        self,
        integration_id: str,
        url: Optional[str],
        form_id: str = "form-1",
        secret: Optional[str] = None,
        integration_type: str = "webhook",
        is_active: bool = True,
        url_key: str = "webhook_url"
    ) -> Dict:
        configuration = {}
        if url is not None:
            configuration[url_key] = url
        if secret:
            configuration["secret"] = secret
        row = {
            "id": integration_id,
            "form_id": form_id,
            "integration_type": integration_type,
            "configuration": configuration,
            "is_active": is_active,
            "status": "connected",
            "last_triggered_at": None,
            "last_error": None,
        }
        self.db.tables.setdefault("form_integrations", []).append(row)
        return row


@pytest.fixture
def fake_db() -> FakeSupabase:
    """Empty in-memory Supabase."""
    return FakeSupabase()


@pytest.fixture
def seed(fake_db: FakeSupabase) -> Seeder:
    """Row seeding helpers bound to fake_db."""
    return Seeder(fake_db)


@pytest.fixture
def settings() -> Settings:
    """Explicit settings, independent of the environment."""
    return Settings(
        supabase_url="https://project.supabase.co",
        supabase_service_role_key="service-role-key",
        supabase_anon_key="anon-key",
        dispatch_api_key="test-dispatch-key",
    )


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def mock_http():
    """Patch httpx.AsyncClient; map URLs to a status code or an exception via mock_http.routes.

    Unrouted URLs answer 200.
    """
    routes: Dict[str, Any] = {}

    async def post(url, content=None, headers=None, **kwargs):
        outcome = routes.get(url, 200)
        if isinstance(outcome, BaseException):
            raise outcome
        response = Mock()
        response.status_code = outcome
        response.text = f"received with status {outcome}"
        return response

    with patch("app.services.webhook_dispatcher.httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.__aenter__.return_value = mock_client
        mock_client.__aexit__.return_value = None
        mock_client.post.side_effect = post
        mock_client_class.return_value = mock_client
        mock_client.routes = routes
        yield mock_client


@pytest.fixture
def timeout_error() -> httpx.TimeoutException:
    return httpx.ReadTimeout("timed out")
