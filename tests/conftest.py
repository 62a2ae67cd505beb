"""
tests/conftest.py
"""
from __future__ import annotations

import copy
import itertools
from types import SimpleNamespace
from typing import Generator

import httpx
import pytest
from flask.testing import FlaskClient
from postgrest.exceptions import APIError
from supabase import AuthError

from beyazbulut import site
from beyazbulut.site import app

CSRF = "test-csrf-token"
SERVICE_AUTH = "Bearer service-role-key"


# ───────────────────────── in-memory Supabase ─────────────────────────
class FakeAuthError(AuthError):
    """AuthError whose constructor does not depend on the library version."""

    def __init__(self, message: str):
        Exception.__init__(self, message)
        self.message = message


class FakeQuery:
    """The slice of the postgrest query builder the app talks to."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters: list[tuple[str, object]] = []
        self.ordering: tuple[str, bool] | None = None
        self.max_rows: int | None = None

    # builder ----------------------------------------------------------
    def select(self, *_cols):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, col, value):
        self.filters.append((col, value))
        return self

    def order(self, col, desc=False):
        self.ordering = (col, desc)
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    # execution --------------------------------------------------------
    def _matches(self, row) -> bool:
        return all(str(row.get(c)) == str(v) for c, v in self.filters)

    def execute(self):
        if self.table in self.db.failing or (self.table, self.op) in self.db.failing:
            raise APIError({"message": "permission denied", "code": "42501"})
        self.db.calls.append((self.table, self.op))
        if self.op != "select":
            self.db.writes.append((self.table, self.op, self.db.headers["Authorization"]))
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            new = dict(self.payload)
            if self.table != "poem_likes":
                new.setdefault("id", next(self.db.ids))
            rows.append(new)
            return SimpleNamespace(data=[copy.deepcopy(new)])

        hit = [r for r in rows if self._matches(r)]
        if self.op == "update":
            for r in hit:
                r.update(self.payload)
        elif self.op == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
        else:
            if self.ordering:
                col, desc = self.ordering
                hit = sorted(hit, key=lambda r: str(r.get(col) or ""), reverse=desc)
            if self.max_rows is not None:
                hit = hit[: self.max_rows]
        return SimpleNamespace(data=copy.deepcopy(hit))


class FakeAuth:
    def __init__(self, client=None):
        self.client = client  # whose headers follow the signed-in user
        self.users: dict[str, dict] = {}  # email → user record
        self.access: dict[str, str] = {}  # token → email
        self.refresh: dict[str, str] = {}
        self.tokens = itertools.count(1)
        self.signed_out: list[str] = []
        self.down = False

    def _user(self, email):
        u = self.users[email]
        return SimpleNamespace(id=u["id"], email=email, user_metadata=u["meta"])

    def _session(self, email):
        n = next(self.tokens)
        access, refresh = f"access-{n}", f"refresh-{n}"
        self.access[access] = email
        self.refresh[refresh] = email
        self._adopt(access)
        return SimpleNamespace(access_token=access, refresh_token=refresh)

    def _adopt(self, access):
        # supabase-py moves its client onto the user token after sign-in
        # and refresh (TOKEN_REFRESHED / SIGNED_IN auth events)
        if self.client is not None:
            self.client.headers["Authorization"] = f"Bearer {access}"

    def _check_up(self):
        if self.down:
            raise httpx.ConnectError("auth server unreachable")

    def add_user(self, email, password, **meta):
        self.users[email] = {
            "id": f"user-{len(self.users) + 1}",
            "password": password,
            "meta": meta,
        }
        return self.users[email]["id"]

    def login_tokens(self, email) -> dict:
        client, self.client = self.client, None
        s = self._session(email)
        self.client = client
        return {"access_token": s.access_token, "refresh_token": s.refresh_token}

    # the supabase-py surface -----------------------------------------
    def sign_up(self, creds):
        self._check_up()
        email = creds["email"]
        if email in self.users:
            raise FakeAuthError("User already registered")
        self.add_user(email, creds["password"], **creds["options"]["data"])
        return SimpleNamespace(user=self._user(email), session=None)

    def sign_in_with_password(self, creds):
        self._check_up()
        u = self.users.get(creds["email"])
        if not u or u["password"] != creds["password"]:
            raise FakeAuthError("Invalid login credentials")
        email = creds["email"]
        return SimpleNamespace(user=self._user(email), session=self._session(email))

    def get_user(self, jwt):
        self._check_up()
        if jwt not in self.access:
            raise FakeAuthError("invalid JWT")
        return SimpleNamespace(user=self._user(self.access[jwt]))

    def refresh_session(self, refresh_token):
        self._check_up()
        email = self.refresh.pop(refresh_token, None)
        if email is None:
            raise FakeAuthError("Invalid Refresh Token")
        return SimpleNamespace(user=self._user(email), session=self._session(email))

    def set_session(self, access, refresh):
        self.current = access
        self._adopt(access)

    def sign_out(self):
        self.signed_out.append(self.current)
        self.access.pop(self.current, None)


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failing: set = set()  # table names or (table, op) pairs
        self.calls: list[tuple[str, str]] = []
        self.writes: list[tuple[str, str, str]] = []  # table, op, Authorization
        self.ids = itertools.count(1)
        self.headers = {"Authorization": SERVICE_AUTH}
        self.auth = FakeAuth(self)

    def connect(self) -> "FakeSupabase":
        """A new client on the same backend, like another create_client() call."""
        twin = copy.copy(self)
        twin.headers = {"Authorization": SERVICE_AUTH}
        twin.auth = copy.copy(self.auth)
        twin.auth.client = twin
        return twin

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name) -> list[dict]:
        return self.tables.get(name, [])

    def add_poem(self, **fields) -> dict:
        poem = {
            "id": next(self.ids),
            "title": "Şiir",
            "content": "bir dize\niki dize",
            "author": "Yönetici",
            "category": "Aşk",
            "date": "2024-01-01",
            "likes": 0,
            **fields,
        }
        self.tables.setdefault("poems", []).append(poem)
        return poem


# ───────────────────────── fixtures ──────────────────────────────────
@pytest.fixture(scope="session", autouse=True)
def _configure_app() -> None:
    app.config.update(
        TESTING=True,
        SUPABASE_URL="http://supabase.test",
        SUPABASE_KEY="test-key",
        GEMINI_API_KEY="",
        SESSION_COOKIE_SECURE=False,
    )


@pytest.fixture(autouse=True)
def _reset_rate_limit():
    site._rate_hits.clear()
    yield
    site._rate_hits.clear()


@pytest.fixture
def sb(monkeypatch) -> FakeSupabase:
    """Fresh backend per test; every create_client() call gets a client on it."""
    fake = FakeSupabase()
    monkeypatch.setattr(site, "create_client", lambda url, key: fake.connect())
    return fake


@pytest.fixture
def app_ctx():
    """For calling the helper modules directly (they log via current_app)."""
    with app.app_context():
        yield


@pytest.fixture
def client(sb) -> Generator[FlaskClient, None, None]:
    yield app.test_client()


@pytest.fixture
def admin_client(client) -> FlaskClient:
    with client.session_transaction() as sess:
        sess["admin"] = {"id": 1, "username": "editor"}
        sess["csrf"] = CSRF
    return client


@pytest.fixture
def reader_client(client, sb) -> FlaskClient:
    sb.auth.add_user("okur@example.com", "secret1", username="okur", full_name="Okur Bey")
    tokens = sb.auth.login_tokens("okur@example.com")
    with client.session_transaction() as sess:
        sess["sb_tokens"] = tokens
        sess["csrf"] = CSRF
    return client
