"""
Shared fixtures: an in-memory stand-in for the Supabase client (query builder
+ auth), an executor that runs answer writes inline, and a settable clock.
"""
import copy
import itertools
from concurrent.futures import Executor, Future
from types import SimpleNamespace
from uuid import uuid4

import pytest

from tryout.database import DatabaseClient


class FakeQuery:
    """Chainable subset of the postgrest builder used by the app."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.action = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.ordering = None
        self.max_rows = None
        self.count = None
        self.matched = None

    def select(self, *columns, count=None):
        self.action = "select"
        self.count = count
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def upsert(self, payload, on_conflict=None):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        self.client.calls.append((self.table, self.action))
        if (self.table, self.action) in self.client.failures:
            raise RuntimeError(f"{self.action} on {self.table} rejected")
        rows = self.client.tables.setdefault(self.table, [])
        handler = getattr(self, f"_{self.action}")
        data = copy.deepcopy(handler(rows))
        return SimpleNamespace(data=data, count=self.matched if self.count == "exact" else None)

    def _select(self, rows):
        result = [r for r in rows if self._matches(r)]
        self.matched = len(result)
        if self.ordering:
            column, desc = self.ordering
            result.sort(key=lambda r: (r.get(column) is None, r.get(column) if r.get(column) is not None else 0), reverse=desc)
        if self.max_rows:
            result = result[:self.max_rows]
        return result

    def _new_row(self, fields):
        row = {"id": str(uuid4()), "created_at": self.client.next_timestamp(), **fields}
        return row

    def _insert(self, rows):
        payloads = self.payload if isinstance(self.payload, list) else [self.payload]
        created = [self._new_row(p) for p in payloads]
        rows.extend(created)
        return created

    def _update(self, rows):
        updated = []
        for row in rows:
            if self._matches(row):
                row.update(self.payload)
                updated.append(row)
        return updated

    def _delete(self, rows):
        deleted = [r for r in rows if self._matches(r)]
        rows[:] = [r for r in rows if not self._matches(r)]
        return deleted

    def _upsert(self, rows):
        keys = self.on_conflict.split(",") if self.on_conflict else ["id"]
        for row in rows:
            if all(row.get(k) == self.payload.get(k) for k in keys):
                row.update(self.payload)
                return [row]
        row = self._new_row(self.payload)
        rows.append(row)
        return [row]


class FakeAuth:
    def __init__(self):
        self.accounts = {}
        self.signed_out = False

    def sign_up(self, credentials):
        email = credentials["email"]
        if email in self.accounts:
            raise RuntimeError("User already registered")
        self.accounts[email] = (credentials["password"], str(uuid4()))
        return SimpleNamespace(user=SimpleNamespace(id=self.accounts[email][1], email=email))

    def sign_in_with_password(self, credentials):
        account = self.accounts.get(credentials["email"])
        if account is None or account[0] != credentials["password"]:
            raise RuntimeError("Invalid login credentials")
        return SimpleNamespace(user=SimpleNamespace(id=account[1], email=credentials["email"]))

    def sign_out(self):
        self.signed_out = True


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.failures = set()
        self.calls = []
        self.auth = FakeAuth()
        self._seq = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)

    def next_timestamp(self):
        return f"2026-01-01T00:00:{next(self._seq):06d}+00:00"

    def fail(self, table, action):
        self.failures.add((table, action))

    def recover(self, table, action):
        self.failures.discard((table, action))

    def rows(self, table):
        return self.tables.get(table, [])


class InlineExecutor(Executor):
    """Runs submitted work immediately; failures land on the future."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def db(supabase):
    return DatabaseClient(supabase)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def inline_executor():
    return InlineExecutor()


def make_question(package_id, number, correct="A", main="TWK", sub="Pancasila"):
    return {
        "package_id": package_id,
        "question_number": number,
        "question_text": f"Soal nomor {number}",
        "option_a": "a", "option_b": "b", "option_c": "c", "option_d": "d", "option_e": "e",
        "correct_answer": correct,
        "explanation": "",
        "main_category": main,
        "sub_category": sub,
    }


@pytest.fixture
def seed_package(db):
    """Create a package with the given questions (dicts of overrides per question)."""

    def _seed(questions=None, duration_minutes=1, requires_payment=False, price=0, title="Tryout SKD 1"):
        package = db.entity("QuestionPackage").create({
            "title": title,
            "description": "",
            "duration_minutes": duration_minutes,
            "total_questions": 0,
            "price": price,
            "requires_payment": requires_payment,
            "is_active": True,
        })
        created = []
        for i, overrides in enumerate(questions if questions is not None else [{}, {}, {}], 1):
            created.append(db.entity("Question").create({**make_question(package["id"], i), **overrides}))
        package = db.entity("QuestionPackage").update(package["id"], {"total_questions": len(created)})
        return package, created

    return _seed
