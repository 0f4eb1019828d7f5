import os
import sys
import uuid
from collections import defaultdict
from datetime import date
from pathlib import Path

import pytest


# Ensure `import tuition...` resolves when tests run from repo root.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))


# Minimal defaults so settings can initialize in test environments.
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZSJ9.test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")


class FakeFeeDB:
    """
    In-memory stand-in for FeeDB. Tables listed in `fail_on` raise on
    insert, which is how the tests simulate store failures.
    """

    def __init__(self, active_year="2025-2026", fail_on=(), fail_year_lookup=False):
        self.active_year = active_year
        self.fail_on = set(fail_on)
        self.fail_year_lookup = fail_year_lookup
        self.tables = defaultdict(list)
        self.calls = []

    def get_active_academic_year(self):
        self.calls.append(("select", "academic_years"))
        if self.fail_year_lookup:
            raise RuntimeError("connection reset")
        return {"year_code": self.active_year} if self.active_year else None

    def insert(self, table, payload):
        self.calls.append(("insert", table))
        if table in self.fail_on:
            raise RuntimeError(f"insert into {table} rejected")
        row = {"id": str(uuid.uuid4()), **payload}
        self.tables[table].append(row)
        return row

    def insert_many(self, table, rows):
        self.calls.append(("insert", table))
        if table in self.fail_on:
            raise RuntimeError(f"insert into {table} rejected")
        stored = [{"id": str(uuid.uuid4()), **row} for row in rows]
        self.tables[table].extend(stored)
        return stored

    def delete(self, table, record_id):
        self.calls.append(("delete", table))
        self.tables[table] = [r for r in self.tables[table] if r["id"] != record_id]

    def touched(self, table):
        return any(t == table for _, t in self.calls)


@pytest.fixture
def make_db():
    return FakeFeeDB


@pytest.fixture
def fake_db():
    return FakeFeeDB()


@pytest.fixture
def today():
    return date(2025, 6, 15)
