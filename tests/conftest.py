"""
Shared fixtures: every test gets its own SQLite file under tmp_path.
"""
import itertools
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import config
import databases_sql
from utils import utc_now, to_utc_iso


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "booking.db"
    monkeypatch.setattr(databases_sql, "DB_PATH", path)
    databases_sql.init_db()
    return path


@pytest.fixture
def instructor_id(db_path):
    return databases_sql.insert_user("arjun@studio.example.com", "Arjun", "Mehta", role="instructor")


@pytest.fixture
def make_member(db_path):
    counter = itertools.count(1)

    def _make():
        n = next(counter)
        return databases_sql.insert_user(f"member{n}@example.com", "Member", str(n))

    return _make


@pytest.fixture
def make_class(instructor_id):
    def _make(max_capacity=2, starts_in=timedelta(days=1), minutes=60, title="Hatha Yoga"):
        start = utc_now() + starts_in
        end = start + timedelta(minutes=minutes)
        return databases_sql.insert_class(
            title, "Slow-paced postures.", instructor_id,
            to_utc_iso(start), to_utc_iso(end), max_capacity, "12.00",
        )

    return _make


@pytest.fixture
def client(db_path, monkeypatch):
    monkeypatch.setattr(config, "SEED_ON_STARTUP", False)
    monkeypatch.setattr(config, "CLEANUP_INTERVAL_HOURS", 0)
    monkeypatch.setattr(config, "ADMIN_EMAILS", {"owner@studio.example.com"})
    from main import app

    with TestClient(app) as c:
        yield c
