"""Pytest configuration to make the project root importable.

Every test gets its own SQLite file under ``tmp_path``.
"""

import os
import sys

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import database  # noqa: E402

PHOTO = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="
PROOF = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", tmp_path / "ecoclean_test.db")
    database.init_db()
    return database


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as c:
        yield c
