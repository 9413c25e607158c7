"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
from pathlib import Path

# Skip MongoDB connection at startup when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from unittest.mock import AsyncMock, MagicMock

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app
from auth import create_access_token


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app)."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Factory for Authorization headers carrying a signed bearer token."""
    def _headers(user_id: str = "user-1", role: str = "ROLE_TRADIE") -> dict:
        token = create_access_token({"user_id": user_id, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


class _Cursor:
    """Minimal Motor cursor stand-in: find(...).sort(...).to_list(...)."""

    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, *args, **kwargs):
        return self

    async def to_list(self, length=None):
        return list(self._docs)


@pytest.fixture
def make_db():
    """Factory for a mock database with jobs, job_materials, users and audit_logs.

    users: dict of user_id -> user document
    """
    def _make_db(job=None, materials=None, users=None):
        users = users or {}
        db = MagicMock()

        async def find_job(query, projection=None):
            if job and job.get("job_id") == query.get("job_id"):
                return dict(job)
            return None

        async def find_user(query, projection=None):
            doc = users.get(query.get("user_id"))
            return dict(doc) if doc else None

        def find_materials(query, projection=None):
            rows = [
                m for m in (materials or [])
                if m.get("job_id") == query.get("job_id") and m.get("owner_id") == query.get("owner_id")
            ]
            return _Cursor(rows)

        db.jobs.find_one = AsyncMock(side_effect=find_job)
        db.users.find_one = AsyncMock(side_effect=find_user)
        db.job_materials.find = MagicMock(side_effect=find_materials)
        db.audit_logs.insert_one = AsyncMock()
        return db
    return _make_db
