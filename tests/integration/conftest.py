"""Fixtures for API integration tests."""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from marketplace.api.main import create_app
from marketplace.db.engine import get_session


@pytest.fixture(name="client")
def client_fixture(engine):
    """TestClient bound to the in-memory engine (startup included)."""
    with patch("marketplace.api.main.get_engine", return_value=engine):
        app = create_app()

        def override_session():
            with Session(engine) as s:
                yield s

        app.dependency_overrides[get_session] = override_session
        with TestClient(app) as c:
            yield c
