"""Shared test fixtures for the relay test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, fake credentials)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- notify_post: the frontend notifier's requests.post, patched for every test
"""

from unittest.mock import MagicMock, patch

import pytest

from relay import create_app
from relay.extensions import db as _db


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def notify_post():
    """No test ever reaches a real frontend."""
    with patch("relay.services.notifier.requests.post") as mock_post:
        mock_post.return_value = MagicMock(status_code=200)
        yield mock_post

