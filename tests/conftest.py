"""Test configuration and fixtures."""

import base64
import os
import tempfile
from pathlib import Path

import pytest

from calendar_enhanced import APPEARANCE_KEY, DISPLAY_KEY, HOOKS_KEY, MAPPER_KEY, create_app
from calendar_enhanced.extensions import db as _db


@pytest.fixture
def app():
    """Create application for testing."""
    db_fd, db_path = tempfile.mkstemp()
    os.close(db_fd)

    app = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SERVER_NAME': 'localhost',
    })

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()

    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def client(app):
    """Test client for making requests."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def db(app):
    """Database fixture."""
    return _db


@pytest.fixture
def mapper(app):
    return app.extensions[MAPPER_KEY]


@pytest.fixture
def appearance(app):
    return app.extensions[APPEARANCE_KEY]


@pytest.fixture
def display(app):
    return app.extensions[DISPLAY_KEY]


@pytest.fixture
def hooks(app):
    return app.extensions[HOOKS_KEY]


@pytest.fixture
def auth_headers(app):
    token = base64.b64encode(
        f"{app.config['ADMIN_USERNAME']}:{app.config['ADMIN_PASSWORD']}".encode('utf-8')
    ).decode('ascii')
    return {'Authorization': f'Basic {token}'}
