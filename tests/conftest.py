"""
Pytest configuration for the billboard verification tests.
Ensures the server packages are importable when running tests from project root.
"""
import os
import sys

import pytest
from flask import g

# Add server directory to path so 'billboard_app' and 'config' can be imported
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(TESTS_DIR)
SERVER_DIR = os.path.join(PROJECT_ROOT, "server")
if SERVER_DIR not in sys.path:
    sys.path.insert(0, SERVER_DIR)

from billboard_app import create_app  # noqa: E402
from billboard_app.extensions import db  # noqa: E402
from billboard_app.services.notification_hub import hub  # noqa: E402
from billboard_app.services.user_cache import user_cache  # noqa: E402


@pytest.fixture()
def app():
    app = create_app("config.TestConfig")

    # Requests reuse the test's app context, so drop the user Flask-Login cached on g
    @app.before_request
    def _forget_loaded_user():
        g.pop("_login_user", None)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    user_cache.clear()
    hub.shutdown()
    hub.connect()


@pytest.fixture()
def client(app):
    return app.test_client()
