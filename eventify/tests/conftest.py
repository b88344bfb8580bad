import os

# Ensure JWT_SECRET is set before the auth helpers are imported
os.environ["JWT_SECRET"] = "test_secret"

import pytest
from flask import Flask


@pytest.fixture
def app():
    from eventify.gateway.errors import register_error_handlers
    from eventify.auth_service.routes import auth_bp
    from eventify.events_service.routes import events_bp
    from eventify.attendees_service.routes import attendees_bp

    app = Flask(__name__)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(attendees_bp, url_prefix="/api/attendees")
    register_error_handlers(app)

    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mock_crm(mocker):
    """
    Mocks the CRM gateway in every service module.
    """
    crm = mocker.Mock()
    mocker.patch("eventify.auth_service.routes.get_crm", return_value=crm)
    mocker.patch("eventify.events_service.routes.get_crm", return_value=crm)
    mocker.patch("eventify.attendees_service.routes.get_crm", return_value=crm)
    return crm


@pytest.fixture
def auth_header():
    """
    Builds an Authorization header for a user with the given role.
    """
    from eventify.auth_service.utils import create_token

    def build(user_id="a01USER", role="Attandee", email="user@example.com"):
        return {"Authorization": f"Bearer {create_token(user_id, email, role)}"}

    return build
