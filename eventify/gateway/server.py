"""
API gateway: combines the auth, events and attendees blueprints.
This is the local entrypoint for development.
"""

from flask import Flask, jsonify
from flask_cors import CORS
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")

DEFAULT_CLIENT_URL = "http://localhost:5173"


def create_app() -> Flask:
    """
    Application factory for creating the Flask app.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    # Only the browser client's origin may call the API
    CORS(app, resources={
        r"/api/*": {
            "origins": [os.getenv("CLIENT_URL", DEFAULT_CLIENT_URL)],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "expose_headers": ["Content-Type", "Authorization"],
        }
    })

    # --- REGISTER BLUEPRINTS ---
    from eventify.gateway.errors import register_error_handlers
    from eventify.auth_service.routes import auth_bp
    from eventify.events_service.routes import events_bp
    from eventify.attendees_service.routes import attendees_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(attendees_bp, url_prefix="/api/attendees")
    register_error_handlers(app)

    logging.info("All blueprints registered successfully.")

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "gateway_ok"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    return app


def main() -> None:
    from eventify.crm.gateway import get_crm
    from eventify.crm.session import CRMAuthError

    app = create_app()

    # Connect once at startup; requests reconnect on their own if this fails
    try:
        get_crm().session.ensure()
    except CRMAuthError as e:
        logging.error(f"Salesforce connection error: {e}")

    port = int(os.getenv("PORT", 6000))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG") == "1")


if __name__ == "__main__":
    main()
