import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, validate_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from models.token_store import RefreshTokenStore
from models.user_store import UserStore
from utils.decorators import SessionGuard
from utils.issuer import TokenIssuer
from utils.rate_limiter import RateLimiter

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Refugee Network Session API",
        "version": "1.0.0",
        "description": "Login, refresh token rotation, logout and role-gated account administration.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the access token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    Storage, stores, the token issuer, the session guard and the auth rate
    limiter are built here
    and handed to the blueprints explicitly.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    validate_config(app.config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    storage = DBStorage(app.config["DATABASE_URL"], echo=app.config["SQL_ECHO"])
    storage.reload()

    users = UserStore(storage.get_session)
    tokens = RefreshTokenStore(storage.get_session, ttl=app.config["REFRESH_TOKEN_EXPIRES"])
    issuer = TokenIssuer(
        tokens,
        users,
        secret=app.config["JWT_SECRET"],
        access_expires=app.config["ACCESS_TOKEN_EXPIRES"],
        algorithm=app.config["JWT_ALGORITHM"],
        issuer=app.config["JWT_ISSUER"],
    )
    guard = SessionGuard(
        users,
        secret=app.config["JWT_SECRET"],
        algorithm=app.config["JWT_ALGORITHM"],
        issuer=app.config["JWT_ISSUER"],
    )
    limiter = RateLimiter.for_auth(
        app.config["AUTH_RATE_LIMIT_MAX"],
        app.config["AUTH_RATE_LIMIT_WINDOW_SECONDS"],
        enabled=app.config["RATE_LIMIT_ENABLED"],
    )
    app.extensions["rnc_sessions"] = {
        "storage": storage,
        "users": users,
        "tokens": tokens,
        "issuer": issuer,
        "guard": guard,
        "limiter": limiter,
    }

    from .health import bp as health_bp
    from .auth import create_blueprint as create_auth_bp
    from .admin import create_blueprint as create_admin_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(create_auth_bp(issuer, users, tokens, guard, limiter), url_prefix="/api/v1/auth")
    app.register_blueprint(create_admin_bp(users, tokens, guard), url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Refugee Network Session API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
