# backend/youfin/__init__.py
import logging

from flask import Flask, request, jsonify

from .config import Config
from .extensions import db, migrate
from .services.rate_limit_service import FixedWindowRateLimiter


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.businesses import businesses_bp
    from .routes.spending import spending_bp
    from .routes.ai import ai_bp
    from .routes.rewards import rewards_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(businesses_bp)
    app.register_blueprint(spending_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(rewards_bp)

    limiter = FixedWindowRateLimiter(
        max_requests=app.config.get("RATE_LIMIT_MAX_REQUESTS", 100),
        window_seconds=app.config.get("RATE_LIMIT_WINDOW_SECONDS", 900),
    )
    app.extensions["youfin_rate_limiter"] = limiter

    @app.before_request
    def handle_preflight_and_rate_limit():
        if request.method == "OPTIONS":
            return "", 204

        if not app.config.get("RATE_LIMIT_ENABLED") or not request.path.startswith("/api/"):
            return None

        result = limiter.hit(request.remote_addr or "unknown")
        if not result.allowed:
            app.logger.warning("Rate limit exceeded for %s on %s", request.remote_addr, request.path)
            response = jsonify({
                "success": False,
                "message": "Too many requests from this IP, please try again later",
            })
            response.status_code = 429
            response.headers["Retry-After"] = str(result.reset_in_seconds)
            return response
        return None

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = app.config.get("CORS_ALLOWED_ORIGINS", set())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        return response

    @app.after_request
    def log_request(response):
        if request.path.startswith("/api/"):
            app.logger.info("%s %s -> %s", request.method, request.path, response.status_code)
        return response

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"success": False, "message": f"Not found - {request.path}"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(429)
    def too_many_requests(_error):
        return jsonify({"success": False, "message": "Too many requests, please try again later"}), 429

    @app.errorhandler(500)
    def internal_error(_error):
        db.session.rollback()
        return jsonify({"success": False, "message": "Internal server error"}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
