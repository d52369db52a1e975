# backend/onboarding/__init__.py
from pathlib import Path

from flask import Flask, request, g, send_from_directory

from .config import Config, engine_options_for
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Every store call is bounded (lock wait / pool checkout)
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options_for(
            app.config["SQLALCHEMY_DATABASE_URI"],
            app.config["STORE_TIMEOUT_SECONDS"],
        ),
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.merchants import merchants_bp
    from .routes.agents import agents_bp
    from .routes.exports import exports_bp
    from .routes.logs import logs_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(merchants_bp)
    app.register_blueprint(agents_bp)
    app.register_blueprint(exports_bp)
    app.register_blueprint(logs_bp)

    # Evidence photos
    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename):
        upload_dir = Path(app.config["EVIDENCE_UPLOAD_DIR"]).resolve()
        return send_from_directory(upload_dir, filename)

    @app.after_request
    def record_activity(response):
        if not app.config.get("ACTIVITY_LOG_ENABLED", True):
            return response
        user = getattr(g, "current_user", None)
        if user is None:
            return response

        from .services import activity_service
        if activity_service.should_log(request.method):
            activity_service.log_activity(
                f"{request.method} {request.path}",
                user_id=user.id,
                matricule=user.matricule,
                status_code=response.status_code,
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = app.config.get("CORS_ALLOWED_ORIGINS", set())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
