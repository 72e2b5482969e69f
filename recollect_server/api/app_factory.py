"""Flask application factory for the Recollect API."""

from __future__ import annotations

import os
import secrets

from flask import Flask, current_app, g, request
from flask_cors import CORS
from loguru import logger

from recollect.config import ConfigManager
from recollect.config.settings import RecollectSettings
from recollect.core.runner import BackgroundLoop
from recollect.core.services import RecollectServices, build_services
from recollect.utils.exceptions import (
    ExceptionHandler,
    NotFoundError,
    RecollectError,
    ValidationError,
)

from .conflict_routes import conflict_bp
from .memory_routes import memory_bp
from .request_parsers import error_response
from .thread_routes import thread_bp
from .utility_routes import utility_bp

_PUBLIC_ENDPOINTS = {"utility.health"}


def _parse_header_list(raw_value: str | None) -> list[str]:
    """Return a normalised list of header names from configuration strings."""

    if not raw_value:
        return []
    return [segment.strip() for segment in raw_value.split(",") if segment.strip()]


def _load_settings(config_manager: ConfigManager) -> RecollectSettings:
    try:
        config_manager.auto_load()
    except RecollectError:
        logger.opt(exception=True).warning(
            "Config auto-load failed; continuing with defaults"
        )
    return config_manager.get_settings()


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return error_response(exc.message, 400, error_code=exc.error_code)

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError):
        return error_response(exc.message, 404, error_code=exc.error_code)

    @app.errorhandler(RecollectError)
    def handle_recollect_error(exc: RecollectError):
        ExceptionHandler.log_exception(exc, message=f"Request failed: {exc}")
        return error_response(exc.message, 500, error_code=exc.error_code)


def create_app(
    services: RecollectServices | None = None,
    *,
    settings: RecollectSettings | None = None,
    loop: BackgroundLoop | None = None,
) -> Flask:
    """Application factory for the Recollect API."""

    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)

    allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "*")
    if allowed_origins != "*":
        allowed_origins = [o.strip() for o in allowed_origins.split(",") if o.strip()]
    CORS(app, resources={r"/*": {"origins": allowed_origins}})

    config_manager = ConfigManager()
    if services is None:
        if settings is None:
            settings = _load_settings(config_manager)
        services = build_services(settings)

    header_names = _parse_header_list(os.getenv("RECOLLECT_USER_HEADER"))
    if "X-User-Id" not in header_names:
        header_names.append("X-User-Id")

    app.config.update(
        {
            "services": services,
            "loop": loop or BackgroundLoop(),
            "config_manager": config_manager,
            "CONFIG_SOURCES": config_manager.get_config_info()["sources"],
            "USER_ID_HEADER_NAMES": header_names,
            "EXPECTED_API_KEY": os.getenv("RECOLLECT_API_KEY"),
            "REPLY_WAIT_SECONDS": services.settings.pipeline.reply_wait_seconds,
        }
    )

    @app.before_request
    def require_api_key():
        expected = current_app.config.get("EXPECTED_API_KEY")
        if not expected or request.method == "OPTIONS":
            return None
        if request.endpoint in _PUBLIC_ENDPOINTS:
            return None
        if request.headers.get("X-API-Key") == expected:
            return None
        return error_response("Unauthorized", 401)

    @app.before_request
    def bind_owner():
        if request.endpoint is None or request.endpoint in _PUBLIC_ENDPOINTS:
            return None
        if request.method == "OPTIONS":
            return None
        for header_name in current_app.config.get("USER_ID_HEADER_NAMES") or []:
            value = request.headers.get(header_name)
            if isinstance(value, str) and value.strip():
                g.owner = value.strip()
                return None
        return error_response("Missing user identity header", 401)

    register_error_handlers(app)

    app.register_blueprint(thread_bp)
    app.register_blueprint(memory_bp)
    app.register_blueprint(conflict_bp)
    app.register_blueprint(utility_bp)

    logger.info("Recollect API initialised")
    return app
