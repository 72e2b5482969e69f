from __future__ import annotations

from flask import Blueprint, current_app, jsonify

import recollect

from .request_parsers import background_loop, services

utility_bp = Blueprint("utility", __name__)


@utility_bp.route("/health", methods=["GET"])
def health():
    return jsonify(
        {
            "status": "ok",
            "version": recollect.__version__,
            "database": services().db_manager.get_database_info(),
            "background_loop": background_loop().running,
            "config_sources": current_app.config.get("CONFIG_SOURCES", []),
        }
    )
