"""
HTTP Microservice
=================
Flask-based HTTP API for the exam XML converter.

Endpoints:
    POST   /api/build         → Canonical exam XML from JSON content
    POST   /api/convert       → Mastered XML with answer ids + attachments
    POST   /api/master        → Mastered hand-written XML, title, grading
    GET    /api/health        → Health check
    GET    /api/info          → Converter version info

Request bodies are stored exam records (examUuid, content / contentXml,
attachmentsMimetype, attachmentsMetadata).
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError

from . import __version__
from .builder import EXAM_SCHEMA_VERSION
from .engine import ConversionConfig, ConversionEngine
from .exceptions import DataError
from .mastering import MasteringTransform
from .models import ExamRecord

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[dict] = None,
    mastering: Optional[MasteringTransform] = None,
) -> Flask:
    """
    Create and configure the Flask app.

    Args:
        config: Flask config overrides (MASTERING_URL, MASTERING_TIMEOUT,
            SHUFFLE_SECRET, LOG_LEVEL).
        mastering: Mastering transform to use instead of an HTTP client.
    """
    app = Flask(__name__)
    CORS(app)

    app.config.setdefault("MASTERING_URL", None)
    app.config.setdefault("MASTERING_TIMEOUT", 60.0)
    app.config.setdefault("SHUFFLE_SECRET", None)
    app.config.setdefault("LOG_LEVEL", "INFO")
    if config:
        app.config.update(config)

    engine = ConversionEngine(
        ConversionConfig(
            mastering_url=app.config["MASTERING_URL"],
            mastering_timeout=app.config["MASTERING_TIMEOUT"],
            shuffle_secret=app.config["SHUFFLE_SECRET"],
            log_level=app.config["LOG_LEVEL"],
        ),
        mastering=mastering,
    )
    app.extensions["examxml_engine"] = engine

    def _read_record() -> ExamRecord:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise DataError("Expected a JSON object body")
        try:
            return ExamRecord.model_validate(data)
        except ValidationError as e:
            raise DataError(f"Invalid exam record: {e.error_count()} errors") from e

    @app.errorhandler(DataError)
    def handle_data_error(e: DataError):
        body = {"error": e.message}
        if e.__cause__ is not None:
            body["detail"] = str(e.__cause__)
        return jsonify(body), e.status_code

    # ─── Health Check ─────────────────────────────────────────────────────

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "healthy",
            "service": "examxml",
            "version": __version__,
            "mastering_configured": engine.mastering is not None,
        })

    @app.route("/api/info", methods=["GET"])
    def info():
        return jsonify({
            "version": __version__,
            "exam_schema_version": EXAM_SCHEMA_VERSION,
            "question_types": ["text", "choicegroup", "multichoicegap"],
            "capabilities": [
                "xml_building",
                "xml_mastering",
                "answer_id_allocation",
            ],
        })

    # ─── Conversion ───────────────────────────────────────────────────────

    @app.route("/api/build", methods=["POST"])
    def build():
        """Return canonical exam XML without mastering."""
        xml = engine.build(_read_record())
        return app.response_class(
            response=xml,
            status=200,
            mimetype="application/xml",
        )

    @app.route("/api/convert", methods=["POST"])
    def convert():
        result = engine.convert(_read_record())
        return jsonify(result.model_dump(by_alias=True)), 200

    @app.route("/api/master", methods=["POST"])
    def master():
        result = engine.master(_read_record())
        return jsonify(result.model_dump(by_alias=True)), 200

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
    mastering_url: Optional[str] = None,
    shuffle_secret: Optional[str] = None,
):
    """Run the Flask development server."""
    app = create_app({
        "MASTERING_URL": mastering_url,
        "SHUFFLE_SECRET": shuffle_secret,
        "LOG_LEVEL": "DEBUG" if debug else "INFO",
    })
    if not mastering_url:
        logger.warning("No mastering URL configured; only /api/build will work")
    logger.info(f"Starting exam XML service on {host}:{port}")
    app.run(host=host, port=port, debug=debug)
