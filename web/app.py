"""
Flask web server for blogboard.

Routes
──────
POST /api/blog/subtopics           flow: Subtopic[]            (streaming)
POST /api/blog/post-summaries      flow: PostSummary[]         (streaming)
POST /api/blog/post                flow: BlogPost              (streaming)
POST /api/blog/analyze-blog-post   flow: BlogPost[]            (legacy, streaming)
POST /api/blog/structured-output   {success, data: BlogPost}   (legacy, JSON)
GET  /health                       {status: "OK", timestamp}

Flow endpoints speak the streaming flow protocol: with
``Accept: text/event-stream`` (or ``?stream=true``) every partial value is
sent as ``data: {"message": ...}`` and the validated value as
``data: {"result": ...}``; otherwise the response is ``{"result": ...}``.

Errors are always ``{"error": "...", "status": <code>}``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from flask import (
    Blueprint,
    Flask,
    Response,
    current_app,
    jsonify,
    request,
    stream_with_context,
)
from flask_cors import CORS
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from blogboard.flows import FLOWS, Flow, generate_structured_output
from blogboard.generator import StructuredGenerator
from blogboard.models import TopicRequest
from config.settings import Settings

logger = logging.getLogger(__name__)

GENERATOR_KEY = "blogboard.generator"


class APIError(Exception):
    """An error with an HTTP status, rendered as ``{error, status}``."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic error into ``"field: message; ..."``."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def _generator() -> StructuredGenerator:
    return current_app.extensions[GENERATOR_KEY]


def _request_body() -> object:
    """Return the JSON body, unwrapping the ``{"data": ...}`` flow envelope."""
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body


def _wants_stream() -> bool:
    if request.args.get("stream", "").lower() == "true":
        return True
    return "text/event-stream" in request.headers.get("Accept", "")


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


# ── Blog API ───────────────────────────────────────────────────────────────

blog = Blueprint("blog", __name__, url_prefix="/api/blog")


def _serve_flow(flow: Flow) -> Response:
    try:
        flow_input = flow.validate(_request_body())
    except ValidationError as exc:
        raise APIError(400, format_validation_error(exc)) from exc

    generator = _generator()

    if not _wants_stream():
        return jsonify({"result": flow.run(generator, flow_input)})

    def generate():
        try:
            for event_type, payload in flow.stream(generator, flow_input):
                key = "message" if event_type == "chunk" else "result"
                yield _sse({key: payload})
        except Exception as exc:
            logger.exception("Flow %s failed mid-stream", flow.name)
            yield _sse({"error": {"status": "INTERNAL", "message": str(exc)}})

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@blog.route("/subtopics", methods=["POST"])
def subtopics():
    """Generate 5-7 subtopics for ``topic``."""
    return _serve_flow(FLOWS["subtopics"])


@blog.route("/post-summaries", methods=["POST"])
def post_summaries():
    """Generate post summaries for one subtopic."""
    return _serve_flow(FLOWS["post-summaries"])


@blog.route("/post", methods=["POST"])
def complete_post():
    """Generate a complete blog post from a summary."""
    return _serve_flow(FLOWS["post"])


@blog.route("/analyze-blog-post", methods=["POST"])
def analyze_blog_post():
    """Legacy: six post outlines for a topic."""
    return _serve_flow(FLOWS["analyze-blog-post"])


@blog.route("/structured-output", methods=["POST"])
def structured_output():
    """Legacy: one post outline, no streaming."""
    try:
        body = TopicRequest.model_validate(_request_body())
    except ValidationError as exc:
        raise APIError(400, format_validation_error(exc)) from exc

    post = generate_structured_output(_generator(), body)
    return jsonify(
        {"success": True, "data": post.model_dump(by_alias=True, exclude_none=True)}
    )


# ── Error handling ─────────────────────────────────────────────────────────


def _error_response(message: str, status: int):
    return jsonify({"error": message, "status": status}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def handle_api_error(exc: APIError):
        logger.warning("API error %d: %s", exc.status_code, exc.message)
        return _error_response(exc.message, exc.status_code)

    @app.errorhandler(404)
    def handle_not_found(_exc):
        return _error_response("Not found", 404)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return _error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return _error_response(str(exc) or "Internal server error", 500)


# ── App factory ────────────────────────────────────────────────────────────


def create_app(
    settings: Optional[Settings] = None,
    generator: Optional[StructuredGenerator] = None,
) -> Flask:
    """Build the Flask application.

    Args:
        settings: Configuration; read from the environment when omitted.
        generator: Model gateway; built from ``settings`` when omitted.
    """
    settings = settings or Settings()

    app = Flask(__name__)
    app.config["BLOGBOARD_SETTINGS"] = settings
    app.extensions[GENERATOR_KEY] = generator or StructuredGenerator(settings)

    origins = settings.cors_origins
    CORS(app, origins="*" if origins == "*" else [o.strip() for o in origins.split(",")])

    @app.route("/health")
    def health():
        return jsonify(
            {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}
        )

    app.register_blueprint(blog)
    register_error_handlers(app)
    return app


# ── Entry point ────────────────────────────────────────────────────────────


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    settings = Settings()
    settings.validate()
    app = create_app(settings)

    logger.info("Server running on port %d (%s)", settings.port, settings.environment)
    for rule in sorted(app.url_map.iter_rules(), key=lambda r: r.rule):
        if rule.endpoint != "static":
            methods = ",".join(sorted(rule.methods - {"HEAD", "OPTIONS"}))
            logger.info("  %-6s %s", methods, rule.rule)

    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
