"""
WSGI adapter for the API handlers.
"""

import json
from http import HTTPStatus
from typing import Any, Callable, Dict, Iterable

from stray_match.logging_config import get_logger

from .handlers import ApiResponse, ApiService

logger = get_logger(__name__)

MAX_BODY_BYTES = 10 * 1024 * 1024


def _read_json(environ: Dict[str, Any]) -> Any:
    """Decoded request body; None when it is not readable JSON.

    Handlers validate the payload after authenticating, so an unreadable
    body is reported the same way as a malformed one.
    """
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        return None
    if length <= 0:
        return {}
    if length > MAX_BODY_BYTES:
        return None
    raw = environ["wsgi.input"].read(length)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.info("Request body is not valid JSON")
        return None


def create_app(service: ApiService) -> Callable:
    """Build a WSGI application serving ``POST /match`` and ``POST /analyze``."""
    routes = {
        "/match": service.handle_match,
        "/analyze": service.handle_analyze,
    }

    def app(environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "")
        method = environ.get("REQUEST_METHOD", "GET").upper()

        handler = routes.get(path.rstrip("/") or "/")
        if handler is None:
            response = ApiResponse(404, {"error": "Not found"})
        elif method != "POST":
            response = ApiResponse(405, {"error": "Method not allowed"}, headers={"Allow": "POST"})
        else:
            response = handler(environ.get("HTTP_AUTHORIZATION"), _read_json(environ))

        logger.info(f"{method} {path} -> {response.status}")
        body = json.dumps(response.body).encode("utf-8")
        headers = [("Content-Type", "application/json"), ("Content-Length", str(len(body)))]
        headers.extend(response.headers.items())
        status = HTTPStatus(response.status)
        start_response(f"{status.value} {status.phrase}", headers)
        return [body]

    return app
