"""HTTP/1.1 response framing and request classification over raw bytes."""

import json
import logging
import time
from typing import Iterable

from devlog_capture.models import LogEntry, entry_to_dict

logger = logging.getLogger(__name__)

CORS_HEADERS = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, OPTIONS"),
    ("Access-Control-Allow-Headers", "Content-Type, Authorization"),
)

REASONS = {
    200: "OK",
    404: "Not Found",
    500: "Internal Server Error",
}

ROUTE_LOGS = "logs"
ROUTE_CLEAR = "clear"
ROUTE_OPTIONS = "options"
ROUTE_NOT_FOUND = "not_found"


def classify_request(request: str) -> str:
    """Pick a route by substring match on the decoded request text."""
    if "GET /logs" in request:
        return ROUTE_LOGS
    if "GET /clear" in request:
        return ROUTE_CLEAR
    if "OPTIONS" in request:
        return ROUTE_OPTIONS
    return ROUTE_NOT_FOUND


def build_response(status: int, body: bytes = b"",
                   content_type: str | None = None) -> bytes:
    """Frame a complete response. Content-Length is the exact body byte count."""
    lines = [f"HTTP/1.1 {status} {REASONS.get(status, 'Unknown')}"]
    if content_type:
        lines.append(f"Content-Type: {content_type}")
    lines.extend(f"{name}: {value}" for name, value in CORS_HEADERS)
    lines.append(f"Content-Length: {len(body)}")
    lines.append("Connection: close")
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("ascii") + body


def logs_body(entries: Iterable[LogEntry], now: float | None = None) -> bytes:
    logs = [entry_to_dict(e) for e in entries]
    payload = {
        "logs": logs,
        "count": len(logs),
        "timestamp": time.time() if now is None else now,
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def logs_response(entries: Iterable[LogEntry]) -> bytes:
    try:
        body = logs_body(entries)
    except (TypeError, ValueError) as e:
        logger.error("JSON serialization error: %s", e)
        return error_response("JSON Error")
    return build_response(200, body, "application/json")


def clear_response() -> bytes:
    body = json.dumps({"status": "cleared"}, separators=(",", ":")).encode("utf-8")
    return build_response(200, body, "application/json")


def options_response() -> bytes:
    return build_response(200)


def not_found_response() -> bytes:
    return build_response(404, b"Not Found", "text/plain")


def error_response(message: str) -> bytes:
    return build_response(500, message.encode("utf-8"), "text/plain")

