"""
Prometheus metrics for the chat API.

This module provides:
- HTTP request counter (method, path, status)
- Chat operation outcome counter (operation, result)
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: ok, or the error kind (duplicate_username, incorrect_password, ...)
chat_operations_total = Counter(
    "chat_operations_total",
    "Total chat operation outcomes",
    labelnames=["operation", "result"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def _normalize_path(path: str) -> str:
    """Collapse query strings and per-user/per-file segments into fixed labels."""
    path = path.split("?")[0]
    if path.startswith("/uploads/"):
        return "/uploads/{filename}"
    if path.startswith("/api/users/") and path.count("/") == 3:
        tail = path.rsplit("/", 1)[1]
        if tail not in ("online", "status", "profile", "password", "profile-picture"):
            return "/api/users/{userId}"
    return path


def record_operation_outcome(operation: str, result: str) -> None:
    """
    Record the outcome of a chat operation.

    Args:
        operation: Operation name, e.g. "register", "send_message"
        result: "ok" or the error kind that ended the operation
    """
    chat_operations_total.labels(operation=operation, result=result).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
