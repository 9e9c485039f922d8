import contextvars
import json
import logging
import logging.config
import os
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else came in through `extra`.
_BUILTIN_ATTRS = set(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "asctime",
    "message",
    "taskName",
}

# Never emitted verbatim, whatever logger passes them in `extra`.
_SECRET_KEYS = {"code", "otp_code", "password", "new_password", "session_token", "token"}

_trace_id_var = contextvars.ContextVar("trace_id", default=None)
_span_id_var = contextvars.ContextVar("span_id", default=None)
_trace_sampled_var = contextvars.ContextVar("trace_sampled", default=None)
_project_id: str | None = None


def _trace_fields() -> dict:
    fields = {}
    trace_id = _trace_id_var.get()
    if trace_id:
        project = _project_id or os.getenv("GOOGLE_CLOUD_PROJECT") or os.getenv("GCP_PROJECT")
        if project:
            fields["trace"] = f"projects/{project}/traces/{trace_id}"
        fields["traceId"] = trace_id
    span_id = _span_id_var.get()
    if span_id:
        fields["spanId"] = span_id
    sampled = _trace_sampled_var.get()
    if sampled is not None:
        fields["trace_sampled"] = sampled
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per line, in the shape Cloud Logging ingests."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
        }
        payload.update(_trace_fields())

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _BUILTIN_ATTRS:
                continue
            payload[key] = token_hint(value) if key in _SECRET_KEYS else _safe_json_value(value)

        return json.dumps(payload, ensure_ascii=False)


def _safe_json_value(value):
    try:
        json.dumps(value)
        return value
    except TypeError:
        return str(value)


def token_hint(value) -> str | None:
    """Short, non-reversible hint of a secret for correlating log lines."""
    if value is None:
        return None
    text = str(value)
    if len(text) <= 8:
        return "***"
    return f"{text[:6]}***"


def setup_logging(level: str = "INFO", project_id: str | None = None) -> None:
    global _project_id
    _project_id = project_id
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "core.logging.JsonFormatter"},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "json",
            }
        },
        "root": {"level": level, "handlers": ["stdout"]},
        "loggers": {
            "uvicorn": {"level": level, "handlers": ["stdout"], "propagate": False},
            "uvicorn.error": {"level": level, "handlers": ["stdout"], "propagate": False},
            "uvicorn.access": {"level": "WARNING", "handlers": ["stdout"], "propagate": False},
            "httpx": {"level": "WARNING", "handlers": ["stdout"], "propagate": False},
        },
    }

    logging.config.dictConfig(config)


def set_trace_context(trace_id: str | None, span_id: str | None, sampled: bool | None) -> None:
    _trace_id_var.set(trace_id)
    _span_id_var.set(span_id)
    _trace_sampled_var.set(sampled)


def clear_trace_context() -> None:
    _trace_id_var.set(None)
    _span_id_var.set(None)
    _trace_sampled_var.set(None)


def parse_cloud_trace_header(header: str | None) -> tuple[str | None, str | None, bool | None]:
    """Split ``TRACE_ID/SPAN_ID;o=OPTIONS`` into its parts."""
    if not header:
        return None, None, None
    trace_part, _, rest = header.partition("/")
    span_part, _, options = rest.partition(";")
    sampled = options[2:] == "1" if options.startswith("o=") else None
    return trace_part or None, span_part or None, sampled


def http_request_entry(request, status: int, response_size: str | None, latency: float) -> dict:
    """Cloud Logging ``httpRequest`` block for one served request."""
    entry = {
        "requestMethod": request.method,
        "requestUrl": str(request.url),
        "status": status,
        "userAgent": request.headers.get("user-agent"),
        "remoteIp": request.client.host if request.client else None,
        "referer": request.headers.get("referer"),
        "protocol": f"HTTP/{request.scope.get('http_version', '1.1')}",
        "latency": f"{latency:.6f}s",
    }
    request_size = request.headers.get("content-length")
    if request_size:
        entry["requestSize"] = request_size
    if response_size:
        entry["responseSize"] = response_size
    return entry
