# backend/tenanttrack/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .middleware.request_id import get_request_id

# Passed through `extra=` by the lease, payment and occupancy services.
STRUCTURED_FIELDS = (
    "user_id",
    "tenant_id",
    "lease_id",
    "payment_id",
    "unit_id",
    "intent_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
)

# Third-party loggers that are noisy at INFO; each can be tuned by env var.
_QUIET_LOGGERS = {
    "sqlalchemy.engine": "SQL_LOG_LEVEL",
    "stripe": "STRIPE_LOG_LEVEL",
}


class RequestIdFilter(logging.Filter):
    """Stamps the current request id (if any) onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; structured extras are copied when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = getattr(record, "request_id", None)
        if rid:
            payload["request_id"] = rid

        for k in STRUCTURED_FIELDS:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # Decimal amounts and dates fall back to str
        return json.dumps(payload, ensure_ascii=False, default=str)


def _env_level(name: str, default: str) -> str:
    return (os.getenv(name) or default).upper()


def configure_logging(level: Optional[str] = None) -> None:
    level = (level or _env_level("LOG_LEVEL", "INFO")).upper()

    root = logging.getLogger()
    root.setLevel(level)

    # uvicorn --reload and repeated create_app() calls must not stack handlers
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    for name, env_var in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(_env_level(env_var, "WARNING"))
