"""
JSON-lines logging for the server and clients.

Each record becomes one object: timestamp, level, service, logger, the
emitting thread, an `event` tag, the message, and whatever the call site
put in `extra={"extra_fields": {...}}`. Refresh threads are named
`refresh:<repository>`, so the thread field alone tells sources apart.
"""
import json
import logging
from datetime import datetime, timezone

# records from these loggers are reshaped rather than duplicated by their own handlers
THIRD_PARTY_LOGGERS = ("uvicorn", "uvicorn.error", "httpx")

class JsonFormatter(logging.Formatter):
    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            "ts": ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "svc": self.service,
            "logger": record.name,
            "thread": record.threadName,
            "event": getattr(record, "event", "log"),
            "msg": record.getMessage(),
        }
        fields = getattr(record, "extra_fields", None) or {}
        # reserved keys win over call-site fields of the same name
        payload.update({k: v for k, v in fields.items() if k not in payload})
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

def setup_logging(service_name: str, level_name: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(JsonFormatter(service_name))
        root.addHandler(h)
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    for name in THIRD_PARTY_LOGGERS:
        lib = logging.getLogger(name)
        lib.handlers.clear()
        lib.propagate = True
    # per-request client lines are noise next to refresh.ok
    logging.getLogger("httpx").setLevel(logging.WARNING)
