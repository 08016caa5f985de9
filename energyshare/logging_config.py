"""
JSON log output for the API process.

Every record becomes one JSON object per line on stderr. Context passed
through ``extra=`` (device id, usage id, user email) is copied into the
object so a usage session can be followed across turn-on, estimated-time
edits and turn-off.

CHANGELOG:
- 2026-10-19: Reject unknown level names (STORY-110)
- 2026-10-04: Copy session context from ``extra`` into the output (STORY-107)
- 2026-10-02: Emit formatted exception text when present (STORY-106)
- 2026-09-26: Initial creation (STORY-101)

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime

# Keys callers may pass via ``extra=`` that are copied into the JSON line.
CONTEXT_FIELDS = ("device_id", "usage_id", "user_email", "time_period")

# Third-party loggers that are too chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


class JSONFormatter(logging.Formatter):
    """Render a log record as a single JSON line.

    Always present: ``timestamp`` (UTC, ISO-8601), ``level``, ``logger``
    and ``message``. ``exc_info`` holds the traceback text when the record
    carries one, and any of :data:`CONTEXT_FIELDS` set on the record are
    added as top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Route all logging through one JSON handler on stderr.

    Existing root handlers are dropped so repeated calls (tests, reloads)
    never duplicate lines. Chatty client libraries are capped at WARNING
    unless *level* is DEBUG.

    Args:
        level: Root level as a number or a name such as ``"debug"``.

    Raises:
        ValueError: *level* is a name logging does not know.
    """
    if isinstance(level, str):
        name = level.strip().upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name!r}")

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
