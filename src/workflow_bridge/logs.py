"""
Structured JSON logging.

Logs go to stdout as one JSON object per line so that log collectors can
index fields such as the role, function name and authorization decision.
Structured fields are attached with `extra={"event_data": {...}}`:

    logger.warning(
        "Tool call denied",
        extra={"event_data": {"role": "employee", "function": "get_financial_analytics"}},
    )
"""

import json
import logging
import sys


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,120", "level": "WARNING",
         "logger": "workflow_bridge.authorization", "message": "Tool call denied",
         "role": "employee", "function": "get_financial_analytics", "decision": "denied"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "event_data"):
            log_entry.update(record.event_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "info") -> None:
    """Install the JSON formatter on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )
