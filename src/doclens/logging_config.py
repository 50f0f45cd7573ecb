"""Application logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import UTC, datetime
from typing import Any, Literal

LogFormat = Literal["json", "text"]

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonLineFormatter(logging.Formatter):
    """Render each record as one JSON line: timestamp, level, logger, message."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        line: dict[str, str] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def configure_logging(*, level: str = "INFO", log_format: LogFormat = "json") -> None:
    """Configure root logging for the server and the CLI."""

    formatter: dict[str, Any]
    if log_format == "json":
        formatter = {"()": JsonLineFormatter}
    else:
        formatter = {"format": _TEXT_FORMAT}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": formatter},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "level": level.upper(),
                "handlers": ["default"],
            },
            "loggers": {
                "httpx": {"level": "WARNING"},
            },
        }
    )
