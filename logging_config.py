# logging_config.py
import logging
import sys
import json
from typing import Iterable, Union

# Loggers owned by the chat application (flat layout, one per module).
APP_LOGGERS = ("app", "chat_actions", "chat_state", "providers")

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Custom log formatter that emits events as single-line JSON.
    Includes timestamp, log level, logger name, message, exception info
    and any fields passed through ``extra``.
    """
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        for key, value in vars(record).items():
            if key not in _RESERVED and key not in payload:
                payload[key] = value
        return json.dumps(payload, default=str)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    names: Iterable[str] = APP_LOGGERS,
) -> logging.Logger:
    """
    Attaches a stdout JSON handler to each application logger and returns
    the first one. Safe to call on every Streamlit rerun.
    """
    loggers = []
    for name in names:
        logger = logging.getLogger(name)
        # Prevent duplicate handlers if called multiple times
        if logger.handlers:
            logger.handlers.clear()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(level.upper() if isinstance(level, str) else level)
        loggers.append(logger)
    return loggers[0]
