from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os
from logging import Logger

_ANSI_RESET = "\033[0m"
_ANSI_COLORS: dict[str, str] = {
    "cyan":    "\033[36m",
    "green":   "\033[32m",
    "yellow":  "\033[33m",
    "red":     "\033[31m",
}

# Markers prepended to the message, highest matching level wins
_LEVEL_MARKERS = ((logging.ERROR, "⛔ "), (logging.WARNING, "⚠️ "))

# Third-party loggers that flood the output at INFO level
_NOISY_LOGGERS = ("httpx", "httpcore", "multipart", "uvicorn.access")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> int:
    """Resolve LOG_LEVEL ("debug", "info", "warning", "error"); unknown names fall back to INFO."""
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "info").strip().upper())
    return level if isinstance(level, int) else logging.INFO


class PipelineFormatter(logging.Formatter):
    """Formats timestamps in the TIMEZONE zone and marks warnings and errors."""

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # a log call with mismatched %-args
            message = f"{record.msg} (unformattable args: {record.args!r})"

        marker = next((m for level, m in _LEVEL_MARKERS if record.levelno >= level), "")
        record.msg = marker + message
        record.args = ()
        return super().format(record)


class ConsoleFormatter(PipelineFormatter):
    """Adds the ANSI color requested through ColorLogger's ``color=`` keyword."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _ANSI_COLORS.get(getattr(record, "color", None) or "", "")
        return f"{ansi}{line}{_ANSI_RESET}" if ansi else line


class ColorLogger:
    """Logger wrapper accepting ``color="green"`` on the level methods.

    Colors only reach the console; the log file stays plain text.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, method: str, msg, args, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs = {**kwargs, "extra": {**(kwargs.get("extra") or {}), "color": color}}
        getattr(self._logger, method)(msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log("debug", msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log("info", msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log("warning", msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log("error", msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        self._log("exception", msg, args, color, kwargs)

    def __getattr__(self, name):
        return getattr(self._logger, name)


def setup_logging(name: str = "legal_pipeline") -> ColorLogger:
    """Configure console and file logging and return the application logger.

    Environment:
        LOG_LEVEL: Root level, default "info".
        LOG_TO_FILE: Also write ``$ROOT_DIR/logs/app.log`` (default true).
        TIMEZONE: Zone of the timestamps, default "Europe/Berlin".

    Args:
        name (str): Name of the returned logger.

    Returns:
        ColorLogger: The wrapped application logger.
    """
    level = get_log_level()
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    log_to_file = os.getenv("LOG_TO_FILE", "true").strip().lower() in ("true", "1", "yes")

    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "level": level,
            "stream": "ext://sys.stdout",
        },
    }
    if log_to_file:
        log_dir = os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs")
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "plain",
            "level": level,
            "filename": os.path.join(log_dir, "app.log"),
            "encoding": "utf-8",
        }

    formatter_base = {"format": LOG_FORMAT, "datefmt": LOG_DATEFMT, "tz_name": tz_name}
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"()": PipelineFormatter, **formatter_base},
            "console": {"()": ConsoleFormatter, **formatter_base},
        },
        "handlers": handlers,
        "root": {"handlers": list(handlers), "level": level},
    })

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return ColorLogger(logging.getLogger(name))
