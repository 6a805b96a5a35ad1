"""Setup the logger functionality."""

import logging
from logging import FileHandler, StreamHandler
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Self, cast

from pydantic import BaseModel, field_validator, model_validator
from rich.console import Console
from rich.highlighter import NullHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

LOG_LEVELS = [
    "TRACE",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

SIMPLE_LOG_FORMAT = "%(levelname)s:%(message)s"
SIMPLE_LOG_FORMAT_DEBUG = "%(levelname)s:%(name)s:%(message)s"
TRACE_LEVEL_NUM = 5

MIN_LOG_LEVEL_INT = 0
MAX_LOG_LEVEL_INT = 50

FILE_HANDLER_MAX_BYTES = 1000000  # 1MB
FILE_HANDLER_BACKUP_COUNT = 3

# Third party loggers that are too chatty at our level
LIBRARY_LOG_LEVELS: dict[str, int] = {
    "aiohttp": logging.WARNING,
    "redis": logging.WARNING,
    "sqlalchemy": logging.WARNING,
    "asyncio": logging.WARNING,
    "watchfiles": logging.WARNING,
    "python_multipart": TRACE_LEVEL_NUM,
}


def _normalise_level(level: str | int) -> str | int:
    """Return a valid logging level, falling back to INFO with a warning."""
    if isinstance(level, int):
        if MIN_LOG_LEVEL_INT <= level <= MAX_LOG_LEVEL_INT:
            return level
        logger.warning(
            "Invalid logging level %s, must be between %s and %s. Defaulting to 'INFO'.",
            level,
            MIN_LOG_LEVEL_INT,
            MAX_LOG_LEVEL_INT,
        )
        return "INFO"

    level = level.strip().upper()
    if level in LOG_LEVELS:
        return level

    logger.warning("Invalid logging level '%s', must be one of %s. Defaulting to 'INFO'.", level, ", ".join(LOG_LEVELS))
    return "INFO"


class LoggingConf(BaseModel):
    """Logging configuration definition."""

    level: str | int = "INFO"
    level_http: str | int = "WARNING"
    path: Path | None = None
    simple: bool = False

    @model_validator(mode="after")
    def validate_vars(self) -> Self:
        """Validate the logging levels."""
        self.level = _normalise_level(self.level)
        self.level_http = _normalise_level(self.level_http)
        return self

    @field_validator("path", mode="before")
    @classmethod
    def set_path(cls, value: str | Path | None) -> Path | None:
        """Empty strings mean no log file."""
        if value is None:
            return None

        if isinstance(value, str):
            value = value.strip()
            if value == "":
                return None

        return Path(value)

    def setup_verbosity_cli(self, verbosity: int) -> None:
        """Setup the logger from verbosity count from CLI."""
        if verbosity >= 2:  # noqa: PLR2004 Magic number makes sense
            self.level = TRACE_LEVEL_NUM
        elif verbosity == 1:
            self.level = logging.DEBUG
        else:
            self.level = logging.INFO


class CustomLogger(logging.Logger):
    """Custom logger to appease mypy."""

    def trace(self, message: Any, *args: Any, **kws: Any) -> None:  # noqa: ANN401 Logging handles this
        """Create logger level for trace."""
        if self.isEnabledFor(TRACE_LEVEL_NUM):
            self._log(TRACE_LEVEL_NUM, message, args, **kws)


logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")
logging.setLoggerClass(CustomLogger)

logger = cast("CustomLogger", logging.getLogger(__name__))


def setup_logger(
    settings: LoggingConf | None = None,
    in_logger: logging.Logger | str | None = None,
) -> None:
    """Setup the logger, set configuration per logging_config."""
    if settings is None:
        settings = LoggingConf()

    if isinstance(in_logger, str):
        in_logger = logging.getLogger(in_logger)

    if not in_logger:  # in_logger should only exist when testing with PyTest.
        in_logger = logging.getLogger()

    if not any(isinstance(handler, (RichHandler, StreamHandler)) for handler in in_logger.handlers):
        _add_console_handler(settings, in_logger)

    in_logger.setLevel(_get_log_level_int(settings.level))

    if settings.path and not any(isinstance(handler, FileHandler) for handler in in_logger.handlers):
        _add_file_handler(in_logger, settings.path)

    for library_name, library_level in LIBRARY_LOG_LEVELS.items():
        logging.getLogger(library_name).setLevel(library_level)

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.propagate = False
    access_logger.setLevel(_get_log_level_int(settings.level_http))

    logger.debug("Logger configuration set!")


def get_logger(name: str) -> CustomLogger:
    """Get a logger with the name provided."""
    return cast("CustomLogger", logging.getLogger(name))


def _add_console_handler(settings: LoggingConf, in_logger: logging.Logger) -> None:
    """Add a console handler to the logger, rich unless simple output is requested."""
    if not settings.simple:
        console = Console(theme=Theme({"logging.level.trace": "dim"}))
        in_logger.addHandler(
            RichHandler(
                console=console,
                show_time=False,
                rich_tracebacks=True,
                highlighter=NullHighlighter(),
            )
        )
        return

    console_handler = StreamHandler()
    if _get_log_level_int(settings.level) <= logging.DEBUG:
        console_handler.setFormatter(logging.Formatter(SIMPLE_LOG_FORMAT_DEBUG))
    else:
        console_handler.setFormatter(logging.Formatter(SIMPLE_LOG_FORMAT))
    in_logger.addHandler(console_handler)


def _get_log_level_int(level: str | int) -> int:
    """Get the log level as an int."""
    if isinstance(level, int):
        return level

    level = level.upper()
    if level == "TRACE":
        return TRACE_LEVEL_NUM
    return getattr(logging, level, logging.INFO)


def _add_file_handler(in_logger: logging.Logger, log_path: Path) -> None:
    """Add a rotating file handler to the logger."""
    try:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=FILE_HANDLER_MAX_BYTES,
            backupCount=FILE_HANDLER_BACKUP_COUNT,
        )
    except IsADirectoryError as exc:
        err = "You are trying to log to a directory, try a file"
        raise IsADirectoryError(err) from exc
    except PermissionError as exc:
        err = "The user running this does not have access to the file: " + str(log_path.resolve())
        raise PermissionError(err) from exc

    file_handler.setFormatter(logging.Formatter(SIMPLE_LOG_FORMAT_DEBUG))
    in_logger.addHandler(file_handler)
    logger.info("Logging to file: %s", log_path)
