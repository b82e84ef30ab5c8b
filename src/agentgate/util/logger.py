import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path
from datetime import datetime
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
LOGS_DIR: Path = (Path(__file__).parents[3] / "logs").resolve()
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

# Session log file, resolved on first use
LOG_FILEPATH: Path | None = None

# Rotate the session file past this size
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3


# -------------------- Formatters --------------------
class ColorFormatter(logging.Formatter):
    """Formatter wrapping each record in the ANSI colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Logging handler that prints through prompt_toolkit.

    Using ``print_formatted_text`` keeps log lines from tearing an active
    prompt apart when the gateway runs with an interactive console.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            print_formatted_text(ANSI(msg))
        except Exception:
            self.handleError(record)


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def should_use_color() -> bool:
    """Return True when stderr is a terminal that can render ANSI colours."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


color_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


# -------------------- Logger Setup --------------------

def get_log_filepath() -> Path:
    """
    Return the log file shared by every logger of this process.

    A file from today that was touched within the last minute is reused so a
    quick restart keeps appending to the same session log; otherwise a new
    timestamped file is created. The result is cached for the process.
    """
    global LOG_FILEPATH

    if LOG_FILEPATH is not None:
        return LOG_FILEPATH

    now = datetime.now()
    todays_logs = sorted(
        LOGS_DIR.glob(f"{now.strftime('%Y-%m-%d')}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    if todays_logs and now.timestamp() - todays_logs[0].stat().st_mtime < 60:
        LOG_FILEPATH = todays_logs[0]
    else:
        LOG_FILEPATH = LOGS_DIR / (now.strftime(DATE_FORMAT) + ".log")
    return LOG_FILEPATH


def setup_logger(logger_name: str) -> logging.Logger:
    """Configure and return a logger with console and rotating file handlers.

    Parameters
    ----------
    logger_name:
        Name of the logger to configure.

    Returns
    -------
    logging.Logger
        Configured logger instance. Loggers that already carry handlers are
        returned untouched.
    """
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = PromptToolkitHandler(formatter=color_formatter)
    console_handler.setLevel(logging.INFO)
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(plain_formatter)
    logger.addHandler(file_handler)

    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Retrieve a gateway logger, creating it on first use."""
    return setup_logger(logger_name)


# -------------------- Exception Handling --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    ``sys.excepthook`` replacement that logs uncaught exceptions.

    KeyboardInterrupt is handed to the default hook so Ctrl+C still exits
    quietly.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
    else:
        logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


# -------------------- Suppress Noisy Libraries --------------------
NOISY_LOGGERS = [
    "openai", "openai._base_client", "httpx", "httpcore",
    "discord", "discord.gateway", "discord.client", "discord.http",
    "websockets", "aiohttp", "aiosqlite", "asyncio",
]

for noisy_logger in NOISY_LOGGERS:
    lg = logging.getLogger(noisy_logger)
    lg.setLevel(logging.ERROR)
    lg.propagate = False
    lg.handlers = []


sys.excepthook = handle_exception
