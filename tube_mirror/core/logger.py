"""
Logging configuration for tube-mirror.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full_<ts>.log: Complete log of all events (DEBUG and above)
    - log_errors_<ts>.log: Only ERROR and CRITICAL level messages
    - unavailable_videos_<ts>.log: Videos tombstoned during this run

DEBUG plays the role of the "verbose" level: it always reaches the full log
file and reaches the console only when setup_logging(verbose=True).

Log File Locations:
    All log files are created in <data directory>/logs, one set per run.

Usage:
    from tube_mirror.core.logger import setup_logging, get_logger

    setup_logging(data_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting sync")
    log_unavailable_video(logger, video_id="abc", reason="Private video")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOGS_DIRNAME = "logs"
LOG_FULL_FILENAME = "log_full"
LOG_ERRORS_FILENAME = "log_errors"
UNAVAILABLE_VIDEOS_FILENAME = "unavailable_videos"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that prefixes console lines with a coloured level tag and the
    short component name.

    Colors:
        - DEBUG: Cyan (shown as VERB)
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.CYAN,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    LEVEL_TAGS = {
        logging.DEBUG: "VERB",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERRR",
        logging.CRITICAL: "CRIT",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        tag = self.LEVEL_TAGS.get(record.levelno, record.levelname)
        component = record.name.rsplit(".", 1)[-1]

        message = f"{color}[{tag}]{Colors.RESET}[{component:<10.10}] {record.getMessage()}"

        if record.exc_info and record.levelno >= logging.ERROR:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return message


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    Uses tqdm.write(), which prints above any active bar instead of
    interleaving with its carriage-return updates.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class UnavailableVideoHandler(logging.Handler):
    """
    Handler that captures tombstoned videos for the per-run report file.

    Records carrying an 'unavailable_video_id' extra field are written as:

        dQw4w9WgXcQ
        https://youtube.com/watch?v=dQw4w9WgXcQ
        Private video. Sign in if you've been granted access to this video

    All other records are ignored.

    Attributes:
        report_path: Path to the unavailable_videos report.
        report_file: Open file handle (opened by open()).
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "unavailable_video_id"):
            return

        if self.report_file is None:
            return

        try:
            video_id = getattr(record, "unavailable_video_id")
            reason = getattr(record, "unavailable_video_reason", "")

            self.report_file.write(f"{video_id}\n")
            self.report_file.write(f"https://youtube.com/watch?v={video_id}\n")
            self.report_file.write(f"{reason}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(output_dir: Path, verbose: bool = False) -> Path:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        output_dir: Data directory. Logs are stored in its 'logs' subdirectory.
        verbose: Show DEBUG records on the console as well.

    Returns:
        The logs directory.

    Behavior:
        1. Create output_dir/logs if it doesn't exist
        2. Configure root logger level to DEBUG
        3. Console handler (TqdmLoggingHandler), INFO or DEBUG
        4. Full log file handler, DEBUG
        5. Error log file handler, filtered to ERROR+
        6. Unavailable videos report handler
    """
    logs_dir = output_dir / LOGS_DIRNAME
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = logs_dir / f"{LOG_FULL_FILENAME}_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = logs_dir / f"{LOG_ERRORS_FILENAME}_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    unavailable_path = logs_dir / f"{UNAVAILABLE_VIDEOS_FILENAME}_{timestamp}.log"
    unavailable_handler = UnavailableVideoHandler(unavailable_path)
    unavailable_handler.open()
    root_logger.addHandler(unavailable_handler)

    return logs_dir


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Returns:
        logging.Logger: A logger instance configured by setup_logging().
    """
    return logging.getLogger(name)


def log_unavailable_video(logger: logging.Logger, video_id: str, reason: str) -> None:
    """
    Log a tombstoned video with the extra fields UnavailableVideoHandler
    looks for.

    Args:
        logger: Logger to emit through.
        video_id: Video that was tombstoned.
        reason: Explanation extracted from the downloader's stderr.
    """
    logger.debug(
        f"added unavailable video {video_id} {reason}",
        extra={
            "unavailable_video_id": video_id,
            "unavailable_video_reason": reason,
        }
    )


def shutdown_logging() -> None:
    """
    Flush and close every handler of the root logger and detach them.

    Typically called in a finally block. After this, logging output is
    dropped until setup_logging() runs again.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
