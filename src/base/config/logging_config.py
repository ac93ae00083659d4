import logging

from src.base.middleware.correlation_middleware import CorrelationFilter
from src.base.middleware.request_context import RequestContextFilter


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.colored_levelname = (
                f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
            )
        else:
            record.colored_levelname = f"{levelname}"

        # Last segment of the logger name, e.g. "sessions" for src.domain.auth.sessions
        if hasattr(record, "name") and record.name:
            filename = record.name.split(".")[-1]
            record.filename_only = filename if filename != "__main__" else "app"
        else:
            record.filename_only = "unknown"

        # Request fields are empty outside a request
        record.request_summary = " ".join(
            part
            for part in (
                getattr(record, "correlation_id", ""),
                getattr(record, "method", ""),
                getattr(record, "path", ""),
                getattr(record, "ip", ""),
            )
            if part
        )

        return super().format(record)


class LoggingConfig:
    """Configuration class for application logging setup."""

    @staticmethod
    def setup_logging(log_level: int = logging.INFO) -> None:
        """
        Configure application logging with correlation ID and request context support.

        Args:
            log_level: The logging level (default: logging.INFO)
        """
        logger = logging.getLogger()
        logger.setLevel(log_level)

        # Only add handlers if none exist to avoid duplicates
        if not logger.hasHandlers():
            handler = logging.StreamHandler()

            format_string = (
                "%(asctime)s | %(colored_levelname)s | %(filename_only)s "
                "| %(request_summary)s | %(message)s"
            )
            formatter = ColoredFormatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

            handler.setFormatter(formatter)
            handler.addFilter(CorrelationFilter())
            handler.addFilter(RequestContextFilter())

            logger.addHandler(handler)
