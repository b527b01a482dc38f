"""
Logging setup for Meldoc MCP Proxy.

Everything goes to stderr: stdout carries the JSON-RPC stream and must never
receive log output.
"""

import logging
import sys
from pathlib import Path

PACKAGE = "meldoc_proxy"


class ProxyFormatter(logging.Formatter):
    """Compact ``time level module: message`` lines, colored on a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[90m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool | None = None):
        super().__init__(datefmt="%H:%M:%S")
        if use_color is None:
            use_color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        source = record.name.removeprefix(f"{PACKAGE}.")
        line = (
            f"{self.formatTime(record, self.datefmt)} "
            f"{record.levelname:<7} {source}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        color = self.LEVEL_COLORS.get(record.levelno) if self.use_color else None
        return f"{color}{line}{self.RESET}" if color else line


def setup_logging(level: str = "ERROR", log_file: Path | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file to additionally write logs to
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.ERROR))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ProxyFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO, including URLs
    logging.getLogger("httpx").setLevel(max(root_logger.level, logging.WARNING))
    logging.getLogger("httpcore").setLevel(max(root_logger.level, logging.WARNING))
