"""Colored console logging shared by every pipeline stage.

Job-scoped messages go through `job_logger()` so interleaved runs of a
multi-claim job stay readable.
"""

import logging
import sys
from datetime import datetime

GREEN = "\x1b[32m"
RED = "\x1b[31m"
YELLOW = "\x1b[33m"
DIM = "\x1b[2m"
BOLD = "\x1b[1m"
RESET = "\x1b[0m"

_ROOT_NAME = "patent_risk"


class PipelineFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: DIM,
        logging.INFO: "",
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED + BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%H:%M:%S")
        color = self.LEVEL_COLORS.get(record.levelno, "")
        message = f"{DIM}[{ts}]{RESET} {color}{record.getMessage()}{RESET}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class JobLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the job identity."""

    def process(self, msg, kwargs):
        return f"{DIM}[{self.extra['job_id']}]{RESET} {msg}", kwargs


def get_logger(name: str = _ROOT_NAME, level: str | None = None) -> logging.Logger:
    """Return a logger under the package root; the handler lives on the root only."""
    logger = logging.getLogger(name)
    root = logging.getLogger(_ROOT_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(PipelineFormatter())
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if level:
        root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def job_logger(job_id: str, name: str = _ROOT_NAME) -> JobLoggerAdapter:
    return JobLoggerAdapter(get_logger(name), {"job_id": job_id})
