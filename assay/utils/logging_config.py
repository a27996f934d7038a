import contextvars
import logging
import os
import sys
from datetime import datetime

# Set per request by the HTTP middleware and per job by start_analysis;
# background tasks inherit it, so orchestrator lines carry the job id too.
analysis_id_var = contextvars.ContextVar("analysis_id", default="-")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(analysis_id)s | %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class AnalysisIdFilter(logging.Filter):
    """Stamps each record with the analysis id active in the current context."""

    def filter(self, record):
        record.analysis_id = analysis_id_var.get()
        return True


class ColoredFormatter(logging.Formatter):
    """Colors the level name only, so ids and paths stay readable."""

    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[36m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    reset = "\x1b[0m"

    def __init__(self):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno)
        if not color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original:<8}{self.reset}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(level=logging.INFO, log_dir: str = "logs"):
    """Colored console plus a daily file, both tagged with the analysis id."""
    root_logger = logging.getLogger()

    # uvicorn --reload re-imports main; drop the previous handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)
    id_filter = AnalysisIdFilter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter())
    console_handler.addFilter(id_filter)
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(log_dir, f"assay_{datetime.now().strftime('%Y%m%d')}.log")
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        file_handler.addFilter(id_filter)
        root_logger.addHandler(file_handler)

    for logger_name in ["assay", "main"]:
        logging.getLogger(logger_name).setLevel(level)

    # The UI polls /status every 2s; the middleware already logs requests
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    root_logger.debug("Logging initialized at %s", logging.getLevelName(level))
