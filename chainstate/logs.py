import sys
import logging

from pythonjsonlogger.json import JsonFormatter

LOG_PATTERN = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(log_format="text", log_level="INFO"):
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JsonFormatter(LOG_PATTERN))
    else:
        handler.setFormatter(logging.Formatter(LOG_PATTERN))
    # Remove all handlers associated with the root logger object.
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    root_logger.addHandler(handler)
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
