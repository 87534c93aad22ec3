import logging
import os
from config import settings

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: str = None, level: str = None):
    """Attach the application handlers to the root logger once."""
    log_file = log_file or settings.log_file
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    if any(getattr(h, "_hospital_handler", False) for h in root.handlers):
        return root

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    for handler in (logging.FileHandler(log_file, mode="a", encoding="utf-8"), logging.StreamHandler()):
        handler.setFormatter(formatter)
        handler._hospital_handler = True
        root.addHandler(handler)
    return root
