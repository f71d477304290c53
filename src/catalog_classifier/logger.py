import logging
import os
import sys
from datetime import datetime

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"

_configured = False


def _configure_root():
    global _configured
    if _configured:
        return

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    handlers = [logging.StreamHandler(sys.stdout)]

    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{datetime.now().strftime('%m_%d_%Y_%H_%M_%S')}.log")
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger("catalog_classifier")
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger under the package namespace.
    Handlers are attached once per process.
    """
    _configure_root()
    if not name.startswith("catalog_classifier"):
        name = f"catalog_classifier.{name}"
    return logging.getLogger(name)
