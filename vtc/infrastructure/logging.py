import logging
from pathlib import Path

LOG_FILE_NAME = "vtc.log"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

def setup_logging(log_dir: Path, debug: bool = False) -> logging.Logger:
    """File logging only; the console belongs to the rich UI."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, logging.FileHandler):
            root.removeHandler(existing)
            existing.close()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    return logging.getLogger("vtc")
