import logging
import logging.handlers
import os

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Rotating: 10MB, keep 5 backups
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

QUIET_LOGGERS = ("aiohttp", "urllib3")


def setup_logging(log_dir: str = "logs", level: str = "INFO") -> logging.Logger:
    """
    Configures the root logger for the CLI: console plus a rotating
    ``app.log`` in ``log_dir``. Calling it again only updates the level of
    the root logger and its handlers.
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)

    if root.hasHandlers():
        for handler in root.handlers:
            handler.setLevel(log_level)
        return root

    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, "app.log"), maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding='utf-8'
        ),
    ]
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root
