import logging
import sys


ROOT_LOGGER = "velocity"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FORMATS = {
    "json": (
        '{"time": "%(asctime)s", "level": "%(levelname)s", '
        '"logger": "%(name)s", "message": "%(message)s"}'
    ),
    "text": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """Attach a single stderr handler to the ``velocity`` logger.

    Reports and JSON documents go to stdout, so log records never mix with
    them. Calling this again only updates the level and format.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    formatter = logging.Formatter(
        fmt=LOG_FORMATS.get(log_format, LOG_FORMATS["text"]),
        datefmt=DATE_FORMAT,
    )

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setFormatter(formatter)

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
