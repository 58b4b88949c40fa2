# moodle_utils/log.py - logger helpers shared by the client and applications using it
import logging

FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def get_logger(name: str = "moodle-client", level: int = logging.INFO):
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger


def null_logger(name: str = "moodle-client.null"):
    """Logger that swallows every record; the client's default when none is injected."""
    logger = logging.getLogger(name)
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger
