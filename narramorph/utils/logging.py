from __future__ import annotations

import logging

_ROOT_LOGGER_NAME = "narramorph"
_HANDLER_MARKER = "_narramorph_handler"


def get_logger(name: str) -> logging.Logger:
    if name == _ROOT_LOGGER_NAME or name.startswith(f"{_ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str = "INFO", fmt: str | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Safe to call more than once: the handler is only installed the first time,
    later calls just update the level and format.
    """
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    logger.setLevel(level)

    handler = next((h for h in logger.handlers if getattr(h, _HANDLER_MARKER, False)), None)
    if handler is None:
        handler = logging.StreamHandler()
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)
    handler.setLevel(level)
    if fmt:
        handler.setFormatter(logging.Formatter(fmt))
    return logger
