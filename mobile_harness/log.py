from __future__ import annotations

import logging
from pathlib import Path

from .config import ConfigurationResolver
from .errors import ConfigurationError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_HANDLER_MARK = "_mobile_harness_handler"


def configure_logging(resolver: ConfigurationResolver, *, console: bool = True) -> Path:
    """
    Attach console and file handlers to the `mobile_harness` logger.

    Honours log.level, log.path and log.file.name. Calling it again
    replaces the handlers it installed earlier. Returns the log file path.
    """
    level_name = resolver.log_level().strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ConfigurationError(f"Setting 'log.level' must be a logging level name, got {level_name!r}")

    reset_logging()
    root = logging.getLogger("mobile_harness")
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    if console:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        setattr(stream, _HANDLER_MARK, True)
        root.addHandler(stream)

    log_dir = resolver.log_path()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / resolver.log_file_name()
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_MARK, True)
    root.addHandler(file_handler)
    return log_file


def reset_logging() -> None:
    """Remove the handlers installed by configure_logging."""
    root = logging.getLogger("mobile_harness")
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()
