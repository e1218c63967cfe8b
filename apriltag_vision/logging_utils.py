from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(camera)s] %(message)s"


class CameraNameFilter(logging.Filter):
    """Stamps each record with the camera the vision loop serves."""

    def __init__(self, camera_name: str):
        super().__init__()
        self.camera_name = camera_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera = self.camera_name
        return True


def parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {level!r}")
    return value


def _handler(handler: logging.Handler, camera_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CameraNameFilter(camera_name))
    return handler


def setup_logger(
    camera_name: str,
    level: int | str = logging.INFO,
    log_path: Optional[str] = None,
) -> logging.Logger:
    """Logger for one vision loop: console output plus an optional log file.

    Calling again for the same camera updates the level and attaches the
    file handler at most once per path.
    """
    logger = logging.getLogger(f"apriltag_vision.{camera_name}")
    logger.setLevel(parse_level(level))

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        logger.addHandler(_handler(logging.StreamHandler(), camera_name))

    if log_path:
        target = os.path.abspath(log_path)
        attached = {
            h.baseFilename for h in logger.handlers if isinstance(h, logging.FileHandler)
        }
        if target not in attached:
            logger.addHandler(_handler(logging.FileHandler(target), camera_name))

    return logger
