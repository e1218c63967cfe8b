from __future__ import annotations

from typing import Any, Optional

import cv2
import numpy as np
import robotpy_apriltag

from .vision_types import Detection


def to_gray(frame: np.ndarray, into: np.ndarray) -> np.ndarray:
    """Convert the color frame into the reusable single-channel buffer."""
    return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY, dst=into)


def _convert(raw: Any) -> Detection:
    corners = []
    for i in range(4):
        pt = raw.getCorner(i)
        corners.append((float(pt.x), float(pt.y)))
    center = raw.getCenter()
    return Detection(int(raw.getId()), tuple(corners), (float(center.x), float(center.y)), raw)


class TagDetector:
    """
    Wraps the AprilTag detection engine. The tag family and error-correction
    bits are fixed at construction; detect() keeps no state between frames.
    """

    def __init__(
        self,
        family: str = "tag16h5",
        bits_corrected: int = 0,
        min_decision_margin: float = 0.0,
        engine: Optional[Any] = None,
    ):
        self.family = family
        self.bits_corrected = bits_corrected
        self.min_decision_margin = min_decision_margin
        if engine is None:
            engine = robotpy_apriltag.AprilTagDetector()
            try:
                added = engine.addFamily(family, bits_corrected)
            except Exception as exc:
                raise ValueError(f"Unknown tag family: {family}") from exc
            if not added:
                raise ValueError(f"Unknown tag family: {family}")
        self._engine = engine
        self._closed = False

    def detect(self, gray: np.ndarray) -> list[Detection]:
        dets: list[Detection] = []
        for raw in self._engine.detect(gray):
            if self.min_decision_margin > 0 and raw.getDecisionMargin() < self.min_decision_margin:
                continue
            dets.append(_convert(raw))
        return dets

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # older robotpy builds free the engine on garbage collection only
        if hasattr(self._engine, "close"):
            self._engine.close()
