from __future__ import annotations

import cv2
import numpy as np

from .config import AnnotationStyle
from .vision_types import Detection


def _px(pt: tuple[float, float]) -> tuple[int, int]:
    return int(round(pt[0])), int(round(pt[1]))


def annotate(frame: np.ndarray, detection: Detection, style: AnnotationStyle = AnnotationStyle()) -> None:
    """Draw the tag outline, a center cross-hair and the tag ID onto ``frame`` in place."""
    corners = detection.corners
    for i in range(4):
        j = (i + 1) % 4
        cv2.line(frame, _px(corners[i]), _px(corners[j]), style.outline_color, style.line_thickness)

    cx, cy = _px(detection.center)
    ll = style.cross_half_length
    cv2.line(frame, (cx - ll, cy), (cx + ll, cy), style.cross_color, style.line_thickness)
    cv2.line(frame, (cx, cy - ll), (cx, cy + ll), style.cross_color, style.line_thickness)

    cv2.putText(
        frame,
        str(detection.tag_id),
        (cx + ll, cy),
        cv2.FONT_HERSHEY_SIMPLEX,
        style.font_scale,
        style.cross_color,
        style.text_thickness,
    )
