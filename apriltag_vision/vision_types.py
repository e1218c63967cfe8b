from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class VisionError(Exception):
    """Base class for errors raised by the vision pipeline."""


class CaptureError(VisionError):
    pass


class PoseEstimationError(VisionError):
    def __init__(self, tag_id: int, reason: str):
        super().__init__(f"pose estimation failed for tag {tag_id}: {reason}")
        self.tag_id = tag_id
        self.reason = reason


@dataclass(frozen=True)
class CaptureResult:
    ok: bool
    error: str = ""


@dataclass(frozen=True)
class Detection:
    tag_id: int
    corners: tuple[tuple[float, float], ...]  # 4 (x, y) points, engine order
    center: tuple[float, float]
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass
class IterationResult:
    captured: bool
    tag_ids: list[int] = field(default_factory=list)
    poses_published: list[int] = field(default_factory=list)
    error: str = ""
