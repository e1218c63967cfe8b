from __future__ import annotations

import math
from typing import Any, Optional

import robotpy_apriltag
from wpimath.geometry import Transform3d

from .config import CameraIntrinsics, TagGeometryConfig
from .vision_types import Detection, PoseEstimationError


def _finite(pose: Transform3d) -> bool:
    t = pose.translation()
    r = pose.rotation()
    values = (t.x, t.y, t.z, r.x, r.y, r.z)
    return all(math.isfinite(v) for v in values)


def format_pose(pose: Transform3d) -> str:
    return str(pose)


class PoseEstimator:
    """Tag pose relative to the camera from one detection.

    Each call is independent of the others; the tag size and intrinsics are
    fixed at construction.
    """

    def __init__(
        self,
        geometry: TagGeometryConfig,
        intrinsics: CameraIntrinsics,
        engine: Optional[Any] = None,
    ):
        self.geometry = geometry
        self.intrinsics = intrinsics
        if engine is None:
            engine = robotpy_apriltag.AprilTagPoseEstimator(
                robotpy_apriltag.AprilTagPoseEstimator.Config(
                    geometry.tag_size_m,
                    intrinsics.fx,
                    intrinsics.fy,
                    intrinsics.cx,
                    intrinsics.cy,
                )
            )
        self._engine = engine

    def estimate(self, detection: Detection) -> Transform3d:
        if self.geometry.tag_size_m <= 0:
            raise PoseEstimationError(detection.tag_id, "tag size must be positive")
        try:
            pose = self._engine.estimate(detection.raw)
        except Exception as exc:
            raise PoseEstimationError(detection.tag_id, str(exc)) from exc
        if not _finite(pose):
            raise PoseEstimationError(detection.tag_id, "non-finite transform")
        return pose
