from typing import Optional

import numpy as np
import pytest
from wpimath.geometry import Rotation3d, Transform3d, Translation3d

from apriltag_vision.config import VisionConfig
from apriltag_vision.frame_source import FrameSource
from apriltag_vision.output import MemoryStore, Publisher, VideoSink
from apriltag_vision.vision_types import CaptureResult, Detection, PoseEstimationError
from apriltag_vision.worker import VisionLoop


def make_detection(tag_id: int, center=(320.0, 240.0), half: float = 50.0) -> Detection:
    cx, cy = center
    corners = (
        (cx - half, cy - half),
        (cx + half, cy - half),
        (cx + half, cy + half),
        (cx - half, cy + half),
    )
    return Detection(tag_id, corners, (cx, cy), raw=f"raw-{tag_id}")


def textured_image(height: int = 480, width: int = 640) -> np.ndarray:
    rng = np.random.default_rng(1234)
    return rng.integers(0, 255, size=(height, width, 3), dtype=np.uint8)


class ScriptedSource(FrameSource):
    """Replays a script of images; ``None`` entries are capture failures.

    When the script runs out the attached loop is asked to stop.
    """

    def __init__(self, steps):
        self.steps = list(steps)
        self.loop: Optional[VisionLoop] = None
        self.started = False
        self.stopped = 0
        self.buffers = []

    def start(self) -> None:
        self.started = True

    def acquire(self, into: np.ndarray) -> CaptureResult:
        self.buffers.append(into)
        img = self.steps.pop(0) if self.steps else None
        if not self.steps and self.loop is not None:
            self.loop.stop()
        if img is None:
            return CaptureResult(False, "timed out waiting for frame")
        np.copyto(into, img)
        return CaptureResult(True)

    def stop(self) -> None:
        self.stopped += 1


class FakeDetector:
    def __init__(self, detections=None):
        self.detections = list(detections or [])
        self.inputs = []
        self.closed = 0

    def detect(self, gray):
        self.inputs.append(gray.copy())
        return list(self.detections)

    def close(self):
        self.closed += 1


class FakeEstimator:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def estimate(self, det):
        self.calls.append(det.tag_id)
        if det.tag_id in self.failing:
            raise PoseEstimationError(det.tag_id, "degenerate")
        return Transform3d(Translation3d(0.1 * det.tag_id, 0.0, 1.5), Rotation3d(0.0, 0.0, 0.25))


class RecordingVideoSink(VideoSink):
    def __init__(self):
        self.frames = []
        self.errors = []

    def put_frame(self, frame):
        self.frames.append(frame.copy())

    def notify_error(self, message):
        self.errors.append(message)


@pytest.fixture
def config():
    return VisionConfig(camera_name="testcam")


@pytest.fixture
def video():
    return RecordingVideoSink()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_loop(config, video, store):
    def _make(steps, detections=None, failing=()):
        source = ScriptedSource(steps)
        detector = FakeDetector(detections)
        estimator = FakeEstimator(failing)
        loop = VisionLoop(config, source, detector, estimator, Publisher(video, store))
        source.loop = loop
        return loop

    return _make
