from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .annotate import annotate
from .config import VisionConfig
from .detect import TagDetector, to_gray
from .frame_source import FrameSource
from .logging_utils import setup_logger
from .output import Publisher
from .pose import PoseEstimator
from .vision_types import IterationResult, PoseEstimationError


@dataclass
class LoopSummary:
    iterations: int
    frames_published: int
    capture_errors: int
    pose_errors: int
    avg_fps: float


class VisionLoop:
    """
    Runs capture -> detect -> annotate -> publish on one background thread.

    The frame and gray buffers are allocated once here and overwritten every
    iteration. Cancellation is cooperative: stop() sets an event that is only
    checked at the top of each iteration, so an iteration in flight always
    reaches its publish step.
    """

    def __init__(
        self,
        config: VisionConfig,
        source: FrameSource,
        detector: TagDetector,
        estimator: PoseEstimator,
        publisher: Publisher,
        logger=None,
    ):
        self.config = config
        self.source = source
        self.detector = detector
        self.estimator = estimator
        self.publisher = publisher
        self.logger = logger or setup_logger(config.camera_name, config.log_level, config.log_path)

        self.frame = np.zeros((config.height, config.width, 3), dtype=np.uint8)
        self.gray = np.zeros((config.height, config.width), dtype=np.uint8)
        self.tags: list[int] = []

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self.summary: Optional[LoopSummary] = None

        self.iterations = 0
        self.frames_published = 0
        self.capture_errors = 0
        self.pose_errors = 0

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    def start(self) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError("vision loop already started")
        self._thread = threading.Thread(
            target=self.run, name=f"vision-{self.config.camera_name}", daemon=True
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def step(self) -> IterationResult:
        """Run one iteration. A failed capture skips everything after it."""
        result = self.source.acquire(self.frame)
        if not result.ok:
            self.capture_errors += 1
            self.logger.warning("capture failed: %s", result.error)
            self.publisher.notify_error(result.error)
            return IterationResult(captured=False, error=result.error)

        to_gray(self.frame, self.gray)
        detections = self.detector.detect(self.gray)

        self.tags.clear()
        poses: dict[int, Any] = {}
        for det in detections:
            self.tags.append(det.tag_id)
            annotate(self.frame, det, self.config.style)
            try:
                poses[det.tag_id] = self.estimator.estimate(det)
            except PoseEstimationError as e:
                self.pose_errors += 1
                self.logger.warning("%s", e)

        self.publisher.publish_tag_data(self.tags, poses)
        self.publisher.publish_frame(self.frame)
        self.frames_published += 1

        self.logger.debug("tags=%s poses=%d", self.tags, len(poses))
        return IterationResult(
            captured=True, tag_ids=list(self.tags), poses_published=list(poses)
        )

    def _limits_reached(self, t0: float) -> bool:
        if self.config.max_iterations is not None and self.iterations >= self.config.max_iterations:
            return True
        if self.config.duration_sec and (time.time() - t0) >= self.config.duration_sec:
            return True
        return False

    def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.source.stop()
        except Exception as e:
            self.logger.warning("failed to stop frame source: %s", e)
        try:
            self.detector.close()
        except Exception as e:
            self.logger.warning("failed to release detector: %s", e)

    def run(self) -> LoopSummary:
        self.logger.info("vision loop started: %dx%d", self.config.width, self.config.height)
        t0 = time.time()
        try:
            try:
                self.source.start()
            except Exception:
                self.logger.exception("could not start frame source")
                self._stop_event.set()
            while not self._stop_event.is_set():
                if self._limits_reached(t0):
                    break
                try:
                    self.step()
                except Exception:
                    self.logger.exception("unexpected error in vision iteration")
                self.iterations += 1
        finally:
            self._release()

        avg = self.frames_published / max(1e-6, (time.time() - t0))
        self.summary = LoopSummary(
            self.iterations,
            self.frames_published,
            self.capture_errors,
            self.pose_errors,
            avg,
        )
        self.logger.info(
            "summary iterations=%d frames=%d capture_errors=%d pose_errors=%d avg_fps=%.2f",
            self.iterations,
            self.frames_published,
            self.capture_errors,
            self.pose_errors,
            avg,
        )
        return self.summary
