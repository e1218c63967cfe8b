"""Frame source abstraction for camera input.

Every source fills a caller-owned buffer in place:
- CameraServer USB capture (cscore CvSink)
- Device cameras through OpenCV (V4L2 index or path)
- Synthetic blank frames for dry runs
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from typing import Any

import cv2
import numpy as np
from cscore import CameraServer

from .config import SourceConfig
from .vision_types import CaptureError, CaptureResult


def _copy_into(img: np.ndarray, into: np.ndarray) -> None:
    if img is into:
        return
    if img.ndim == 2 and into.ndim == 3:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape == into.shape:
        np.copyto(into, img)
    else:
        cv2.resize(img, (into.shape[1], into.shape[0]), dst=into)


class FrameSource(ABC):
    """Abstract base class for frame sources."""

    @abstractmethod
    def start(self) -> None:
        """Open the capture. Called once before any acquire() calls."""
        ...

    @abstractmethod
    def acquire(self, into: np.ndarray) -> CaptureResult:
        """Overwrite ``into`` with the next frame.

        A failed capture is reported through the result, never raised; the
        buffer contents are unspecified when ``ok`` is False.
        """
        ...

    @abstractmethod
    def stop(self) -> None:
        """Release capture resources."""
        ...


class CameraServerSource(FrameSource):
    """USB camera served by WPILib's CameraServer, read through a CvSink."""

    def __init__(self, width: int, height: int, device: int | str = 0, timeout: float = 0.225):
        self.width = width
        self.height = height
        self.device = device
        self.timeout = timeout
        self.camera: Any = None
        self.sink: Any = None

    def start(self) -> None:
        if isinstance(self.device, int):
            self.camera = CameraServer.startAutomaticCapture(self.device)
        else:
            self.camera = CameraServer.startAutomaticCapture("usb", str(self.device))
        self.camera.setResolution(self.width, self.height)
        self.sink = CameraServer.getVideo(self.camera)

    def acquire(self, into: np.ndarray) -> CaptureResult:
        if self.sink is None:
            return CaptureResult(False, "camera not started")
        ts, img = self.sink.grabFrame(into, self.timeout)
        if ts == 0:
            return CaptureResult(False, self.sink.getError())
        _copy_into(img, into)
        return CaptureResult(True)

    def stop(self) -> None:
        if self.sink is not None:
            self.sink.setEnabled(False)
            self.sink = None
        self.camera = None


class DeviceCameraSource(FrameSource):
    """USB camera source using OpenCV's V4L2 interface."""

    def __init__(self, device: int | str, fps: int, width: int, height: int):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.cap: Any = None

    def start(self) -> None:
        if isinstance(self.device, int):
            self.cap = cv2.VideoCapture(self.device, cv2.CAP_V4L2)
        else:
            dev_str = str(self.device)
            match = re.match(r"^/dev/video(\d+)$", dev_str)
            if match:
                self.cap = cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
            else:
                self.cap = cv2.VideoCapture(dev_str)

        self.cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.fps)

        if not self.cap.isOpened():
            raise CaptureError(f"Failed to open camera: {self.device}")

    def acquire(self, into: np.ndarray) -> CaptureResult:
        if self.cap is None:
            return CaptureResult(False, "camera not started")
        ok, img = self.cap.read(into)
        if not ok or img is None:
            return CaptureResult(False, f"failed to read frame from {self.device}")
        _copy_into(img, into)
        return CaptureResult(True)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticSource(FrameSource):
    """Blank frames paced at a fixed rate, for dry runs."""

    def __init__(self, fps: int):
        self.fps = fps
        self._last = 0.0

    def start(self) -> None:
        self._last = time.time()

    def acquire(self, into: np.ndarray) -> CaptureResult:
        now = time.time()
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (now - self._last))
            if wait > 0:
                time.sleep(wait)
        self._last = time.time()
        into.fill(0)
        return CaptureResult(True)

    def stop(self) -> None:
        return None


def build_frame_source(cfg: SourceConfig, width: int, height: int) -> FrameSource:
    kind = cfg.type.lower()
    if kind == "cameraserver":
        return CameraServerSource(width, height, cfg.device)
    if kind == "v4l2":
        return DeviceCameraSource(cfg.device, cfg.fps, width, height)
    if kind == "synthetic":
        return SyntheticSource(cfg.fps)
    raise ValueError(f"Unknown source type: {cfg.type}")
