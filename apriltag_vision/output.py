from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

import cv2
import numpy as np
from cscore import CameraServer
from ntcore import NetworkTableInstance

from .config import TelemetryConfig
from .pose import format_pose

TAGS_KEY = "tags"
POSE_KEY_PREFIX = "pose_"


class VideoSink(ABC):
    @abstractmethod
    def put_frame(self, frame: np.ndarray) -> None: ...

    @abstractmethod
    def notify_error(self, message: str) -> None: ...


class CameraServerVideoSink(VideoSink):
    """Streams frames to the dashboard through a CameraServer CvSource."""

    def __init__(self, name: str, width: int, height: int):
        self.name = name
        self._source = CameraServer.putVideo(name, width, height)

    def put_frame(self, frame: np.ndarray) -> None:
        self._source.putFrame(frame)

    def notify_error(self, message: str) -> None:
        self._source.notifyError(message)


class FileVideoSink(VideoSink):
    """Writes every ``every``-th published frame as a JPEG."""

    def __init__(self, out_dir: str | Path, every: int = 1, logger: Optional[logging.Logger] = None):
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.every = max(1, int(every))
        self.log = logger or logging.getLogger(__name__)
        self.idx = 0
        self.last_path: Optional[str] = None

    def put_frame(self, frame: np.ndarray) -> None:
        self.idx += 1
        if (self.idx - 1) % self.every:
            return
        p = self.out_dir / f"f{self.idx:06d}_tags.jpg"
        if cv2.imwrite(str(p), frame):
            self.last_path = str(p)
        else:
            self.log.warning("failed to write %s", p)

    def notify_error(self, message: str) -> None:
        self.log.warning("capture error: %s", message)


class NullVideoSink(VideoSink):
    def put_frame(self, frame: np.ndarray) -> None:
        return None

    def notify_error(self, message: str) -> None:
        return None


class TelemetryStore(ABC):
    @abstractmethod
    def put_string(self, key: str, value: str) -> None: ...


class NetworkTablesStore(TelemetryStore):
    def __init__(self, table: str = "SmartDashboard", instance: Any = None):
        self.instance = instance or NetworkTableInstance.getDefault()
        self.table = self.instance.getTable(table)

    def put_string(self, key: str, value: str) -> None:
        self.table.putString(key, value)


class MemoryStore(TelemetryStore):
    """Dict-backed store for dry runs and tests."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.writes = 0

    def put_string(self, key: str, value: str) -> None:
        self.values[key] = value
        self.writes += 1

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)


def start_networktables(cfg: TelemetryConfig, instance: Any = None) -> Any:
    inst = instance or NetworkTableInstance.getDefault()
    if cfg.nt_mode == "server":
        inst.startServer()
    elif cfg.nt_mode == "client":
        inst.startClient4(cfg.client_name)
        inst.setServerTeam(cfg.team)
        inst.startDSClient()
    return inst


class Publisher:
    """Pushes annotated frames to a video sink and tag results to telemetry.

    Pose keys for tags that drop out of view are left in place.
    """

    def __init__(self, video: VideoSink, telemetry: TelemetryStore):
        self.video = video
        self.telemetry = telemetry

    def publish_frame(self, frame: np.ndarray) -> None:
        self.video.put_frame(frame)

    def publish_tag_data(self, tag_ids: Iterable[int], poses: Mapping[int, Any]) -> None:
        for tag_id, pose in poses.items():
            self.telemetry.put_string(f"{POSE_KEY_PREFIX}{tag_id}", format_pose(pose))
        self.telemetry.put_string(TAGS_KEY, str([int(t) for t in tag_ids]))

    def notify_error(self, message: str) -> None:
        self.video.notify_error(message)
