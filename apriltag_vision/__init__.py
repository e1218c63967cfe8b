"""AprilTag detection loop that publishes annotated video and tag poses."""

from .config import VisionConfig
from .worker import VisionLoop

__all__ = ["VisionConfig", "VisionLoop"]
