from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from apriltag_vision import frame_source as fs_mod
from apriltag_vision.config import SourceConfig
from apriltag_vision.frame_source import (
    CameraServerSource,
    DeviceCameraSource,
    SyntheticSource,
    build_frame_source,
)
from apriltag_vision.vision_types import CaptureError


@patch("apriltag_vision.frame_source.cv2.VideoCapture")
def test_device_source_reads_into_buffer(mock_cap_class):
    """The device source configures the camera and fills the caller's buffer."""
    img = np.full((480, 640, 3), 7, dtype=np.uint8)
    mock_cap = MagicMock()
    mock_cap.isOpened.return_value = True
    mock_cap.read.return_value = (True, img)
    mock_cap_class.return_value = mock_cap
    buf = np.zeros((480, 640, 3), dtype=np.uint8)

    src = DeviceCameraSource(1, 30, 640, 480)
    src.start()
    result = src.acquire(buf)
    src.stop()

    mock_cap_class.assert_called_once_with(1, fs_mod.cv2.CAP_V4L2)
    mock_cap.set.assert_any_call(fs_mod.cv2.CAP_PROP_FRAME_WIDTH, 640)
    mock_cap.set.assert_any_call(fs_mod.cv2.CAP_PROP_FRAME_HEIGHT, 480)
    assert result.ok
    assert (buf == 7).all()
    mock_cap.release.assert_called_once()


@patch("apriltag_vision.frame_source.cv2.VideoCapture")
def test_device_source_read_failure_is_a_result(mock_cap_class):
    mock_cap = MagicMock()
    mock_cap.isOpened.return_value = True
    mock_cap.read.return_value = (False, None)
    mock_cap_class.return_value = mock_cap

    src = DeviceCameraSource("/dev/video2", 30, 640, 480)
    src.start()
    result = src.acquire(np.zeros((480, 640, 3), dtype=np.uint8))

    mock_cap_class.assert_called_once_with(2, fs_mod.cv2.CAP_V4L2)
    assert not result.ok
    assert "/dev/video2" in result.error


@patch("apriltag_vision.frame_source.cv2.VideoCapture")
def test_device_source_open_failure_raises(mock_cap_class):
    mock_cap_class.return_value.isOpened.return_value = False
    with pytest.raises(CaptureError):
        DeviceCameraSource(0, 30, 640, 480).start()


@patch("apriltag_vision.frame_source.cv2.VideoCapture")
def test_device_source_resizes_mismatched_frames(mock_cap_class):
    mock_cap = MagicMock()
    mock_cap.isOpened.return_value = True
    mock_cap.read.return_value = (True, np.full((240, 320, 3), 9, dtype=np.uint8))
    mock_cap_class.return_value = mock_cap
    buf = np.zeros((480, 640, 3), dtype=np.uint8)

    src = DeviceCameraSource(0, 30, 640, 480)
    src.start()
    assert src.acquire(buf).ok
    assert buf.shape == (480, 640, 3)
    assert (buf == 9).all()


def test_camera_server_source_grab_and_error():
    buf = np.zeros((480, 640, 3), dtype=np.uint8)
    sink = MagicMock()
    sink.grabFrame.side_effect = [(0, buf), (12345, buf)]
    sink.getError.return_value = "timed out getting frame"

    with patch("apriltag_vision.frame_source.CameraServer") as mock_cs:
        mock_cs.getVideo.return_value = sink
        src = CameraServerSource(640, 480)
        src.start()
        failed = src.acquire(buf)
        ok = src.acquire(buf)
        src.stop()

    mock_cs.startAutomaticCapture.return_value.setResolution.assert_called_once_with(640, 480)
    assert not failed.ok
    assert failed.error == "timed out getting frame"
    assert ok.ok
    sink.setEnabled.assert_called_once_with(False)


def test_acquire_before_start_fails_softly():
    buf = np.zeros((4, 4, 3), dtype=np.uint8)
    assert not CameraServerSource(4, 4).acquire(buf).ok
    assert not DeviceCameraSource(0, 30, 4, 4).acquire(buf).ok


def test_synthetic_source_blanks_buffer():
    buf = np.full((4, 4, 3), 200, dtype=np.uint8)
    src = SyntheticSource(fps=0)
    src.start()
    assert src.acquire(buf).ok
    assert not buf.any()


def test_build_frame_source_selects_type():
    assert isinstance(build_frame_source(SourceConfig(type="cameraserver"), 640, 480), CameraServerSource)
    assert isinstance(build_frame_source(SourceConfig(type="v4l2"), 640, 480), DeviceCameraSource)
    assert isinstance(build_frame_source(SourceConfig(type="synthetic"), 640, 480), SyntheticSource)
    with pytest.raises(ValueError):
        build_frame_source(SourceConfig(type="rtsp"), 640, 480)


def test_camera_server_source_resizes_into_owned_buffer():
    buf = np.zeros((480, 640, 3), dtype=np.uint8)
    sink = MagicMock()
    sink.grabFrame.return_value = (777, np.full((240, 320, 3), 5, dtype=np.uint8))

    with patch("apriltag_vision.frame_source.CameraServer") as mock_cs:
        mock_cs.getVideo.return_value = sink
        src = CameraServerSource(640, 480)
        src.start()
        result = src.acquire(buf)

    assert result.ok
    assert buf.shape == (480, 640, 3)
    assert (buf == 5).all()
