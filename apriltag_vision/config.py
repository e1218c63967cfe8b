from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

from .logging_utils import parse_level


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics in pixels.

    Defaults are for a Microsoft LifeCam HD-3000 at 640x480.
    """

    fx: float = 699.3778103158814
    fy: float = 677.7161226393544
    cx: float = 345.6059345433618
    cy: float = 207.12741326228522


@dataclass(frozen=True)
class TagGeometryConfig:
    family: str = "tag16h5"
    bits_corrected: int = 0
    tag_size_m: float = 0.1524
    min_decision_margin: float = 0.0


@dataclass(frozen=True)
class AnnotationStyle:
    # OpenCV channel order (BGR)
    outline_color: tuple[int, int, int] = (0, 255, 0)
    cross_color: tuple[int, int, int] = (0, 0, 255)
    cross_half_length: int = 10
    line_thickness: int = 2
    font_scale: float = 1.0
    text_thickness: int = 3


@dataclass
class SourceConfig:
    """Configuration for the frame source."""

    type: str = "cameraserver"  # "cameraserver", "v4l2", "synthetic"
    device: int | str = 0
    fps: int = 30


@dataclass
class TelemetryConfig:
    table: str = "SmartDashboard"
    nt_mode: str = "client"  # "client", "server", "none"
    team: int = 0
    client_name: str = "apriltag_vision"
    stream_name: str = "Detected"


@dataclass
class VisionConfig:
    camera_name: str = "cam"
    width: int = 640
    height: int = 480
    intrinsics: CameraIntrinsics = field(default_factory=CameraIntrinsics)
    tag: TagGeometryConfig = field(default_factory=TagGeometryConfig)
    style: AnnotationStyle = field(default_factory=AnnotationStyle)
    source: SourceConfig = field(default_factory=SourceConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    dry_run: bool = False
    save_dir: Optional[str] = None
    save_every: int = 1
    log_path: Optional[str] = None
    log_level: str = "INFO"
    max_iterations: Optional[int] = None
    duration_sec: Optional[float] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "VisionConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _color(value: Any, default: tuple[int, int, int]) -> tuple[int, int, int]:
    if value is None:
        return default
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise ValueError(f"color must be a 3-element list, got {value!r}")
    return tuple(int(v) for v in value)  # type: ignore[return-value]


def _read_raw(p: Path) -> Any:
    if p.suffix.lower() not in {".yaml", ".yml"}:
        with p.open("r", encoding="utf-8") as fp:
            return json.load(fp)
    try:
        import yaml  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            f"cannot read vision config {p.name}: YAML support needs the "
            "'yaml' extra (pip install apriltag-vision[yaml])"
        ) from exc
    with p.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or {}


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be a mapping")
    return value


def load_config(path: str | Path) -> VisionConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    raw = _read_raw(p)
    if not isinstance(raw, dict):
        raise ValueError(f"vision config {p.name} must hold a mapping at the top level")

    cfg = VisionConfig()
    cfg.camera_name = str(raw.get("camera_name", cfg.camera_name))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.save_dir = raw.get("save_dir", cfg.save_dir)
    cfg.save_every = int(raw.get("save_every", cfg.save_every))
    cfg.log_path = raw.get("log_path", cfg.log_path)
    cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()
    parse_level(cfg.log_level)
    cfg.max_iterations = raw.get("max_iterations", cfg.max_iterations)
    if cfg.max_iterations is not None:
        cfg.max_iterations = int(cfg.max_iterations)
    cfg.duration_sec = raw.get("duration_sec", cfg.duration_sec)
    if cfg.duration_sec is not None:
        cfg.duration_sec = float(cfg.duration_sec)

    intr = _section(raw, "intrinsics")
    d = CameraIntrinsics()
    cfg.intrinsics = CameraIntrinsics(
        fx=float(intr.get("fx", d.fx)),
        fy=float(intr.get("fy", d.fy)),
        cx=float(intr.get("cx", d.cx)),
        cy=float(intr.get("cy", d.cy)),
    )

    tag = _section(raw, "tag")
    t = TagGeometryConfig()
    cfg.tag = TagGeometryConfig(
        family=str(tag.get("family", t.family)),
        bits_corrected=int(tag.get("bits_corrected", t.bits_corrected)),
        tag_size_m=float(tag.get("tag_size_m", t.tag_size_m)),
        min_decision_margin=float(tag.get("min_decision_margin", t.min_decision_margin)),
    )

    style = _section(raw, "style")
    s = AnnotationStyle()
    cfg.style = AnnotationStyle(
        outline_color=_color(style.get("outline_color"), s.outline_color),
        cross_color=_color(style.get("cross_color"), s.cross_color),
        cross_half_length=int(style.get("cross_half_length", s.cross_half_length)),
        line_thickness=int(style.get("line_thickness", s.line_thickness)),
        font_scale=float(style.get("font_scale", s.font_scale)),
        text_thickness=int(style.get("text_thickness", s.text_thickness)),
    )

    src = _section(raw, "source")
    src_cfg = SourceConfig()
    src_cfg.type = str(src.get("type", src_cfg.type))
    src_cfg.device = src.get("device", src_cfg.device)
    src_cfg.fps = int(src.get("fps", src_cfg.fps))
    cfg.source = src_cfg

    tel = _section(raw, "telemetry")
    tel_cfg = TelemetryConfig()
    tel_cfg.table = str(tel.get("table", tel_cfg.table))
    tel_cfg.nt_mode = str(tel.get("nt_mode", tel_cfg.nt_mode)).lower()
    if tel_cfg.nt_mode not in {"client", "server", "none"}:
        raise ValueError(f"could not understand nt_mode value '{tel_cfg.nt_mode}'")
    tel_cfg.team = int(tel.get("team", tel_cfg.team))
    tel_cfg.client_name = str(tel.get("client_name", tel_cfg.client_name))
    tel_cfg.stream_name = str(tel.get("stream_name", tel_cfg.stream_name))
    cfg.telemetry = tel_cfg

    return cfg
