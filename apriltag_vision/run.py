import argparse
import signal
import sys
from typing import Optional

from .config import VisionConfig, load_config
from .detect import TagDetector
from .frame_source import SyntheticSource, build_frame_source
from .logging_utils import setup_logger
from .output import (
    CameraServerVideoSink,
    FileVideoSink,
    MemoryStore,
    NetworkTablesStore,
    NullVideoSink,
    Publisher,
    start_networktables,
)
from .pose import PoseEstimator
from .worker import VisionLoop


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Run the AprilTag vision loop")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--camera-name")
    ap.add_argument("--width", type=int)
    ap.add_argument("--height", type=int)
    ap.add_argument("--save-dir")
    ap.add_argument("--save-every", type=int)
    ap.add_argument("--log-path")
    ap.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    ap.add_argument("--max-iterations", type=int)
    ap.add_argument("--duration", type=float)
    ap.add_argument("--dry-run", action="store_true")

    return ap


def _apply_args(cfg: VisionConfig, args: argparse.Namespace) -> VisionConfig:
    cfg.apply_overrides(
        camera_name=args.camera_name,
        width=args.width,
        height=args.height,
        save_dir=args.save_dir,
        save_every=args.save_every,
        log_path=args.log_path,
        log_level=args.log_level,
        max_iterations=args.max_iterations,
        duration_sec=args.duration,
        dry_run=args.dry_run if args.dry_run else None,
    )
    return cfg


def build_loop(cfg: VisionConfig, logger=None) -> VisionLoop:
    logger = logger or setup_logger(cfg.camera_name, cfg.log_level, cfg.log_path)

    if cfg.dry_run:
        source = SyntheticSource(cfg.source.fps)
        telemetry = MemoryStore()
    else:
        source = build_frame_source(cfg.source, cfg.width, cfg.height)
        instance = None
        if cfg.telemetry.nt_mode != "none":
            instance = start_networktables(cfg.telemetry)
        telemetry = NetworkTablesStore(cfg.telemetry.table, instance)

    if cfg.save_dir:
        video = FileVideoSink(cfg.save_dir, cfg.save_every, logger)
    elif cfg.dry_run:
        video = NullVideoSink()
    else:
        video = CameraServerVideoSink(cfg.telemetry.stream_name, cfg.width, cfg.height)

    detector = TagDetector(cfg.tag.family, cfg.tag.bits_corrected, cfg.tag.min_decision_margin)
    estimator = PoseEstimator(cfg.tag, cfg.intrinsics)

    logger.info("config: %s", cfg.as_dict())
    return VisionLoop(cfg, source, detector, estimator, Publisher(video, telemetry), logger)


def main(argv: Optional[list[str]] = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else VisionConfig()
    cfg = _apply_args(cfg, args)

    loop = build_loop(cfg)

    def _handle_signal(_sig, _frame):
        loop.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    loop.start()
    while not loop.join(0.5):
        pass
    print(loop.summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
