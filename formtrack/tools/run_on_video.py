from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import cv2

from formtrack.core.config.settings import configure_logging, load_settings, tracker_config_from_settings
from formtrack.core.image import ImageBuffer
from formtrack.core.registry import FrameObjectRegistry
from formtrack.core.tensors import OnnxSession, Tensor
from formtrack.core.trackers.online_tracker import OnlineTracker, TrackerConfig
from formtrack.core.types import Box, FrameObject

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0


class _StaticSession:
    """Predicts the search-crop center at the template's size (no model needed)."""

    def __init__(self, config: TrackerConfig):
        self.side = 1.0 / config.search_factor

    def run(self, inputs):
        return {
            "boxes": Tensor.from_numpy([[0.5, 0.5, self.side, self.side]]),
            "scores": Tensor.from_numpy([[5.0]]),
        }


def _parse_box(text: str) -> Box:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("box must be formatted as x1,y1,x2,y2")
    try:
        x1, y1, x2, y2 = (float(p) for p in parts)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid box {text!r}") from e
    if not (0.0 <= x1 < x2 <= 1.0 and 0.0 <= y1 < y2 <= 1.0):
        raise argparse.ArgumentTypeError("box must be normalized with x1 < x2 and y1 < y2")
    return Box.from_xyxy(x1, y1, x2, y2)


def run(args):
    settings = load_settings()
    configure_logging(args.log_level or settings.log_level)
    config = tracker_config_from_settings(settings)

    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        raise SystemExit(f"Cannot open video {args.input}")
    fps = cap.get(cv2.CAP_PROP_FPS) or DEFAULT_FPS

    if args.mock:
        session = _StaticSession(config)
    else:
        model_path = args.model or settings.model_path
        if not model_path:
            raise SystemExit("--model (or FT_MODEL_PATH) is required unless --mock is set")
        session = OnnxSession.from_path(model_path)
    tracker = OnlineTracker(session, config)

    object_id = f"{args.label}-0"
    registry = FrameObjectRegistry()
    frame_index = 0
    while True:
        ok, frame = cap.read()
        if not ok:
            break
        image = ImageBuffer.from_bgr(frame)
        timestamp = frame_index * 1000.0 / fps
        if frame_index == 0:
            tracker.init(image, args.box, args.label)
            boundary = args.box
        else:
            result = tracker.update(image)
            if not result.is_tracking:
                logger.info("Stopping at frame %s: tracking lost", frame_index)
                break
            boundary = result.detection.box if result.detection is not None else None
        if boundary is not None:
            registry.register_frame_object(
                FrameObject(
                    object_id=object_id,
                    object_type=args.label,
                    timestamp=timestamp,
                    boundary=boundary,
                )
            )
        frame_index += 1
        if args.max_frames and frame_index >= args.max_frames:
            break
    cap.release()

    outputs = [fo.to_dict() for fo in registry.frame_objects(object_id)]
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    print(f"Wrote {len(outputs)} tracked frames ({frame_index} read) to {out_path}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track one object through a video")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--model", default=None, help="ONNX tracker model")
    parser.add_argument(
        "--box", required=True, type=_parse_box, help="Normalized initial box x1,y1,x2,y2"
    )
    parser.add_argument("--label", default="person")
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument("--mock", action="store_true", help="Use a static session (no model)")
    parser.add_argument("--log-level", default=None, help="Overrides FT_LOG_LEVEL")
    return parser


if __name__ == "__main__":
    run(_build_parser().parse_args())
