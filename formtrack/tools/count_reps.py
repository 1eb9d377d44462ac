from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from formtrack.core.analytics.movement import reps_by_keypoint_distance
from formtrack.core.config.presets import PRESETS, preset_patch
from formtrack.core.config.settings import configure_logging, load_settings
from formtrack.core.registry import FrameObjectRegistry
from formtrack.core.types import FrameObject

logger = logging.getLogger(__name__)


def _load_registry(path: Path) -> FrameObjectRegistry:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("frame_objects", [])
    return FrameObjectRegistry(FrameObject.from_dict(item) for item in data)


def _rep_options(args, settings) -> dict:
    if args.exercise:
        try:
            preset = preset_patch(args.exercise)
        except KeyError:
            raise SystemExit(
                f"Unknown exercise {args.exercise!r}; choose from {', '.join(PRESETS)}"
            ) from None
    else:
        if not (args.keypoint_a and args.keypoint_b):
            raise SystemExit("Either --exercise or both --keypoint-a and --keypoint-b are required")
        preset = {
            "keypoint_a": args.keypoint_a,
            "keypoint_b": args.keypoint_b,
            "keypoints_contract": not args.expand,
        }

    threshold = preset.get("threshold", settings.rep_threshold)
    smoothing = preset.get("smoothing", settings.rep_smoothing)
    return {
        "keypoint_a": preset["keypoint_a"],
        "keypoint_b": preset["keypoint_b"],
        "keypoints_contract": bool(preset.get("keypoints_contract", True)),
        "threshold": args.threshold if args.threshold is not None else threshold,
        "smoothing": args.smoothing if args.smoothing is not None else smoothing,
        "ignore_start_ms": args.ignore_start_ms,
        "ignore_end_ms": args.ignore_end_ms,
        "trim_threshold": settings.trim_threshold,
    }


def run(args):
    settings = load_settings()
    configure_logging(args.log_level or settings.log_level)

    registry = _load_registry(Path(args.input))
    options = _rep_options(args, settings)
    keypoint_a = options.pop("keypoint_a")
    keypoint_b = options.pop("keypoint_b")

    results = {}
    for object_id in registry.object_ids(args.object_type):
        reps = reps_by_keypoint_distance(
            registry.frame_objects(object_id), keypoint_a, keypoint_b, **options
        )
        logger.info("%s: %s reps", object_id, len(reps))
        results[object_id] = {"count": len(reps), "reps": [rep.to_dict() for rep in reps]}

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(results, f, indent=2)
    total = sum(r["count"] for r in results.values())
    print(f"Wrote {total} reps for {len(results)} objects to {out_path}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Count exercise reps from FrameObject JSON")
    parser.add_argument("--input", required=True, help="JSON list of FrameObjects")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--exercise", default=None, help=f"One of: {', '.join(PRESETS)}")
    parser.add_argument("--keypoint-a", default=None)
    parser.add_argument("--keypoint-b", default=None)
    parser.add_argument(
        "--expand", action="store_true", help="Reps move the keypoints apart (default: together)"
    )
    parser.add_argument("--object-type", default="person")
    parser.add_argument("--threshold", type=float, default=None, help="Overrides FT_REP_THRESHOLD")
    parser.add_argument("--smoothing", type=float, default=None, help="Overrides FT_REP_SMOOTHING")
    parser.add_argument(
        "--ignore-start-ms", type=float, default=None, help="Estimated when omitted"
    )
    parser.add_argument("--ignore-end-ms", type=float, default=None, help="Estimated when omitted")
    parser.add_argument("--log-level", default=None, help="Overrides FT_LOG_LEVEL")
    return parser


if __name__ == "__main__":
    run(_build_parser().parse_args())
