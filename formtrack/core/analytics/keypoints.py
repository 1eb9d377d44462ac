from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from formtrack.core.analytics.signals import indices_at_or_below, moving_average, percentile_cutoff
from formtrack.core.types import FrameObject, Keypoint, Point, Position

logger = logging.getLogger(__name__)

TRIM_SMOOTHING_WINDOW = 4


def average_keypoint_location(
    frames: Sequence[FrameObject], keypoint: str | Keypoint
) -> Position | None:
    """Mean location (and confidence) of `keypoint` over frames where it is known."""

    sum_x = sum_y = sum_conf = 0.0
    n = 0
    for frame in frames:
        location = frame.keypoint_location(keypoint)
        if location is None or not location.is_valid():
            continue
        sum_x += location.x
        sum_y += location.y
        sum_conf += location.confidence
        n += 1
    if n == 0:
        return None
    return Position(sum_x / n, sum_y / n, sum_conf / n)


def average_keypoint_locations(
    frames: Sequence[FrameObject], start: int = 0, end: int | None = None
) -> dict[str, Point]:
    """Mean (x, y) per keypoint name over `frames[start:end]`.

    Only frames that carry a keypoint count towards its mean; names never seen
    in the range are left out.
    """

    sums: dict[str, list[float]] = {}
    for frame in frames[start:end]:
        for name, location in (frame.keypoints or {}).items():
            if not location.is_valid():
                continue
            acc = sums.setdefault(name, [0.0, 0.0, 0.0])
            acc[0] += location.x
            acc[1] += location.y
            acc[2] += 1
    return {name: (sx / n, sy / n) for name, (sx, sy, n) in sums.items()}


def _displacement_from(frame: FrameObject, reference: dict[str, Point]) -> float:
    total = 0.0
    for name, location in (frame.keypoints or {}).items():
        ref = reference.get(name)
        if ref is None or not location.is_valid():
            continue
        total += math.hypot(location.x - ref[0], location.y - ref[1])
    return total


def estimate_start_and_end_trim(
    frames: Sequence[FrameObject], threshold: float = 0.75
) -> tuple[float, float]:
    """Estimate how many ms to ignore at the start and end of a recording.

    The middle third of the recording is taken as the reference pose. Frames
    whose smoothed total keypoint displacement from that pose is at or below
    the `threshold` percentile are "stable"; the first and last stable frames
    bound the movement. Returns `(start_ms, end_ms)`, measured from the first
    and last timestamps respectively, or `(0, 0)` when no reliable estimate
    can be made.
    """

    n = len(frames)
    if n == 0:
        return 0.0, 0.0

    reference = average_keypoint_locations(frames, n // 3, (2 * n) // 3)
    running_diff = [_displacement_from(frame, reference) for frame in frames]
    cutoff = percentile_cutoff(running_diff, threshold)
    sliding_diff = moving_average(running_diff, TRIM_SMOOTHING_WINDOW)

    stable = indices_at_or_below(sliding_diff, cutoff)
    if len(stable) < 2:
        logger.debug("Trim estimate fell back: only %s stable frames", len(stable))
        return 0.0, 0.0

    start, end = stable[0], stable[-1]
    if start > n // 3 or end < (2 * n) // 3:
        logger.debug("Trim estimate fell back: stable range %s..%s of %s frames", start, end, n)
        return 0.0, 0.0

    return (
        frames[start].timestamp - frames[0].timestamp,
        frames[-1].timestamp - frames[end].timestamp,
    )
