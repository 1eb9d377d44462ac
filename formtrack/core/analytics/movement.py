"""Human-movement analysis over a person's FrameObjects."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from formtrack.core.analytics.keypoints import average_keypoint_location, estimate_start_and_end_trim
from formtrack.core.analytics.signals import signals
from formtrack.core.types import FrameObject, Keypoint, ObjectFacing, PreconditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rep:
    start_frame: FrameObject
    middle_frame: FrameObject
    end_frame: FrameObject

    def to_dict(self) -> dict[str, float]:
        return {
            "start_ms": self.start_frame.timestamp,
            "middle_ms": self.middle_frame.timestamp,
            "end_ms": self.end_frame.timestamp,
        }


def reps_by_keypoint_distance(
    frames: Sequence[FrameObject | None],
    keypoint_a: str | Keypoint,
    keypoint_b: str | Keypoint,
    *,
    keypoints_contract: bool = True,
    threshold: float = 0.2,
    smoothing: float = 2.0,
    ignore_start_ms: float | None = None,
    ignore_end_ms: float | None = None,
    trim_threshold: float = 0.75,
) -> list[Rep]:
    """Segment reps from the vertical distance between two keypoints.

    For a squat, the hip-to-ankle distance shrinks on every rep, so reps are the
    valleys of that series (`keypoints_contract=True`). Set it to False for
    movements where the keypoints move apart.

    Args:
        frames: One person's FrameObjects in timestamp order.
        keypoint_a: First keypoint.
        keypoint_b: Second keypoint.
        keypoints_contract: True if a rep brings the keypoints closer together.
        threshold: Minimum prominence of a rep in normalized units.
        smoothing: Gaussian sigma applied before segmentation.
        ignore_start_ms: Milliseconds to skip after the first frame; estimated
            when None.
        ignore_end_ms: Milliseconds to skip before the last frame; estimated
            when None.
        trim_threshold: Stability percentile used when estimating trims.

    Raises:
        PreconditionError: If `frames` contains None.
    """

    for frame in frames:
        if frame is None:
            raise PreconditionError(
                "Encountered a null FrameObject. Ensure 'frames' does not contain None."
            )
    if not frames:
        return []

    if ignore_start_ms is None or ignore_end_ms is None:
        estimated_start, estimated_end = estimate_start_and_end_trim(frames, trim_threshold)
        if ignore_start_ms is None:
            ignore_start_ms = estimated_start
        if ignore_end_ms is None:
            ignore_end_ms = estimated_end

    first_ts = min(frame.timestamp for frame in frames)
    last_ts = max(frame.timestamp for frame in frames)
    start = first_ts + ignore_start_ms
    end = max(last_ts - ignore_end_ms, start + 1)

    contributing: list[FrameObject] = []
    distances: list[float] = []
    for frame in frames:
        if not start <= frame.timestamp <= end:
            continue
        a = frame.keypoint_location(keypoint_a)
        b = frame.keypoint_location(keypoint_b)
        if a is None or b is None:
            continue
        contributing.append(frame)
        distances.append(abs(a.y - b.y))

    logger.debug(
        "Rep window %s..%s ms: %s of %s frames contribute", start, end, len(contributing), len(frames)
    )

    found = signals(distances, not keypoints_contract, threshold, smoothing)
    return [
        Rep(
            start_frame=contributing[s.start],
            middle_frame=contributing[s.middle],
            end_frame=contributing[s.end],
        )
        for s in found
    ]


def angle_between_keypoints(
    frame: FrameObject, keypoint_a: str | Keypoint, keypoint_b: str | Keypoint
) -> float:
    """Angle in degrees of the slope from `keypoint_a` to `keypoint_b`, in (-90, 90]."""

    a = frame.keypoint_location(keypoint_a)
    b = frame.keypoint_location(keypoint_b)
    if a is None or b is None:
        raise PreconditionError(f"Frame is missing keypoint {keypoint_a if a is None else keypoint_b}")
    dx = b.x - a.x
    dy = b.y - a.y
    if dx == 0:
        return math.copysign(90.0, dy)
    return math.degrees(math.atan(dy / dx))


def person_mostly_standing(frames: Sequence[FrameObject]) -> bool:
    """True unless shoulders, hips and knees line up horizontally (lying down)."""

    names = (
        Keypoint.LEFT_SHOULDER,
        Keypoint.RIGHT_SHOULDER,
        Keypoint.LEFT_HIP,
        Keypoint.RIGHT_HIP,
        Keypoint.LEFT_KNEE,
        Keypoint.RIGHT_KNEE,
    )
    avg = {name: average_keypoint_location(frames, name) for name in names}
    if any(p is None for p in avg.values()):
        return True

    ls, rs = avg[Keypoint.LEFT_SHOULDER].x, avg[Keypoint.RIGHT_SHOULDER].x
    lh, rh = avg[Keypoint.LEFT_HIP].x, avg[Keypoint.RIGHT_HIP].x
    lk, rk = avg[Keypoint.LEFT_KNEE].x, avg[Keypoint.RIGHT_KNEE].x

    horizontal = (ls > lh and rs > rh and lh > lk and rh > rk) or (
        ls < lh and rs < rh and lh < lk and rh < rk
    )
    return not horizontal


def person_mostly_facing(frames: Sequence[FrameObject]) -> ObjectFacing:
    if person_mostly_standing(frames):
        nose = average_keypoint_location(frames, Keypoint.NOSE)
        left_hip = average_keypoint_location(frames, Keypoint.LEFT_HIP)
        right_hip = average_keypoint_location(frames, Keypoint.RIGHT_HIP)
        if nose is None or left_hip is None or right_hip is None:
            return ObjectFacing.UNKNOWN
        if nose.x < left_hip.x and nose.x < right_hip.x:
            return ObjectFacing.LEFT
        if nose.x > left_hip.x and nose.x > right_hip.x:
            return ObjectFacing.RIGHT
        if right_hip.x < nose.x < left_hip.x:
            return ObjectFacing.TOWARD
        return ObjectFacing.UNKNOWN

    left_shoulder = average_keypoint_location(frames, Keypoint.LEFT_SHOULDER)
    right_shoulder = average_keypoint_location(frames, Keypoint.RIGHT_SHOULDER)
    left_wrist = average_keypoint_location(frames, Keypoint.LEFT_WRIST)
    right_wrist = average_keypoint_location(frames, Keypoint.RIGHT_WRIST)
    if any(p is None for p in (left_shoulder, right_shoulder, left_wrist, right_wrist)):
        return ObjectFacing.UNKNOWN
    if left_shoulder.y < left_wrist.y and right_shoulder.y < right_wrist.y:
        return ObjectFacing.DOWN
    if left_shoulder.y > left_wrist.y and right_shoulder.y > right_wrist.y:
        return ObjectFacing.UP
    return ObjectFacing.UNKNOWN
