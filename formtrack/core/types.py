"""Shared type definitions used across formtrack.

This module centralizes small, stable types (positions, boxes, per-frame object
snapshots, detections) and the error taxonomy so geometry/tracker/analytics code
can stay strongly typed.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

BBox = tuple[float, float, float, float]
Point = tuple[float, float]


class ConfigurationError(ValueError):
    """Degenerate geometry or invalid image/crop configuration."""


class PreconditionError(ValueError):
    """Caller misuse: malformed tensors, null frames, missing keypoints."""


class TrackingError(RuntimeError):
    """`update()` called before `init()`."""


class Keypoint(str, Enum):
    """Named anatomical landmarks, in model output order."""

    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"
    LEFT_HEEL = "left_heel"
    RIGHT_HEEL = "right_heel"
    LEFT_TOE = "left_toe"
    RIGHT_TOE = "right_toe"


ALL_KEYPOINTS: tuple[str, ...] = tuple(k.value for k in Keypoint)
# COCO-17 subset produced by the pose estimator.
POSE_KEYPOINTS: tuple[str, ...] = ALL_KEYPOINTS[:17]


class ObjectFacing(str, Enum):
    """The way an object is facing, relative to the camera."""

    LEFT = "left"
    RIGHT = "right"
    TOWARD = "toward"
    AWAY = "away"
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")


def keypoint_name(keypoint: str | Keypoint) -> str:
    """Return the snake_case name for a keypoint given as enum, snake or lowerCamel."""

    if isinstance(keypoint, Keypoint):
        return keypoint.value
    return _CAMEL_BOUNDARY.sub(r"\1_\2", str(keypoint)).lower()


@dataclass(frozen=True)
class Position:
    """Two-dimensional location, normalized to [0, 1] unless stated otherwise."""

    x: float
    y: float
    confidence: float = 1.0

    def interpolate(self, other: Position, factor: float) -> Position:
        """Interpolate towards `other`; confidence is the mean of both points."""

        return Position(
            self.x + (other.x - self.x) * factor,
            self.y + (other.y - self.y) * factor,
            (self.confidence + other.confidence) / 2.0,
        )

    def to_image_coords(self, width: int, height: int) -> tuple[int, int]:
        """Return integer pixel coordinates for an image of the given size."""

        return math.floor(self.x * width), math.floor(self.y * height)

    def is_valid(self) -> bool:
        return not (math.isnan(self.x) or math.isnan(self.y))


@dataclass(frozen=True)
class Box:
    """Axis-aligned box; callers keep top_left <= bottom_right through transforms."""

    top_left: Position
    bottom_right: Position

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float, confidence: float = 1.0) -> Box:
        return cls(Position(x1, y1, confidence), Position(x2, y2, confidence))

    def to_xyxy(self) -> BBox:
        return (self.top_left.x, self.top_left.y, self.bottom_right.x, self.bottom_right.y)

    @property
    def width(self) -> float:
        return self.bottom_right.x - self.top_left.x

    @property
    def height(self) -> float:
        return self.bottom_right.y - self.top_left.y

    def interpolate(self, other: Box, factor: float) -> Box:
        return Box(
            self.top_left.interpolate(other.top_left, factor),
            self.bottom_right.interpolate(other.bottom_right, factor),
        )


@dataclass(frozen=True)
class Detection:
    """Detector/tracker output with a normalized box."""

    label: str
    box: Box
    confidence: float


@dataclass(frozen=True)
class FrameObject:
    """Immutable snapshot of one object within one frame."""

    object_id: str
    object_type: str
    timestamp: float
    boundary: Box
    keypoints: dict[str, Position] | None = field(default=None, hash=False)

    def keypoint_location(self, keypoint: str | Keypoint) -> Position | None:
        """Return the location of a keypoint, or None if unknown for this frame."""

        if not self.keypoints:
            return None
        return self.keypoints.get(keypoint_name(keypoint))

    def interpolate_with_next_frame(self, next_frame: FrameObject, at: float) -> FrameObject:
        """Interpolate boundary and shared keypoints to timestamp `at`.

        Keypoints present only in this frame are carried through unchanged.
        """

        span = next_frame.timestamp - self.timestamp
        factor = (at - self.timestamp) / span if span else 0.0

        keypoints: dict[str, Position] = {}
        other_keypoints = next_frame.keypoints or {}
        for name, location in (self.keypoints or {}).items():
            other = other_keypoints.get(name)
            keypoints[name] = location.interpolate(other, factor) if other is not None else location

        return FrameObject(
            object_id=self.object_id,
            object_type=self.object_type,
            timestamp=at,
            boundary=self.boundary.interpolate(next_frame.boundary, factor),
            keypoints=keypoints,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dict."""

        def _pos(p: Position) -> dict[str, float]:
            return {"x": float(p.x), "y": float(p.y), "confidence": float(p.confidence)}

        return {
            "object_id": self.object_id,
            "object_type": self.object_type,
            "timestamp": float(self.timestamp),
            "boundary": {
                "top_left": _pos(self.boundary.top_left),
                "bottom_right": _pos(self.boundary.bottom_right),
            },
            "keypoints": (
                {name: _pos(p) for name, p in self.keypoints.items()}
                if self.keypoints is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FrameObject:
        def _pos(d: dict[str, Any]) -> Position:
            return Position(float(d["x"]), float(d["y"]), float(d.get("confidence", 1.0)))

        raw_keypoints = data.get("keypoints")
        return cls(
            object_id=str(data["object_id"]),
            object_type=str(data["object_type"]),
            timestamp=float(data["timestamp"]),
            boundary=Box(
                _pos(data["boundary"]["top_left"]),
                _pos(data["boundary"]["bottom_right"]),
            ),
            keypoints=(
                {keypoint_name(name): _pos(p) for name, p in raw_keypoints.items()}
                if raw_keypoints is not None
                else None
            ),
        )
