"""One decoded video frame plus the models needed to find objects in it."""

from __future__ import annotations

import logging

import numpy as np

from formtrack.core.detectors.pose import PoseEstimator
from formtrack.core.detectors.yolox import YoloxDetector
from formtrack.core.image import ImageBuffer, ensure_rgb
from formtrack.core.types import Box, FrameObject, Position

logger = logging.getLogger(__name__)

PERSON_MIN_CONFIDENCE = 0.2
# Boxes with a side shorter than this (in pixels) get no keypoints.
MIN_KEYPOINT_SIDE_PX = 20


class Frame:
    def __init__(
        self,
        image: ImageBuffer | np.ndarray,
        timestamp: float,
        detector: YoloxDetector,
        pose_estimator: PoseEstimator | None = None,
    ):
        self.image = ensure_rgb(image)
        self.timestamp = float(timestamp)
        self.detector = detector
        self.pose_estimator = pose_estimator

    def find_objects(self, object_type: str, keypoints: bool = True) -> list[FrameObject]:
        """Find objects of `object_type` in this frame.

        Only people ("person" or "people") are supported. Object ids are
        `person-<index>` in detector order.
        """

        if object_type not in ("person", "people"):
            raise ValueError(f"Unsupported object type: {object_type!r}")

        people = [
            d
            for d in self.detector.detect(self.image)
            if d.label == "person" and d.confidence >= PERSON_MIN_CONFIDENCE
        ]
        logger.debug("Frame %s: %s people", self.timestamp, len(people))

        out: list[FrameObject] = []
        for index, person in enumerate(people):
            person_keypoints = self._find_keypoints(person.box) if keypoints else None
            out.append(
                FrameObject(
                    object_id=f"person-{index}",
                    object_type="person",
                    timestamp=self.timestamp,
                    boundary=person.box,
                    keypoints=person_keypoints,
                )
            )
        return out

    def _find_keypoints(self, box: Box) -> dict[str, Position] | None:
        if self.pose_estimator is None:
            return None
        width = box.width * self.image.width
        height = box.height * self.image.height
        if width < MIN_KEYPOINT_SIDE_PX or height < MIN_KEYPOINT_SIDE_PX:
            return None
        return self.pose_estimator.estimate(self.image, box)
