from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from formtrack.core.geometry import center_crop
from formtrack.core.image import ImageBuffer, ensure_rgb, normalize
from formtrack.core.tensors import InferenceSession, as_session_list, image_tensor, run_chained
from formtrack.core.types import POSE_KEYPOINTS, Box, ConfigurationError, PreconditionError, Position

logger = logging.getLogger(__name__)

# Normalized boxes never span more than the image; allow some slack for boxes
# that were padded past the border.
MAX_NORMALIZED_RANGE = 2.0


class PoseEstimator:
    """Top-down keypoint estimator for one person box.

    Expects outputs `keypoints` shaped `[1, 1, K, 2]` (model-input pixels) and
    `scores` shaped `[1, 1, K]`, where K is the number of keypoint names.
    """

    def __init__(
        self,
        sessions: InferenceSession | Sequence[InferenceSession],
        keypoint_names: Sequence[str] = POSE_KEYPOINTS,
        input_width: int = 192,
        input_height: int = 256,
        padding: float = 1.25,
    ):
        self.sessions = as_session_list(sessions)
        self.keypoint_names = list(keypoint_names)
        self.input_width = int(input_width)
        self.input_height = int(input_height)
        self.padding = float(padding)

    def estimate(self, image: ImageBuffer | np.ndarray, box: Box) -> dict[str, Position]:
        """Return normalized keypoint positions for the person inside `box`.

        Raises:
            ConfigurationError: If `box` is not in normalized coordinates.
            PreconditionError: If the model outputs have unexpected shapes.
        """

        rgb = ensure_rgb(image)
        x1, y1, x2, y2 = box.to_xyxy()
        if x2 - x1 > MAX_NORMALIZED_RANGE or y2 - y1 > MAX_NORMALIZED_RANGE:
            raise ConfigurationError("Bounding box is not normalized")

        cropped = center_crop(
            rgb,
            (x1 * rgb.width, y1 * rgb.height, x2 * rgb.width, y2 * rgb.height),
            self.input_width,
            self.input_height,
            padding=self.padding,
        )
        normalized = normalize(cropped.image)
        inputs = {
            "input": image_tensor(
                normalized.get_data(channels_first=True), self.input_height, self.input_width
            )
        }
        outputs = run_chained(self.sessions, inputs)

        k = len(self.keypoint_names)
        keypoints = outputs.get("keypoints")
        scores = outputs.get("scores")
        if keypoints is None or scores is None:
            raise PreconditionError(f"Expected 'keypoints' and 'scores' outputs, got {sorted(outputs)}")
        keypoints.expect_shape("keypoints", (1, 1, k, 2))
        scores.expect_shape("scores", (1, 1, k))

        out: dict[str, Position] = {}
        for i, name in enumerate(self.keypoint_names):
            x, y = cropped.transform.invert((keypoints.at(0, 0, i, 0), keypoints.at(0, 0, i, 1)))
            out[name] = Position(x, y, float(scores.at(0, 0, i)))
        return out
