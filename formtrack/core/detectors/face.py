from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from formtrack.core.geometry import resize
from formtrack.core.image import ImageBuffer, ensure_rgb
from formtrack.core.tensors import InferenceSession, as_session_list, image_tensor, run_chained
from formtrack.core.types import Box, Detection, PreconditionError

logger = logging.getLogger(__name__)

FACE_MEAN = 127.0
FACE_SCALE = 128.0


class FaceDetector:
    """Single-face detector: returns the highest scoring proposal, if any.

    The whole image is stretched to the model input. Expects outputs `boxes`
    shaped `[1, N, 4]` (x1, y1, x2, y2 normalized to the image) and `scores`
    shaped `[1, N, 2]` (background, face).
    """

    def __init__(
        self,
        sessions: InferenceSession | Sequence[InferenceSession],
        input_width: int = 320,
        input_height: int = 240,
    ):
        self.sessions = as_session_list(sessions)
        self.input_width = int(input_width)
        self.input_height = int(input_height)

    def detect(self, image: ImageBuffer | np.ndarray) -> Detection | None:
        resized = resize(ensure_rgb(image), self.input_width, self.input_height)
        chw = (resized.get_data(channels_first=True).astype(np.float32) - FACE_MEAN) / FACE_SCALE
        outputs = run_chained(
            self.sessions, {"input": image_tensor(chw, self.input_height, self.input_width)}
        )

        boxes = outputs.get("boxes")
        scores = outputs.get("scores")
        if boxes is None or scores is None:
            raise PreconditionError(f"Expected 'boxes' and 'scores' outputs, got {sorted(outputs)}")
        if boxes.ndim != 3 or boxes.shape[2] != 4:
            raise PreconditionError(f"Expected boxes dims [1, N, 4] but got {list(boxes.shape)}")
        scores.expect_shape("scores", (boxes.shape[0], boxes.shape[1], 2))
        if boxes.shape[1] == 0:
            return None

        face_scores = scores.to_numpy()[0, :, 1]
        best = int(np.argmax(face_scores))
        score = float(face_scores[best])
        x1, y1, x2, y2 = (float(v) for v in boxes.to_numpy()[0, best])
        logger.debug("Face proposal %s of %s score=%.4f", best, boxes.shape[1], score)
        return Detection(
            label="face",
            box=Box.from_xyxy(x1, y1, x2, y2, confidence=score),
            confidence=score,
        )
