"""YOLOX detector over an injected inference session.

The model may be a single ONNX graph or a (backbone, head) pair; in the latter
case the backbone outputs are fed to the head as-is.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from formtrack.core.geometry import center_crop
from formtrack.core.image import ImageBuffer, ensure_rgb
from formtrack.core.tensors import InferenceSession, as_session_list, image_tensor, run_chained
from formtrack.core.types import Box, Detection, PreconditionError

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("person", "barbell_plates")


class YoloxDetector:
    """Multi-class box detector returning normalized `Detection`s.

    Expects outputs `dets` shaped `[B, N, 5]` (x1, y1, x2, y2, score in
    model-input pixels) and `labels` shaped `[B, N]` (category indices).
    """

    def __init__(
        self,
        sessions: InferenceSession | Sequence[InferenceSession],
        category_names: Sequence[str] = DEFAULT_CATEGORIES,
        input_width: int = 640,
        input_height: int = 640,
    ):
        self.sessions = as_session_list(sessions)
        self.category_names = list(category_names)
        self.input_width = int(input_width)
        self.input_height = int(input_height)

    def detect(self, image: ImageBuffer | np.ndarray) -> list[Detection]:
        rgb = ensure_rgb(image)
        # The whole image is the "box"; padding 1.0 makes this a plain letterbox.
        resized = center_crop(
            rgb,
            (0.0, 0.0, float(rgb.width - 1), float(rgb.height - 1)),
            self.input_width,
            self.input_height,
            padding=1.0,
        )
        inputs = {
            "input": image_tensor(
                resized.image.get_data(channels_first=True), self.input_height, self.input_width
            )
        }
        outputs = run_chained(self.sessions, inputs)

        dets = outputs.get("dets")
        labels = outputs.get("labels")
        if dets is None or labels is None:
            raise PreconditionError(f"Expected 'dets' and 'labels' outputs, got {sorted(outputs)}")
        if dets.ndim != 3 or dets.shape[2] != 5:
            raise PreconditionError(f"Expected dets dims [B, N, 5] but got {list(dets.shape)}")
        batch, count, _ = dets.shape
        labels.expect_shape("labels", (batch, count))

        dets_np = dets.to_numpy()
        labels_np = labels.to_numpy()
        out: list[Detection] = []
        for b in range(batch):
            for n in range(count):
                x1, y1, x2, y2, score = (float(v) for v in dets_np[b, n])
                tl_x, tl_y = resized.transform.invert((x1, y1))
                br_x, br_y = resized.transform.invert((x2, y2))
                label_index = int(labels_np[b, n])
                if not 0 <= label_index < len(self.category_names):
                    raise PreconditionError(
                        f"Label index {label_index} outside {len(self.category_names)} categories"
                    )
                out.append(
                    Detection(
                        label=self.category_names[label_index],
                        box=Box.from_xyxy(tl_x, tl_y, br_x, br_y, confidence=score),
                        confidence=score,
                    )
                )
        logger.debug("YOLOX produced %s detections", len(out))
        return out
