from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

import numpy as np

from formtrack.core.geometry import box_center, clip_box, denormalize_box, sample_target
from formtrack.core.image import ImageBuffer, ensure_rgb, normalize
from formtrack.core.tensors import InferenceSession, Tensor, image_tensor
from formtrack.core.types import BBox, Box, ConfigurationError, Detection, PreconditionError, TrackingError

logger = logging.getLogger(__name__)


def sigmoid(x: float) -> float:
    # Written to avoid overflow in exp() for large negative logits.
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


@dataclass(frozen=True)
class TrackerConfig:
    template_factor: float = 2.0
    template_size: int = 112
    search_factor: float = 4.5
    search_size: int = 224
    update_interval: int = 10
    max_score_decay: float = 1.0
    min_confidence_threshold: float = 0.5
    max_consecutive_failures: int = 5
    clip_margin: float = 10.0


@dataclass
class TrackerState:
    """Internal tracker state for one target (pixel units)."""

    box_xywh: BBox
    label: str
    template: ImageBuffer
    online_template: ImageBuffer
    online_max_template: ImageBuffer
    max_pred_score: float = -1.0
    frame_id: int = 0
    failures: int = 0


@dataclass(frozen=True)
class TrackingResult:
    detection: Detection | None
    is_tracking: bool


class OnlineTracker:
    """Single-object template tracker with periodic online-template refresh.

    The injected session receives three `[1, 3, H, W]` tensors (`template`,
    `online_template`, `search`) and returns `boxes` (cx, cy, w, h normalized to
    the search crop) and a raw `scores` logit.

    One instance tracks one object; `update` mutates state in place and must be
    called serially, in frame order.
    """

    def __init__(self, session: InferenceSession, config: TrackerConfig | None = None) -> None:
        self.session = session
        self.config = config or TrackerConfig()
        self.state: TrackerState | None = None

    def init(self, image: ImageBuffer | np.ndarray, bbox: Box, label: str) -> None:
        """Start tracking the object inside the normalized `bbox`."""

        rgb = self._checked_rgb(image)
        xywh = denormalize_box(bbox, rgb.width, rgb.height)
        template = self._sample_template(rgb, xywh)
        self.state = TrackerState(
            box_xywh=xywh,
            label=label,
            template=template,
            online_template=template,
            online_max_template=template,
        )
        logger.info("Tracker init label=%s box=%s", label, xywh)

    def is_tracking(self) -> bool:
        return (
            self.state is not None
            and self.state.failures < self.config.max_consecutive_failures
        )

    def update(self, image: ImageBuffer | np.ndarray) -> TrackingResult:
        """Track the object into `image` and return the normalized detection, if any."""

        state = self.state
        if state is None:
            raise TrackingError("init() must be called before update()")
        if not self.is_tracking():
            return TrackingResult(detection=None, is_tracking=False)

        cfg = self.config
        rgb = self._checked_rgb(image)
        H, W = rgb.height, rgb.width
        state.frame_id += 1
        prev_box = state.box_xywh

        search_patch, resize_factor = sample_target(rgb, prev_box, cfg.search_factor, cfg.search_size)
        pred_box, pred_score = self._forward(state.template, state.online_template, normalize(search_patch))
        pred_box = tuple(v * cfg.search_size / resize_factor for v in pred_box)
        logger.debug("[frame %s] pred_box=%s pred_score=%.4f", state.frame_id, pred_box, pred_score)

        new_box = clip_box(self._map_box_back(pred_box, resize_factor, prev_box), H, W, cfg.clip_margin)

        state.max_pred_score *= cfg.max_score_decay

        if pred_score > cfg.min_confidence_threshold and pred_score > state.max_pred_score:
            state.online_max_template = self._sample_template(rgb, new_box)
            state.max_pred_score = pred_score

        if pred_score < cfg.min_confidence_threshold:
            # A low-confidence prediction never moves the persisted box.
            state.box_xywh = prev_box
            state.failures += 1
            tracking = self.is_tracking()
            if not tracking:
                logger.info(
                    "Tracking lost label=%s after %s consecutive failures",
                    state.label,
                    state.failures,
                )
            return TrackingResult(detection=None, is_tracking=tracking)

        state.failures = 0
        state.box_xywh = new_box

        if state.frame_id % cfg.update_interval == 0:
            state.online_template = state.online_max_template
            state.max_pred_score = -1.0
            state.online_max_template = state.template

        logger.debug("[frame %s] state=%s", state.frame_id, state.box_xywh)
        x, y, w, h = state.box_xywh
        return TrackingResult(
            detection=Detection(
                label=state.label,
                box=Box.from_xyxy(x / W, y / H, (x + w) / W, (y + h) / H, confidence=pred_score),
                confidence=pred_score,
            ),
            is_tracking=True,
        )

    def snapshot(self) -> TrackerState | None:
        """Return a shallow copy of the current state (templates are shared)."""

        return replace(self.state) if self.state is not None else None

    def _checked_rgb(self, image: ImageBuffer | np.ndarray) -> ImageBuffer:
        rgb = ensure_rgb(image)
        margin = self.config.clip_margin
        if rgb.width < margin or rgb.height < margin:
            raise ConfigurationError(
                f"Image {rgb.width}x{rgb.height} is smaller than clip_margin={margin}"
            )
        return rgb

    def _sample_template(self, image: ImageBuffer, box_xywh: BBox) -> ImageBuffer:
        patch, _ = sample_target(image, box_xywh, self.config.template_factor, self.config.template_size)
        return normalize(patch)

    def _forward(
        self,
        template: ImageBuffer,
        online_template: ImageBuffer,
        search: ImageBuffer,
    ) -> tuple[tuple[float, float, float, float], float]:
        def _to_tensor(img: ImageBuffer) -> Tensor:
            return image_tensor(img.get_data(channels_first=True), img.height, img.width)

        outputs = self.session.run(
            {
                "template": _to_tensor(template),
                "online_template": _to_tensor(online_template),
                "search": _to_tensor(search),
            }
        )
        boxes = outputs.get("boxes")
        scores = outputs.get("scores")
        if boxes is None or scores is None:
            raise PreconditionError(f"Expected 'boxes' and 'scores' outputs, got {sorted(outputs)}")
        if boxes.size != 4:
            raise PreconditionError(f"Expected 4 box values but got shape {list(boxes.shape)}")
        if scores.size != 1:
            raise PreconditionError(f"Expected 1 score but got shape {list(scores.shape)}")
        cx, cy, w, h = (float(v) for v in boxes.reshape([4]).data)
        return (cx, cy, w, h), sigmoid(float(scores.reshape([1]).at(0)))

    def _map_box_back(self, pred_box: BBox, resize_factor: float, prev_box: BBox) -> BBox:
        """Map a (cx, cy, w, h) box from search-crop pixels back to image pixels.

        Recentres on the previous box's center rather than the crop geometry.
        """

        cx_prev, cy_prev = box_center(prev_box)
        cx, cy, w, h = pred_box
        half_side = 0.5 * self.config.search_size / resize_factor
        cx_real = cx + (cx_prev - half_side)
        cy_real = cy + (cy_prev - half_side)
        return (cx_real - 0.5 * w, cy_real - 0.5 * h, w, h)
