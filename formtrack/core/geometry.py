"""Coordinate transforms between an original image and fixed-size model inputs.

Two cropping strategies live here:

- `center_crop` letterboxes a padded box into the model input with a single
  uniform scale and returns a `CropTransform` that maps model-space points back
  to normalized original-image coordinates (detectors, pose estimation).
- `sample_target` extracts a square, zero-padded crop around a box and resizes
  it with nearest-neighbour sampling (tracker templates and search regions).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from formtrack.core.image import ImageBuffer, ensure_rgb
from formtrack.core.types import BBox, Box, ConfigurationError, Point


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def scale_box(bbox: BBox, scale: float, image_width: float, image_height: float) -> BBox:
    """Grow `bbox` (x1, y1, x2, y2) about its center by `scale`, clamped to the image."""

    x1, y1, x2, y2 = bbox
    box_w = x2 - x1
    box_h = y2 - y1
    new_w = box_w * scale
    new_h = box_h * scale
    x1 -= (new_w - box_w) / 2.0
    y1 -= (new_h - box_h) / 2.0
    x2 = x1 + new_w
    y2 = y1 + new_h
    return (max(0.0, x1), max(0.0, y1), min(x2, float(image_width)), min(y2, float(image_height)))


@dataclass(frozen=True)
class CropTransform:
    """Parameters of a `center_crop`, sufficient to map points in both directions."""

    scale: float
    x_offset: float
    y_offset: float
    source_width: int
    source_height: int

    def forward(self, point: Point) -> Point:
        """Map an original-image pixel point into model-input pixels."""

        x, y = point
        return (x * self.scale + self.x_offset, y * self.scale + self.y_offset)

    def invert(self, point: Point) -> Point:
        return invert(point, self)


def invert(point: Point, params: CropTransform) -> Point:
    """Map a model-input pixel point back to normalized original-image coordinates."""

    x, y = point
    return (
        (x - params.x_offset) / params.scale / params.source_width,
        (y - params.y_offset) / params.scale / params.source_height,
    )


@dataclass(frozen=True)
class CenterCrop:
    image: ImageBuffer
    transform: CropTransform


def center_crop(
    image: ImageBuffer | np.ndarray,
    bounding_box: BBox,
    target_width: int,
    target_height: int,
    padding: float = 1.25,
) -> CenterCrop:
    """Letterbox a padded pixel box into a `target_width` x `target_height` image.

    Every target pixel samples the nearest source pixel through one uniform scale,
    so the aspect ratio is preserved; pixels outside the crop stay zero.
    """

    rgb = ensure_rgb(image)
    if target_width < 1 or target_height < 1:
        raise ConfigurationError(f"Invalid target size: {target_width}x{target_height}")
    x1, y1, x2, y2 = scale_box(bounding_box, padding, rgb.width, rgb.height)
    crop_w = x2 - x1
    crop_h = y2 - y1
    if crop_w < 1 or crop_h < 1:
        raise ConfigurationError(f"Crop is smaller than one pixel: {crop_w}x{crop_h}")

    scale = min(target_width / crop_w, target_height / crop_h)
    center_x = x1 + crop_w / 2.0
    center_y = y1 + crop_h / 2.0

    src_x = np.floor(center_x + (np.arange(target_width) - target_width / 2.0) / scale + 0.5)
    src_y = np.floor(center_y + (np.arange(target_height) - target_height / 2.0) / scale + 0.5)
    valid_x = np.nonzero((src_x >= x1) & (src_x < x1 + crop_w))[0]
    valid_y = np.nonzero((src_y >= y1) & (src_y < y1 + crop_h))[0]

    out = np.zeros((target_height, target_width, 3), dtype=rgb.data.dtype)
    if valid_x.size and valid_y.size:
        sx = src_x[valid_x].astype(np.int64)
        sy = src_y[valid_y].astype(np.int64)
        out[np.ix_(valid_y, valid_x)] = rgb.data[np.ix_(sy, sx)]

    transform = CropTransform(
        scale=float(scale),
        x_offset=target_width / 2.0 - center_x * scale,
        y_offset=target_height / 2.0 - center_y * scale,
        source_width=rgb.width,
        source_height=rgb.height,
    )
    return CenterCrop(image=ImageBuffer(out, "RGB"), transform=transform)


def crop(image: ImageBuffer | np.ndarray, x1: int, y1: int, x2: int, y2: int) -> ImageBuffer:
    """Hard rectangular crop of the half-open pixel range [x1, x2) x [y1, y2)."""

    rgb = ensure_rgb(image)
    x1, y1, x2, y2 = int(x1), int(y1), int(x2), int(y2)
    if x1 < 0 or y1 < 0 or x2 > rgb.width or y2 > rgb.height or x2 <= x1 or y2 <= y1:
        raise ConfigurationError(
            f"Crop ({x1}, {y1}, {x2}, {y2}) is empty or outside a {rgb.width}x{rgb.height} image"
        )
    return ImageBuffer(rgb.data[y1:y2, x1:x2], "RGB")


def copy_make_border(
    image: ImageBuffer | np.ndarray, top: int, bottom: int, left: int, right: int
) -> ImageBuffer:
    """Pad with zeros on each side."""

    rgb = ensure_rgb(image)
    pads = ((int(top), int(bottom)), (int(left), int(right)), (0, 0))
    if min(min(p) for p in pads) < 0:
        raise ConfigurationError(f"Negative border: {pads}")
    return ImageBuffer(np.pad(rgb.data, pads, mode="constant", constant_values=0), "RGB")


def resize(image: ImageBuffer | np.ndarray, width: int, height: int) -> ImageBuffer:
    """Nearest-neighbour resize sampling source pixel `floor(x * source / target)`."""

    rgb = ensure_rgb(image)
    if width < 1 or height < 1:
        raise ConfigurationError(f"Invalid resize target: {width}x{height}")
    xs = np.floor(np.arange(width) * (rgb.width / width)).astype(np.int64)
    ys = np.floor(np.arange(height) * (rgb.height / height)).astype(np.int64)
    np.minimum(xs, rgb.width - 1, out=xs)
    np.minimum(ys, rgb.height - 1, out=ys)
    return ImageBuffer(rgb.data[np.ix_(ys, xs)], "RGB")


def sample_target(
    image: ImageBuffer | np.ndarray,
    box_xywh: BBox,
    area_factor: float,
    output_size: int,
) -> tuple[ImageBuffer, float]:
    """Extract a square crop centered on `box_xywh`, `area_factor**2` times its area.

    Regions past the image border are zero-padded. Returns the crop resized to
    `output_size` and the factor by which it was resized.
    """

    rgb = ensure_rgb(image)
    x, y, w, h = box_xywh
    area = w * h
    crop_sz = math.ceil(math.sqrt(area) * area_factor) if area > 0 else 0
    if crop_sz < 1:
        raise ConfigurationError("Too small bounding box.")

    x1 = _round_half_up(x + 0.5 * w - crop_sz * 0.5)
    x2 = x1 + crop_sz
    y1 = _round_half_up(y + 0.5 * h - crop_sz * 0.5)
    y2 = y1 + crop_sz

    x1_pad = max(0, -x1)
    x2_pad = max(x2 - rgb.width + 1, 0)
    y1_pad = max(0, -y1)
    y2_pad = max(y2 - rgb.height + 1, 0)

    cropped = crop(rgb, x1 + x1_pad, y1 + y1_pad, x2 - x2_pad, y2 - y2_pad)
    padded = copy_make_border(cropped, top=y1_pad, bottom=y2_pad, left=x1_pad, right=x2_pad)
    return resize(padded, output_size, output_size), output_size / crop_sz


def clip_box(box_xywh: BBox, image_height: int, image_width: int, margin: float = 0) -> BBox:
    """Clip an xywh box to the image, keeping at least `margin` pixels per side."""

    x1, y1, w, h = box_xywh
    x2, y2 = x1 + w, y1 + h
    x1 = min(max(0.0, x1), image_width - margin)
    x2 = min(max(margin, x2), image_width)
    y1 = min(max(0.0, y1), image_height - margin)
    y2 = min(max(margin, y2), image_height)
    return (x1, y1, max(margin, x2 - x1), max(margin, y2 - y1))


def denormalize_box(box: Box, image_width: int, image_height: int) -> BBox:
    """Convert a normalized `Box` to pixel (x, y, w, h)."""

    x1, y1, x2, y2 = box.to_xyxy()
    return (
        x1 * image_width,
        y1 * image_height,
        (x2 - x1) * image_width,
        (y2 - y1) * image_height,
    )


def box_center(box_xywh: BBox) -> Point:
    x, y, w, h = box_xywh
    return (x + 0.5 * w, y + 0.5 * h)
