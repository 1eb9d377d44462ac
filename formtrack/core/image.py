"""Image buffers consumed by geometry, detectors and the tracker.

Images are numpy arrays in height x width x channel (interleaved) layout, RGB or
RGBA. `ImageBuffer.get_data(channels_first=True)` produces the planar layout
expected by NCHW models.
"""

from __future__ import annotations

import cv2
import numpy as np

from formtrack.core.types import ConfigurationError

VALID_FORMATS = ("RGB", "RGBA")

# CLIP-style normalization constants (RGB order).
NORM_MEAN = np.array([0.48145466, 0.4578275, 0.40821073], dtype=np.float32)
NORM_STD = np.array([0.26862954, 0.26130258, 0.27577711], dtype=np.float32)


class ImageBuffer:
    """A validated RGB/RGBA pixel buffer."""

    def __init__(self, data: np.ndarray, fmt: str = "RGB") -> None:
        if fmt not in VALID_FORMATS:
            raise ConfigurationError(f"Invalid format: {fmt}")
        arr = np.asarray(data)
        channels = len(fmt)
        if arr.ndim != 3:
            raise ConfigurationError(f"Expected an HxWxC array, got shape {arr.shape}")
        height, width = int(arr.shape[0]), int(arr.shape[1])
        if not (height > 0 and width > 0):
            raise ConfigurationError(f"Invalid dimensions: {width}x{height}")
        if int(arr.shape[2]) != channels:
            raise ConfigurationError(
                f"Expected {channels} channels for {fmt} but got {int(arr.shape[2])}"
            )
        self.data = arr
        self.format = fmt

    @classmethod
    def from_flat(cls, data, width: int, height: int, fmt: str = "RGB") -> ImageBuffer:
        """Build an image from a flat interleaved (HWC) buffer."""

        if not (height > 0 and width > 0):
            raise ConfigurationError(f"Invalid dimensions: {width}x{height}")
        if fmt not in VALID_FORMATS:
            raise ConfigurationError(f"Invalid format: {fmt}")
        flat = np.asarray(data).reshape(-1)
        if flat.size == 0:
            raise ConfigurationError("Empty data array")
        expected = width * height * len(fmt)
        if flat.size != expected:
            raise ConfigurationError(f"Expected array size to be {expected} but got {flat.size}")
        return cls(flat.reshape(height, width, len(fmt)), fmt)

    @classmethod
    def from_bgr(cls, frame: np.ndarray) -> ImageBuffer:
        """Wrap an OpenCV BGR frame."""

        return cls(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB), "RGB")

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def num_channels(self) -> int:
        return int(self.data.shape[2])

    def get_data(self, channels_first: bool = True) -> np.ndarray:
        """Return a flat pixel buffer, planar (CHW) or interleaved (HWC)."""

        if channels_first:
            return np.ascontiguousarray(self.data.transpose(2, 0, 1)).reshape(-1)
        return self.data.reshape(-1)

    def convert_to(self, fmt: str) -> ImageBuffer:
        if fmt == self.format:
            return ImageBuffer(self.data, fmt)
        if self.format != "RGBA" or fmt != "RGB":
            raise ConfigurationError("Only RGBA to RGB conversion is implemented")
        return ImageBuffer(np.ascontiguousarray(self.data[:, :, :3]), "RGB")


def ensure_rgb(image: ImageBuffer | np.ndarray) -> ImageBuffer:
    """Return an RGB `ImageBuffer` for a buffer or a raw HWC array (3 or 4 channels)."""

    if isinstance(image, ImageBuffer):
        buf = image
    else:
        arr = np.asarray(image)
        fmt = "RGBA" if arr.ndim == 3 and arr.shape[2] == 4 else "RGB"
        buf = ImageBuffer(arr, fmt)
    if buf.format != "RGB":
        buf = buf.convert_to("RGB")
    return buf


def normalize(image: ImageBuffer | np.ndarray) -> ImageBuffer:
    """Scale to [0, 1] when the data looks like uint8 and apply mean/std normalization."""

    rgb = ensure_rgb(image)
    data = rgb.data.astype(np.float32)
    if data.size and float(data.max()) > 1.0:
        data = data / 255.0
    return ImageBuffer((data - NORM_MEAN) / NORM_STD, "RGB")
