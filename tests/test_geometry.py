import numpy as np
import pytest

from formtrack.core.geometry import (
    CropTransform,
    center_crop,
    clip_box,
    copy_make_border,
    crop,
    denormalize_box,
    invert,
    resize,
    sample_target,
    scale_box,
)
from formtrack.core.types import Box, ConfigurationError


def _image(w, h, value=255):
    return np.full((h, w, 3), value, dtype=np.uint8)


def test_scale_box_grows_about_center_and_clamps():
    assert scale_box((10, 10, 20, 20), 2.0, 100, 100) == (5.0, 5.0, 25.0, 25.0)
    assert scale_box((0, 0, 20, 20), 2.0, 25, 25) == (0.0, 0.0, 25.0, 25.0)


def test_center_crop_samples_match_inverse_within_one_pixel():
    for px, py in [(30, 40), (12, 25), (48, 58), (6, 16)]:
        img = np.zeros((80, 100, 3), dtype=np.uint8)
        img[py, px] = 255
        result = center_crop(img, (10, 20, 50, 60), 64, 64, padding=1.25)

        hits = np.argwhere(result.image.data[..., 0] == 255)
        assert hits.size, f"marker at {(px, py)} missing from crop"
        ty, tx = hits.mean(axis=0)
        nx, ny = invert((tx, ty), result.transform)
        assert abs(nx * 100 - px) <= 1.0
        assert abs(ny * 80 - py) <= 1.0


def test_center_crop_letterboxes_with_zeros():
    result = center_crop(_image(40, 20), (0, 0, 39, 19), 40, 40, padding=1.0)
    out = result.image.data
    assert out.shape == (40, 40, 3)
    assert not out[0].any()
    assert not out[39].any()
    assert out[20, 20].tolist() == [255, 255, 255]


def test_center_crop_rejects_sub_pixel_crop():
    with pytest.raises(ConfigurationError):
        center_crop(_image(20, 20), (5, 5, 5.5, 5.5), 16, 16)


def test_crop_transform_invert_matches_module_function():
    t = CropTransform(scale=2.0, x_offset=4.0, y_offset=-2.0, source_width=10, source_height=20)
    assert t.invert((24.0, 18.0)) == invert((24.0, 18.0), t) == (1.0, 0.5)


def test_crop_primitives():
    data = np.arange(4 * 6 * 3, dtype=np.uint8).reshape(4, 6, 3)
    part = crop(data, 1, 1, 4, 3)
    assert part.data.shape == (2, 3, 3)
    assert part.data[0, 0].tolist() == data[1, 1].tolist()
    with pytest.raises(ConfigurationError):
        crop(data, 0, 0, 7, 2)
    with pytest.raises(ConfigurationError):
        crop(data, 2, 2, 2, 3)

    padded = copy_make_border(part, 1, 0, 2, 0)
    assert padded.data.shape == (3, 5, 3)
    assert not padded.data[0].any()
    assert not padded.data[:, :2].any()


def test_resize_is_nearest_neighbour():
    data = np.zeros((2, 4, 3), dtype=np.uint8)
    data[0, :, 0] = [10, 20, 30, 40]
    out = resize(data, 2, 1)
    assert out.data[0, :, 0].tolist() == [10, 30]


def test_sample_target_size_and_factor():
    patch, factor = sample_target(_image(200, 200), (80, 80, 40, 40), 4.5, 224)
    assert (patch.width, patch.height) == (224, 224)
    assert factor == pytest.approx(224 / 180)


def test_sample_target_zero_pads_past_border():
    patch, factor = sample_target(_image(200, 200), (0, 0, 20, 20), 2.0, 40)
    assert factor == 1.0
    assert patch.data[0, 0].tolist() == [0, 0, 0]
    assert patch.data[39, 39].tolist() == [255, 255, 255]


def test_sample_target_rejects_empty_box():
    with pytest.raises(ConfigurationError, match="Too small bounding box"):
        sample_target(_image(50, 50), (10, 10, 0, 0), 2.0, 32)


def test_clip_box_keeps_margin():
    assert clip_box((-50, -50, 20, 20), 100, 100, margin=10) == (0.0, 0.0, 10, 10)
    assert clip_box((95, 95, 50, 50), 100, 100, margin=10) == (90, 90, 10, 10)
    assert clip_box((10, 20, 30, 40), 100, 100) == (10, 20, 30, 40)


def test_denormalize_box():
    assert denormalize_box(Box.from_xyxy(0.1, 0.2, 0.5, 1.0), 200, 100) == pytest.approx(
        (20.0, 20.0, 80.0, 80.0)
    )
