import math

import pytest

from formtrack.core.types import (
    ALL_KEYPOINTS,
    POSE_KEYPOINTS,
    Box,
    FrameObject,
    Keypoint,
    Position,
    keypoint_name,
)


def _frame(ts, x, keypoints=None):
    return FrameObject(
        object_id="person-0",
        object_type="person",
        timestamp=ts,
        boundary=Box.from_xyxy(x, 0.0, x + 0.2, 0.5),
        keypoints=keypoints,
    )


def test_position_interpolate_averages_confidence():
    p = Position(0.0, 0.0, 0.2).interpolate(Position(1.0, 0.5, 0.8), 0.25)
    assert p.x == pytest.approx(0.25)
    assert p.y == pytest.approx(0.125)
    assert p.confidence == pytest.approx(0.5)


def test_position_image_coords_and_validity():
    assert Position(0.5, 0.26).to_image_coords(100, 50) == (50, 13)
    assert Position(0.1, 0.1).is_valid()
    assert not Position(math.nan, 0.1).is_valid()


def test_box_dimensions():
    box = Box.from_xyxy(0.1, 0.2, 0.4, 0.6, confidence=0.7)
    assert box.width == pytest.approx(0.3)
    assert box.height == pytest.approx(0.4)
    assert box.to_xyxy() == (0.1, 0.2, 0.4, 0.6)
    assert box.top_left.confidence == 0.7


def test_keypoint_names():
    assert len(ALL_KEYPOINTS) == 21
    assert len(POSE_KEYPOINTS) == 17
    assert POSE_KEYPOINTS[-1] == "right_ankle"
    assert keypoint_name("leftHip") == "left_hip"
    assert keypoint_name("left_hip") == "left_hip"
    assert keypoint_name(Keypoint.RIGHT_TOE) == "right_toe"


def test_keypoint_location_accepts_camel_case():
    fo = _frame(0.0, 0.0, {"left_hip": Position(0.3, 0.4)})
    assert fo.keypoint_location("leftHip") == Position(0.3, 0.4)
    assert fo.keypoint_location(Keypoint.LEFT_HIP) == Position(0.3, 0.4)
    assert fo.keypoint_location("nose") is None
    assert _frame(0.0, 0.0).keypoint_location("nose") is None


def test_interpolate_with_next_frame():
    a = _frame(100.0, 0.0, {"nose": Position(0.0, 0.0), "left_hip": Position(0.5, 0.5)})
    b = _frame(200.0, 0.4, {"nose": Position(1.0, 1.0)})

    mid = a.interpolate_with_next_frame(b, 150.0)

    assert mid.timestamp == 150.0
    assert mid.boundary.top_left.x == pytest.approx(0.2)
    assert mid.keypoints["nose"].x == pytest.approx(0.5)
    # Only present in the first frame: carried unchanged.
    assert mid.keypoints["left_hip"] == Position(0.5, 0.5)


def test_interpolate_with_same_timestamp_uses_zero_factor():
    a = _frame(100.0, 0.0)
    b = _frame(100.0, 0.4)
    assert a.interpolate_with_next_frame(b, 100.0).boundary.top_left.x == 0.0


def test_frame_object_dict_roundtrip_normalizes_names():
    fo = _frame(33.0, 0.1, {"left_hip": Position(0.3, 0.4, 0.9)})
    data = fo.to_dict()
    data["keypoints"]["leftKnee"] = {"x": 0.2, "y": 0.8}

    back = FrameObject.from_dict(data)

    assert back.boundary == fo.boundary
    assert back.keypoints["left_hip"] == Position(0.3, 0.4, 0.9)
    assert back.keypoints["left_knee"] == Position(0.2, 0.8, 1.0)
    assert FrameObject.from_dict(_frame(1.0, 0.0).to_dict()).keypoints is None
