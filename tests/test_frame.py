import numpy as np
import pytest

from formtrack.core.frame import Frame
from formtrack.core.types import Box, Detection, Position


class FakeDetector:
    def __init__(self, detections):
        self.detections = detections

    def detect(self, image):
        return list(self.detections)


class FakePoseEstimator:
    def __init__(self):
        self.boxes = []

    def estimate(self, image, box):
        self.boxes.append(box)
        return {"nose": Position(0.5, 0.5, 0.9)}


def _det(label, confidence, x1, y1, x2, y2):
    return Detection(label, Box.from_xyxy(x1, y1, x2, y2, confidence), confidence)


def _frame(detections, pose=None):
    return Frame(np.zeros((100, 100, 3), dtype=np.uint8), 1234.0, FakeDetector(detections), pose)


def test_find_people_filters_and_numbers_objects():
    pose = FakePoseEstimator()
    frame = _frame(
        [
            _det("person", 0.9, 0.1, 0.1, 0.6, 0.9),
            _det("person", 0.1, 0.1, 0.1, 0.6, 0.9),
            _det("barbell_plates", 0.9, 0.0, 0.5, 0.2, 0.7),
            _det("person", 0.5, 0.0, 0.0, 0.05, 0.05),
        ],
        pose,
    )

    objects = frame.find_objects("person")

    assert [o.object_id for o in objects] == ["person-0", "person-1"]
    assert all(o.object_type == "person" and o.timestamp == 1234.0 for o in objects)
    assert objects[0].keypoint_location("nose") == Position(0.5, 0.5, 0.9)
    # 5px box: too small for keypoints.
    assert objects[1].keypoints is None
    assert len(pose.boxes) == 1


def test_find_objects_without_keypoints():
    pose = FakePoseEstimator()
    objects = _frame([_det("person", 0.9, 0.1, 0.1, 0.6, 0.9)], pose).find_objects(
        "people", keypoints=False
    )
    assert objects[0].keypoints is None
    assert pose.boxes == []


def test_unsupported_object_type():
    with pytest.raises(ValueError):
        _frame([]).find_objects("barbell")
