from __future__ import annotations

from typing import Any

# Exercise presets for rep counting.
#
# Notes:
# - keypoint_a/keypoint_b: the pair whose vertical distance is measured
# - keypoints_contract: True when a rep brings the keypoints closer together
# - threshold/smoothing: optional overrides of the rep_* settings


PRESETS: dict[str, dict[str, Any]] = {
    # Hips drop towards the ankles at the bottom of each rep.
    "squat": {
        "keypoint_a": "left_hip",
        "keypoint_b": "left_ankle",
        "keypoints_contract": True,
    },
    "lunge": {
        "keypoint_a": "left_hip",
        "keypoint_b": "left_knee",
        "keypoints_contract": True,
        "smoothing": 3.0,
    },
    # Shoulders approach the wrists as the chest goes down.
    "pushup": {
        "keypoint_a": "left_shoulder",
        "keypoint_b": "left_wrist",
        "keypoints_contract": True,
        "threshold": 0.25,
    },
    "bicep_curl": {
        "keypoint_a": "right_shoulder",
        "keypoint_b": "right_wrist",
        "keypoints_contract": True,
    },
    # Arms extend overhead, so the wrists move away from the shoulders.
    "overhead_press": {
        "keypoint_a": "right_shoulder",
        "keypoint_b": "right_wrist",
        "keypoints_contract": False,
    },
}


PRESET_LABELS: dict[str, str] = {
    "squat": "Squat",
    "lunge": "Lunge",
    "pushup": "Push-up",
    "bicep_curl": "Bicep curl",
    "overhead_press": "Overhead press",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "settings": PRESETS[preset_id],
        }
        for preset_id in PRESETS.keys()
    ]


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
