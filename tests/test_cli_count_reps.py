import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from formtrack.core.types import Box, FrameObject, Position
from formtrack.tools import count_reps

TRIANGLE = [1.0, 0.8, 0.6, 0.4, 0.2, 0.0, 0.2, 0.4, 0.6, 0.8] * 3


def _write_frames(path: Path):
    frames = [
        FrameObject(
            "person-0",
            "person",
            i * 100.0,
            Box.from_xyxy(0.2, 0.1, 0.8, 0.95),
            {"left_hip": Position(0.5, 0.9 - 0.5 * d), "left_ankle": Position(0.5, 0.9)},
        ).to_dict()
        for i, d in enumerate(TRIANGLE)
    ]
    # Reverse so the registry has to sort them.
    path.write_text(json.dumps(frames[::-1]), encoding="utf-8")


def test_count_reps_cli(tmp_path: Path):
    in_path = tmp_path / "frames.json"
    out_path = tmp_path / "reps.json"
    _write_frames(in_path)

    env = os.environ.copy()
    env["PYTHONPATH"] = env.get("PYTHONPATH", ".") + os.pathsep + str(Path(__file__).resolve().parents[1])
    env["FT_CONFIG"] = str(tmp_path / "missing.yml")

    cmd = [
        sys.executable,
        "-m",
        "formtrack.tools.count_reps",
        "--input",
        str(in_path),
        "--output",
        str(out_path),
        "--exercise",
        "squat",
        "--ignore-start-ms",
        "0",
        "--ignore-end-ms",
        "0",
    ]
    result = subprocess.run(cmd, env=env, capture_output=True, text=True)
    assert result.returncode == 0, result.stderr

    data = json.loads(out_path.read_text())
    assert data["person-0"]["count"] == 3
    assert [r["middle_ms"] for r in data["person-0"]["reps"]] == [500.0, 1500.0, 2500.0]


def _args(tmp_path: Path, *extra):
    return count_reps._build_parser().parse_args(
        ["--input", str(tmp_path / "frames.json"), "--output", str(tmp_path / "reps.json"), *extra]
    )


def test_explicit_keypoints_in_process(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("FT_CONFIG", str(tmp_path / "missing.yml"))
    _write_frames(tmp_path / "frames.json")

    count_reps.run(
        _args(
            tmp_path,
            "--keypoint-a",
            "leftHip",
            "--keypoint-b",
            "left_ankle",
            "--ignore-start-ms",
            "0",
            "--ignore-end-ms",
            "0",
        )
    )

    data = json.loads((tmp_path / "reps.json").read_text())
    assert data["person-0"]["count"] == 3


def test_rep_options_require_keypoints_or_exercise(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("FT_CONFIG", str(tmp_path / "missing.yml"))
    _write_frames(tmp_path / "frames.json")

    with pytest.raises(SystemExit):
        count_reps.run(_args(tmp_path, "--keypoint-a", "left_hip"))
    with pytest.raises(SystemExit):
        count_reps.run(_args(tmp_path, "--exercise", "deadlift"))


def test_rep_options_overrides(tmp_path: Path, monkeypatch):
    from formtrack.core.config.settings import FormTrackSettings

    args = _args(tmp_path, "--exercise", "pushup", "--smoothing", "4.0")
    options = count_reps._rep_options(args, FormTrackSettings())
    assert options["threshold"] == 0.25
    assert options["smoothing"] == 4.0
    assert options["keypoints_contract"] is True
    assert options["ignore_start_ms"] is None

    args = _args(tmp_path, "--keypoint-a", "a", "--keypoint-b", "b", "--expand")
    assert count_reps._rep_options(args, FormTrackSettings())["keypoints_contract"] is False
