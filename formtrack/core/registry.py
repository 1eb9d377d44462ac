"""Per-object, time-ordered storage of `FrameObject` snapshots."""

from __future__ import annotations

import bisect
from collections.abc import Iterable

from formtrack.core.types import FrameObject


def _timestamp(frame_object: FrameObject) -> float:
    return frame_object.timestamp


class FrameObjectRegistry:
    """Map object id -> FrameObjects sorted ascending by timestamp.

    Ties keep insertion order. There is a single writer; readers must not run
    concurrently with `register_frame_object`.
    """

    def __init__(self, frame_objects: Iterable[FrameObject] | None = None) -> None:
        self._by_id: dict[str, list[FrameObject]] = {}
        for frame_object in frame_objects or ():
            self._by_id.setdefault(frame_object.object_id, []).append(frame_object)
        for seq in self._by_id.values():
            seq.sort(key=_timestamp)

    def register_frame_object(self, frame_object: FrameObject) -> None:
        seq = self._by_id.setdefault(frame_object.object_id, [])
        bisect.insort_right(seq, frame_object, key=_timestamp)

    def frame_objects(self, object_id: str) -> list[FrameObject]:
        """Return the FrameObjects for `object_id` (empty when unknown)."""

        return list(self._by_id.get(object_id, ()))

    def object_ids(self, object_type: str | None = None) -> list[str]:
        """Return known ids, optionally only those whose objects have `object_type`."""

        return [
            object_id
            for object_id, seq in self._by_id.items()
            if seq and (object_type is None or seq[0].object_type == object_type)
        ]

    def frame_objects_for_type(self, object_type: str) -> list[list[FrameObject]]:
        return [self.frame_objects(object_id) for object_id in self.object_ids(object_type)]

    def frame_objects_around_timestamp(
        self, object_id: str, timestamp: float
    ) -> tuple[FrameObject, FrameObject] | None:
        """Return the FrameObjects immediately before and at-or-after `timestamp`.

        A single entry, or a timestamp before every entry, yields the same entry
        twice. A timestamp after every entry yields the last two entries.
        """

        seq = self._by_id.get(object_id)
        if not seq:
            return None
        if len(seq) == 1:
            return seq[0], seq[0]

        idx = bisect.bisect_left(seq, timestamp, key=_timestamp)
        if idx == 0:
            return seq[0], seq[0]
        if idx >= len(seq):
            return seq[-2], seq[-1]
        return seq[idx - 1], seq[idx]

    def frame_object_at(self, object_id: str, timestamp: float) -> FrameObject | None:
        """Return the object's state interpolated to `timestamp`."""

        around = self.frame_objects_around_timestamp(object_id, timestamp)
        if around is None:
            return None
        prev, nxt = around
        if prev is nxt or timestamp >= nxt.timestamp:
            return nxt
        return prev.interpolate_with_next_frame(nxt, timestamp)

    def __len__(self) -> int:
        return sum(len(seq) for seq in self._by_id.values())
