"""Tensor abstraction and the inference capability protocol.

Models are consumed through a tiny `InferenceSession` interface so the runtime
(onnxruntime, a remote service, a test double) can be swapped without touching
the tracker or the detectors.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np

from formtrack.core.types import PreconditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tensor:
    """A flat numeric buffer plus an integer shape (row-major)."""

    data: np.ndarray
    shape: tuple[int, ...]

    def __post_init__(self) -> None:
        flat = np.asarray(self.data).reshape(-1)
        shape = tuple(int(d) for d in self.shape)
        if any(d < 0 for d in shape):
            raise PreconditionError(f"Negative dimension in shape {shape}")
        expected = math.prod(shape)
        if flat.size != expected:
            raise PreconditionError(
                f"Tensor data has {flat.size} values but shape {shape} needs {expected}"
            )
        object.__setattr__(self, "data", flat)
        object.__setattr__(self, "shape", shape)

    @classmethod
    def from_numpy(cls, arr: Any) -> Tensor:
        a = np.asarray(arr)
        return cls(a.reshape(-1), tuple(a.shape))

    @property
    def size(self) -> int:
        return int(self.data.size)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    def reshape(self, shape: Sequence[int]) -> Tensor:
        return Tensor(self.data, tuple(shape))

    def at(self, *index: int) -> float:
        """Strided element access, e.g. `t.at(0, n, 4)`."""

        if len(index) != len(self.shape):
            raise PreconditionError(f"Index {index} does not match rank {len(self.shape)}")
        offset = 0
        for i, dim in zip(index, self.shape, strict=True):
            if not 0 <= i < dim:
                raise PreconditionError(f"Index {index} out of range for shape {self.shape}")
            offset = offset * dim + i
        return self.data[offset].item()

    def to_numpy(self) -> np.ndarray:
        return self.data.reshape(self.shape)

    def expect_shape(self, name: str, shape: Sequence[int]) -> Tensor:
        """Raise `PreconditionError` unless this tensor has exactly `shape`."""

        if tuple(shape) != self.shape:
            raise PreconditionError(f"Expected {name} dims {list(shape)} but got {list(self.shape)}")
        return self


class InferenceSession(Protocol):
    """Minimal inference interface expected by the tracker and detectors."""

    def run(self, inputs: dict[str, Tensor]) -> dict[str, Tensor]:
        """Run the model on named tensors and return named output tensors."""


def image_tensor(chw: np.ndarray, height: int, width: int) -> Tensor:
    """Build a `[1, 3, H, W]` float32 tensor from a planar RGB buffer."""

    return Tensor(np.asarray(chw, dtype=np.float32), (1, 3, height, width))


def run_chained(sessions: Sequence[InferenceSession], inputs: dict[str, Tensor]) -> dict[str, Tensor]:
    """Run a model that may be partitioned (e.g. backbone + head).

    Each session's outputs are fed as the next session's inputs.
    """

    outputs = inputs
    for session in sessions:
        outputs = session.run(outputs)
    return outputs


def as_session_list(session_or_sessions: InferenceSession | Sequence[InferenceSession]) -> list[InferenceSession]:
    """Accept one session or a (backbone, head) pair."""

    if isinstance(session_or_sessions, (list, tuple)):
        if len(session_or_sessions) != 2:
            raise ValueError("Expected a single model or a (backbone, head) pair")
        return list(session_or_sessions)
    return [session_or_sessions]


class OnnxSession:
    """`InferenceSession` adapter over `onnxruntime.InferenceSession` (CPU by default)."""

    def __init__(self, session: Any) -> None:
        self.session = session
        self.input_names = [i.name for i in session.get_inputs()]
        self.output_names = [o.name for o in session.get_outputs()]

    @classmethod
    def from_path(cls, model_path: str, providers: list[str] | None = None) -> OnnxSession:
        import onnxruntime as ort

        logger.info("Loading ONNX model %s", model_path)
        session = ort.InferenceSession(model_path, providers=providers or ["CPUExecutionProvider"])
        return cls(session)

    def run(self, inputs: dict[str, Tensor]) -> dict[str, Tensor]:
        feed = {name: t.to_numpy() for name, t in inputs.items() if name in self.input_names}
        results = self.session.run(self.output_names, feed)
        return {
            name: Tensor.from_numpy(value)
            for name, value in zip(self.output_names, results, strict=True)
        }
