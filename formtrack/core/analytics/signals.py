"""Peak/valley segmentation of one-dimensional time series.

The primary detector smooths the series with a Gaussian kernel, rescales it to
[0, 1], keeps strict local maxima whose prominence clears a threshold, and then
widens each peak to the surrounding velocity zero-crossings. `smoothed_z_score`
is an alternate detector kept for comparison; nothing in the rep pipeline uses it.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from formtrack.core.types import PreconditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signal:
    """Indices into the analyzed series bounding one peak (or valley)."""

    start: int
    middle: int
    end: int


def gaussian_smooth(values: Sequence[float], sigma: float) -> list[float]:
    """Convolve with a normalized Gaussian of radius ceil(3 * sigma).

    Samples falling outside the series are omitted from the weighted sum (no
    reflection or renormalization), so edges are attenuated.
    """

    data = np.asarray(values, dtype=np.float64)
    if data.size == 0 or sigma <= 0:
        return data.tolist()

    half = math.ceil(sigma * 3)
    x = np.arange(-half, half + 1, dtype=np.float64)
    kernel = np.exp(-(x * x) / (2.0 * sigma * sigma))
    kernel /= kernel.sum()
    # Kernel is symmetric, so the full convolution shifted by `half` is the
    # zero-padded correlation.
    full = np.convolve(data, kernel, mode="full")
    return full[half : half + data.size].tolist()


def normalize_numbers(values: Sequence[float]) -> list[float]:
    """Rescale to [0, 1] by the series' own min/max.

    Series shorter than 2 are returned unchanged; a constant series maps to zeros.
    """

    if len(values) < 2:
        return list(values)
    data = np.asarray(values, dtype=np.float64)
    lo = float(data.min())
    hi = float(data.max())
    if hi == lo:
        return [0.0] * int(data.size)
    return ((data - lo) / (hi - lo)).tolist()


def array_peaks(values: Sequence[float]) -> list[int]:
    """Indices of strict interior local maxima."""

    return [
        i
        for i in range(1, len(values) - 1)
        if values[i] > values[i - 1] and values[i] > values[i + 1]
    ]


def peak_prominences(values: Sequence[float], peaks: Sequence[int]) -> list[float]:
    """Height of each peak above the higher of its two bounding valleys."""

    prominences: list[float] = []
    i_max = len(values) - 1
    for peak_nr, peak in enumerate(peaks):
        if not 0 <= peak <= i_max:
            raise PreconditionError(f"Peak {peak} is not a valid index into the series")
        height = values[peak]

        left_min = height
        i = peak
        while i >= 0 and values[i] <= height:
            left_min = min(left_min, values[i])
            i -= 1

        right_min = height
        i = peak
        while i <= i_max and values[i] <= height:
            right_min = min(right_min, values[i])
            i += 1

        prominence = height - max(left_min, right_min)
        if prominence == 0:
            logger.warning("Peak %s (index %s) has a prominence of 0", peak_nr, peak)
        prominences.append(prominence)
    return prominences


def array_velocities(values: Sequence[float]) -> list[float]:
    """First difference, with a leading 0 so the output aligns with the input."""

    if len(values) == 0:
        return []
    return [0.0] + [float(values[i] - values[i - 1]) for i in range(1, len(values))]


def find_signal_boundaries(
    peak: int,
    velocities: Sequence[float],
    prev_peak: int,
    next_peak: int,
) -> Signal:
    """Widen `peak` to where the velocity last turned (bounded by neighbour peaks)."""

    left_edge = prev_peak + 1
    start = left_edge
    seen_positive = False
    for i in range(peak - 1, left_edge - 1, -1):
        seen_positive = seen_positive or velocities[i] > 0
        if seen_positive and velocities[i] <= 0:
            start = i + 1
            break

    right_edge = next_peak - 1
    end = right_edge
    seen_negative = False
    for i in range(peak + 1, right_edge):
        seen_negative = seen_negative or velocities[i] < 0
        if seen_negative and velocities[i] >= 0:
            end = i - 1
            break

    return Signal(start=start, middle=peak, end=end)


def signals(
    numbers: Sequence[float],
    find_peaks: bool,
    prominence: float,
    sigma: float,
) -> list[Signal]:
    """Find peaks (or valleys when `find_peaks` is False) in a time series.

    Args:
        numbers: The series, one value per frame.
        find_peaks: True to look for peaks, False for valleys.
        prominence: Minimum prominence, in normalized [0, 1] units.
        sigma: Gaussian smoothing strength; higher smooths more.

    Returns:
        One `Signal` per detected peak/valley, in series order.
    """

    series = [float(v) for v in numbers]
    if not find_peaks:
        series = [1.0 - v for v in series]

    normalized = normalize_numbers(gaussian_smooth(series, sigma))
    candidates = array_peaks(normalized)
    prominences = peak_prominences(normalized, candidates)
    peaks = [p for p, prom in zip(candidates, prominences, strict=True) if prom >= prominence]

    velocities = array_velocities(normalized)
    out: list[Signal] = []
    for idx, peak in enumerate(peaks):
        prev_peak = -1 if idx == 0 else peaks[idx - 1]
        next_peak = len(velocities) - 1 if idx == len(peaks) - 1 else peaks[idx + 1]
        out.append(find_signal_boundaries(peak, velocities, prev_peak, next_peak))
    return out


def smoothed_z_score(
    values: Sequence[float],
    lag: int = 5,
    threshold: float = 3.5,
    influence: float = 0.5,
) -> list[int]:
    """Smoothed z-score peak detector.

    Returns a list the same length as `values` holding +1 (peak), -1 (trough) or 0.
    """

    if len(values) == 0:
        return []
    if len(values) < lag + 2:
        raise PreconditionError(f"Series too short ({len(values)}) for a lag of {lag}")

    y = [float(v) for v in values]
    out = [0] * len(y)
    filtered = list(y)
    avg = float(np.mean(y[:lag]))
    std = float(np.std(y[:lag]))

    for i in range(lag, len(y)):
        if abs(y[i] - avg) > threshold * std:
            out[i] = 1 if y[i] > avg else -1
            filtered[i] = influence * y[i] + (1.0 - influence) * filtered[i - 1]
        else:
            filtered[i] = y[i]
        window = filtered[i - lag + 1 : i + 1]
        avg = float(np.mean(window))
        std = float(np.std(window))

    return out


def moving_average(values: Sequence[float], window: int) -> list[float]:
    """Trailing moving average; early samples are divided by the full window size."""

    if window <= 0:
        raise ValueError("window must be >= 1")
    out: list[float] = []
    for i in range(len(values)):
        total = sum(float(values[i - j]) for j in range(window) if i - j >= 0)
        out.append(total / window)
    return out


def indices_at_or_below(values: Sequence[float], cutoff: float) -> list[int]:
    return [i for i, v in enumerate(values) if v <= cutoff]


def percentile_cutoff(values: Sequence[float], q: float) -> float:
    """Linear-interpolated order statistic at fraction `q` in [0, 1]."""

    if len(values) == 0:
        raise PreconditionError("Cannot compute a percentile of an empty series")
    ordered = sorted(float(v) for v in values)
    index = (len(ordered) - 1) * q
    lower = math.floor(index)
    fraction = index - lower
    if lower + 1 < len(ordered):
        return ordered[lower] + fraction * (ordered[lower + 1] - ordered[lower])
    return ordered[lower]
