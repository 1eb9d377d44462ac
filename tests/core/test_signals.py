import logging
import math

import numpy as np
import pytest

from formtrack.core.analytics.signals import (
    Signal,
    array_peaks,
    array_velocities,
    gaussian_smooth,
    indices_at_or_below,
    moving_average,
    normalize_numbers,
    peak_prominences,
    percentile_cutoff,
    signals,
    smoothed_z_score,
)
from formtrack.core.types import PreconditionError

# One tall peak at index 2 and a small bump at index 5.
BUMPY = [0.0, 0.5, 1.0, 0.5, 0.3, 0.35, 0.3, 0.0]


def test_gaussian_smooth_attenuates_edges_only():
    out = gaussian_smooth([1.0] * 20, 1.0)
    assert out[10] == pytest.approx(1.0)
    assert out[0] < 1.0
    assert out[-1] < 1.0
    assert gaussian_smooth([1.0, 2.0], 0) == [1.0, 2.0]
    assert gaussian_smooth([], 2.0) == []


def test_normalize_numbers():
    assert normalize_numbers([2.0, 4.0, 6.0]) == [0.0, 0.5, 1.0]
    assert normalize_numbers([3.0, 3.0, 3.0]) == [0.0, 0.0, 0.0]
    assert normalize_numbers([7.0]) == [7.0]


def test_array_peaks_are_strict_interior_maxima():
    assert array_peaks([0, 1, 0, 2, 2, 0, 3]) == [1]
    assert array_peaks([1, 2]) == []


def test_peak_prominences():
    proms = peak_prominences(BUMPY, [2, 5])
    assert proms == pytest.approx([1.0, 0.05])


def test_peak_prominences_zero_logs_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="formtrack.core.analytics.signals"):
        assert peak_prominences([1.0, 1.0, 1.0], [1]) == [0.0]
    assert "prominence of 0" in caplog.text


def test_peak_prominences_rejects_bad_index():
    with pytest.raises(PreconditionError):
        peak_prominences([0.0, 1.0, 0.0], [3])


def test_array_velocities():
    assert array_velocities([1.0, 3.0, 2.0]) == [0.0, 2.0, -1.0]
    assert array_velocities([]) == []


def test_signals_filters_small_bumps():
    found = signals(BUMPY, True, 0.2, 0.1)
    assert found == [Signal(start=1, middle=2, end=4)]

    assert [s.middle for s in signals(BUMPY, True, 0.0, 0.1)] == [2, 5]


def test_signals_finds_valleys():
    inverted = [1.0 - v for v in BUMPY]
    assert [s.middle for s in signals(inverted, False, 0.2, 0.1)] == [2]


def test_signals_noisy_sinusoid():
    rng = np.random.default_rng(0)
    period = 20
    series = [
        math.sin(2 * math.pi * i / period) + rng.uniform(-0.02, 0.02) for i in range(5 * period)
    ]

    found = signals(series, True, 0.2, 2.0)

    assert len(found) == 5
    for s, expected in zip(found, (5, 25, 45, 65, 85), strict=True):
        assert abs(s.middle - expected) <= 2
        assert s.start <= s.middle <= s.end
    gaps = [b.middle - a.middle for a, b in zip(found, found[1:])]
    assert all(abs(g - period) <= 2 for g in gaps)


def test_signals_empty_and_flat():
    assert signals([], True, 0.2, 2.0) == []
    assert signals([0.5] * 10, True, 0.2, 0.0) == []


def test_smoothed_z_score_flags_spike():
    values = [1.0, 1.1, 0.9, 1.0, 1.05, 0.95, 1.0, 10.0, 1.0, 1.0]
    out = smoothed_z_score(values)
    assert len(out) == len(values)
    assert out[7] == 1
    assert out[:5] == [0, 0, 0, 0, 0]


def test_smoothed_z_score_length_checks():
    assert smoothed_z_score([]) == []
    with pytest.raises(PreconditionError):
        smoothed_z_score([1.0] * 6, lag=5)


def test_moving_average_divides_by_full_window():
    assert moving_average([4.0, 4.0, 4.0, 4.0, 4.0], 4) == [1.0, 2.0, 3.0, 4.0, 4.0]
    with pytest.raises(ValueError):
        moving_average([1.0], 0)


def test_indices_and_percentile():
    assert indices_at_or_below([0.1, 0.5, 0.2, 0.9], 0.2) == [0, 2]
    assert percentile_cutoff([0.0, 1.0, 2.0, 3.0, 4.0], 0.75) == pytest.approx(3.0)
    assert percentile_cutoff([0.0, 10.0], 0.75) == pytest.approx(7.5)
    with pytest.raises(PreconditionError):
        percentile_cutoff([], 0.5)
