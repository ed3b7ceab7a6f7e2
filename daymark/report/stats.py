from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

# Inclusive severity bands over the 0-10 scale, sorted ascending.
SEVERITY_BANDS: tuple[tuple[str, int, int], ...] = (
    ("mild", 0, 3),
    ("moderate", 4, 6),
    ("severe", 7, 8),
    ("extreme", 9, 10),
)


@dataclass(frozen=True)
class DescriptiveStats:
    count: int
    mean: float | None
    median: float | None
    stddev: float | None
    histogram: dict[str, int]


def banded_histogram(values: Sequence[float]) -> dict[str, int]:
    data = np.asarray(values, dtype=np.float64)
    counts: dict[str, int] = {}
    for name, low, high in SEVERITY_BANDS:
        counts[name] = int(np.count_nonzero((data >= low) & (data <= high)))
    return counts


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Mean, median, population standard deviation, and severity bands."""
    if len(values) == 0:
        return DescriptiveStats(
            count=0,
            mean=None,
            median=None,
            stddev=None,
            histogram=banded_histogram([]),
        )
    data = np.asarray(values, dtype=np.float64)
    return DescriptiveStats(
        count=int(data.size),
        mean=round(float(np.mean(data)), 2),
        median=round(float(np.median(data)), 2),
        stddev=round(float(np.std(data)), 2),
        histogram=banded_histogram(values),
    )
