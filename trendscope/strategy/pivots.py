"""Swing-point detection shared by the divergence and pattern detectors."""

import math
from typing import Sequence

from trendscope.strategy.models import Pivot, Pivots


def find_pivots(values: Sequence[float], window: int) -> Pivots:
    """Find strict local extrema in a symmetric window.

    Index ``i`` (with ``window <= i < len(values) - window``) is a pivot
    high when ``values[i]`` is strictly greater than every other defined
    value in ``[i - window, i + window]``; pivot lows mirror this.  An
    equal neighbour disqualifies the point.  NaN points are never pivots
    and NaN neighbours are ignored, so oscillator warm-up does not hide
    an extremum.
    """
    if window < 1:
        raise ValueError(f"Pivot window must be >= 1, got {window}")

    highs: list[Pivot] = []
    lows: list[Pivot] = []

    for i in range(window, len(values) - window):
        current = values[i]
        if math.isnan(current):
            continue

        is_high = True
        is_low = True
        compared = 0
        for j in range(i - window, i + window + 1):
            if j == i:
                continue
            neighbour = values[j]
            if math.isnan(neighbour):
                continue
            compared += 1
            if neighbour >= current:
                is_high = False
            if neighbour <= current:
                is_low = False
            if not (is_high or is_low):
                break

        if not compared:
            continue
        if is_high:
            highs.append(Pivot(index=i, value=current))
        if is_low:
            lows.append(Pivot(index=i, value=current))

    return Pivots(highs=tuple(highs), lows=tuple(lows))
