"""Numeric primitives for episode analysis. Pure functions, no Redis dependency."""

from __future__ import annotations

import math
import statistics
from typing import Any, Sequence


def mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def median(values: Sequence[float]) -> float:
    return statistics.median(values) if values else 0


def mode(values: Sequence[int]) -> Any:
    """Most frequent value, or a sorted list of values when several tie."""
    if not values:
        return 0
    modes = statistics.multimode(values)
    return modes[0] if len(modes) == 1 else sorted(modes)


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation."""
    return statistics.pstdev(values) if values else 0.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def linear_regression(x: Sequence[float], y: Sequence[float]) -> dict[str, float]:
    """Least-squares fit of y = intercept + slope * x."""
    n = len(x)
    if n != len(y) or n < 2:
        return {"slope": 0.0, "intercept": 0.0, "r_squared": 0.0}

    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(xi * yi for xi, yi in zip(x, y))
    sum_x2 = sum(xi * xi for xi in x)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return {"slope": 0.0, "intercept": sum_y / n, "r_squared": 0.0}

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    y_mean = sum_y / n
    ss_tot = sum((yi - y_mean) ** 2 for yi in y)
    ss_res = sum((yi - (intercept + slope * xi)) ** 2 for xi, yi in zip(x, y))
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return {"slope": slope, "intercept": intercept, "r_squared": r_squared}


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation coefficient, 0 when undefined."""
    n = len(x)
    if n != len(y) or n < 2:
        return 0.0

    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(xi * yi for xi, yi in zip(x, y))
    sum_x2 = sum(xi * xi for xi in x)
    sum_y2 = sum(yi * yi for yi in y)

    numerator = n * sum_xy - sum_x * sum_y
    spread = (n * sum_x2 - sum_x * sum_x) * (n * sum_y2 - sum_y * sum_y)
    if spread <= 0:
        return 0.0
    return numerator / math.sqrt(spread)


def moving_averages(values: Sequence[float], window: int) -> list[float]:
    window = max(1, window)
    return [
        sum(values[i:i + window]) / window
        for i in range(len(values) - window + 1)
    ]


def acceleration(values: Sequence[float]) -> float:
    """Mean second difference of a series."""
    if len(values) < 3:
        return 0.0
    first = [values[i] - values[i - 1] for i in range(1, len(values))]
    second = [first[i] - first[i - 1] for i in range(1, len(first))]
    return sum(second) / len(second)


def half_split_change(values: Sequence[float]) -> float:
    """Mean of the second half minus mean of the first half (split at n // 2)."""
    mid = len(values) // 2
    first, second = values[:mid], values[mid:]
    if not first or not second:
        return 0.0
    return mean(second) - mean(first)


def percentage(part: float, whole: float, digits: int = 1) -> float:
    return round(part / whole * 100, digits) if whole else 0.0
