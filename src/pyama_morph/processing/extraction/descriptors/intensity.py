"""Intensity summary statistics over a pixel population."""

import numpy as np

from pyama_morph.processing.extraction.descriptors.context import (
    DescriptorContext,
    nan_result,
)

NAMES = [
    "intensity_min",
    "intensity_max",
    "intensity_sum",
    "intensity_mean",
    "intensity_std",
    "intensity_median",
    "intensity_mad",
    "intensity_p05",
    "intensity_p25",
    "intensity_p75",
    "intensity_p95",
]


def compute(ctx: DescriptorContext) -> np.ndarray:
    """
    Summary statistics of the population samples.

    The standard deviation is the population (ddof=0) value and ``mad`` is the
    median absolute deviation from the median. Percentiles use linear
    interpolation. An empty population yields NaN for every statistic.

    Args:
        ctx: Descriptor context for one channel and population

    Returns:
        Array aligned with NAMES
    """
    values = ctx.values
    if values.size == 0:
        return nan_result(NAMES)
    median = np.median(values)
    p05, p25, p75, p95 = np.percentile(values, [5, 25, 75, 95])
    return np.array(
        [
            values.min(),
            values.max(),
            values.sum(),
            values.mean(),
            values.std(),
            median,
            np.median(np.abs(values - median)),
            p05,
            p25,
            p75,
            p95,
        ],
        dtype=np.float64,
    )
