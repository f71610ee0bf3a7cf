"""Raw, central, normalised and Hu moments of a weighted pixel population.

Moments are indexed ``m_pq = sum(x**p * y**q * w)`` with x the column and y the
row of a pixel in crop coordinates. Central moments are taken about the
population's own weighted centroid.
"""

import numpy as np
from skimage.measure import moments, moments_central, moments_hu, moments_normalized

from pyama_morph.processing.extraction.descriptors.context import (
    DescriptorContext,
    nan_result,
)
from pyama_morph.processing.geometry import ellipse_from_covariance

RAW = [(0, 0), (1, 0), (0, 1), (1, 1), (2, 0), (0, 2), (2, 1), (1, 2), (3, 0), (0, 3)]
CENTRAL = [(1, 1), (2, 0), (0, 2), (2, 1), (1, 2), (3, 0), (0, 3)]
NORMALIZED = [(2, 0), (0, 2), (1, 1), (2, 1), (1, 2), (3, 0), (0, 3)]

NAMES = (
    [f"moments_m{p}{q}" for p, q in RAW]
    + [f"moments_u{p}{q}" for p, q in CENTRAL]
    + [f"moments_nu{p}{q}" for p, q in NORMALIZED]
    + [f"moments_i{k}" for k in range(1, 8)]
    + [
        "moments_centroid_x",
        "moments_centroid_y",
        "moments_orientation",
        "moments_eccentricity",
    ]
)


def compute(ctx: DescriptorContext) -> np.ndarray:
    """
    Geometric moments up to order 3 of the population weighted by intensity.

    skimage indexes moment arrays by (row power, column power), so ``m_pq``
    is read from ``M[q, p]``. Orientation and eccentricity come from the
    second-order central moments; orientation is NaN for isotropic weights.

    Args:
        ctx: Descriptor context for one channel and population

    Returns:
        Array aligned with NAMES
    """
    weights = ctx.weights
    raw = moments(weights, order=3)
    m00 = raw[0, 0]
    if not np.isfinite(m00) or m00 <= 0:
        result = nan_result(NAMES)
        result[0] = m00 if np.isfinite(m00) else np.nan
        return result

    cy = raw[1, 0] / m00
    cx = raw[0, 1] / m00
    central = moments_central(weights, center=(cy, cx), order=3)
    with np.errstate(divide="ignore", invalid="ignore"):
        normalized = moments_normalized(central, order=3)
        hu = moments_hu(normalized)

    _, _, eccentricity, orientation = ellipse_from_covariance(
        central[0, 2] / m00, central[2, 0] / m00, central[1, 1] / m00
    )
    values = (
        [raw[q, p] for p, q in RAW]
        + [central[q, p] for p, q in CENTRAL]
        + [normalized[q, p] for p, q in NORMALIZED]
        + list(hu)
        + [cx, cy, orientation, eccentricity]
    )
    return np.asarray(values, dtype=np.float64)
