"""
Haralick texture statistics from a gray-level co-occurrence matrix.

The population is min/max scaled into GLCM_LEVELS gray levels (1..64).
Pixels outside the population get the reserved level 0 so that
``skimage.feature.graycomatrix`` can count every in-population pair; rows and
columns of level 0 are then discarded. Each angle's matrix is made symmetric
and normalised, the 13 statistics are computed per angle and averaged over
the angles that contain at least one pair. Entropies use log base 2.
"""

import numpy as np
from skimage.feature import graycomatrix

from pyama_morph.processing.extraction.descriptors.context import (
    DescriptorContext,
    nan_result,
)

GLCM_LEVELS = 64
GLCM_DISTANCES = (1,)
GLCM_ANGLES = (0.0, np.pi / 4, np.pi / 2, 3 * np.pi / 4)

NAMES = [
    "texture_energy",
    "texture_contrast",
    "texture_correlation",
    "texture_sum_of_squares",
    "texture_homogeneity",
    "texture_sum_average",
    "texture_sum_variance",
    "texture_sum_entropy",
    "texture_entropy",
    "texture_difference_variance",
    "texture_difference_entropy",
    "texture_infocorr1",
    "texture_infocorr2",
]

# Gray level index grids, 1-based as in Haralick's definitions
_I, _J = np.meshgrid(
    np.arange(1, GLCM_LEVELS + 1, dtype=np.float64),
    np.arange(1, GLCM_LEVELS + 1, dtype=np.float64),
    indexing="ij",
)


def quantize(ctx: DescriptorContext) -> np.ndarray:
    """Gray levels 1..GLCM_LEVELS inside the population, 0 outside."""
    levels = np.zeros(ctx.image.shape, dtype=np.uint8)
    values = ctx.values
    if values.size == 0:
        return levels
    lo, hi = values.min(), values.max()
    if hi > lo:
        scaled = np.floor((values - lo) / (hi - lo) * GLCM_LEVELS)
        scaled = np.clip(scaled, 0, GLCM_LEVELS - 1).astype(np.uint8)
    else:
        scaled = np.zeros(values.shape, dtype=np.uint8)
    levels[ctx.mask] = scaled + 1
    return levels


def _entropy(p: np.ndarray) -> float:
    nz = p[p > 0]
    return float(-(nz * np.log2(nz)).sum())


def haralick(p: np.ndarray) -> np.ndarray:
    """The 13 statistics of one normalised (levels, levels) matrix."""
    n = p.shape[0]
    px = p.sum(axis=1)
    py = p.sum(axis=0)
    k = np.arange(1, n + 1, dtype=np.float64)
    ux = (k * px).sum()
    uy = (k * py).sum()
    sx = np.sqrt(((k - ux) ** 2 * px).sum())
    sy = np.sqrt(((k - uy) ** 2 * py).sum())
    diff = _I - _J

    energy = (p * p).sum()
    contrast = (diff * diff * p).sum()
    if sx > 0 and sy > 0:
        correlation = ((_I - ux) * (_J - uy) * p).sum() / (sx * sy)
    else:
        correlation = np.nan
    sum_of_squares = ((_I - ux) ** 2 * p).sum()
    homogeneity = (p / (1.0 + diff * diff)).sum()

    # p_{x+y}(s) for s = 2..2n and p_{x-y}(d) for d = 0..n-1
    index_sum = (_I + _J).astype(np.int64) - 2
    p_sum = np.bincount(index_sum.ravel(), weights=p.ravel(), minlength=2 * n - 1)
    s = np.arange(2, 2 * n + 1, dtype=np.float64)
    sum_average = (s * p_sum).sum()
    sum_variance = ((s - sum_average) ** 2 * p_sum).sum()
    sum_entropy = _entropy(p_sum)

    index_diff = np.abs(diff).astype(np.int64)
    p_diff = np.bincount(index_diff.ravel(), weights=p.ravel(), minlength=n)
    d = np.arange(n, dtype=np.float64)
    diff_mean = (d * p_diff).sum()
    difference_variance = ((d - diff_mean) ** 2 * p_diff).sum()
    difference_entropy = _entropy(p_diff)

    entropy = _entropy(p)
    hx = _entropy(px)
    hy = _entropy(py)
    outer = np.outer(px, py)
    nz = (p > 0) & (outer > 0)
    hxy1 = float(-(p[nz] * np.log2(outer[nz])).sum())
    nzo = outer > 0
    hxy2 = float(-(outer[nzo] * np.log2(outer[nzo])).sum())
    h_max = max(hx, hy)
    infocorr1 = (entropy - hxy1) / h_max if h_max > 0 else np.nan
    infocorr2 = np.sqrt(max(0.0, 1.0 - np.exp(-2.0 * (hxy2 - entropy))))

    return np.array(
        [
            energy,
            contrast,
            correlation,
            sum_of_squares,
            homogeneity,
            sum_average,
            sum_variance,
            sum_entropy,
            entropy,
            difference_variance,
            difference_entropy,
            infocorr1,
            infocorr2,
        ],
        dtype=np.float64,
    )


def compute(ctx: DescriptorContext) -> np.ndarray:
    """
    Texture statistics of one channel over the population.

    Args:
        ctx: Descriptor context for one channel and population

    Returns:
        Array aligned with NAMES; NaN when no pair of neighbouring population
        pixels exists
    """
    levels = quantize(ctx)
    glcm = graycomatrix(
        levels,
        distances=list(GLCM_DISTANCES),
        angles=list(GLCM_ANGLES),
        levels=GLCM_LEVELS + 1,
        symmetric=True,
        normed=False,
    )
    per_angle = []
    for a in range(len(GLCM_ANGLES)):
        counts = glcm[1:, 1:, 0, a].astype(np.float64)
        total = counts.sum()
        if total == 0:
            continue
        per_angle.append(haralick(counts / total))
    if not per_angle:
        return nan_result(NAMES)
    return np.mean(np.stack(per_angle), axis=0)
