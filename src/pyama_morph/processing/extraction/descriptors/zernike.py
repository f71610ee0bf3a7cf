"""Zernike moment magnitudes of a weighted pixel population."""

from math import factorial

import numpy as np

from pyama_morph.processing.extraction.descriptors.context import (
    DescriptorContext,
    nan_result,
)

MAX_ORDER = 9

ORDERS: list[tuple[int, int]] = [
    (n, m) for n in range(MAX_ORDER + 1) for m in range(n + 1) if (n - m) % 2 == 0
]

NAMES = [f"zernike_{n}{m}" for n, m in ORDERS]


def _radial_coefficients(n: int, m: int) -> list[tuple[float, int]]:
    coefficients = []
    for s in range((n - m) // 2 + 1):
        c = (-1) ** s * factorial(n - s) / (
            factorial(s) * factorial((n + m) // 2 - s) * factorial((n - m) // 2 - s)
        )
        coefficients.append((float(c), n - 2 * s))
    return coefficients


RADIAL = {order: _radial_coefficients(*order) for order in ORDERS}


def radial_polynomial(n: int, m: int, rho: np.ndarray) -> np.ndarray:
    result = np.zeros_like(rho)
    for c, power in RADIAL[(n, m)]:
        result += c * rho**power
    return result


def compute(ctx: DescriptorContext) -> np.ndarray:
    """
    Magnitudes ``|A_nm|`` for n <= 9, 0 <= m <= n, n - m even.

    Population pixels are mapped into the unit disk centred at the weighted
    centroid and scaled by the largest pixel distance plus half a pixel.
    ``A_nm = (n + 1) / pi * sum(w * conj(V_nm)) / sum(w)``.

    Args:
        ctx: Descriptor context for one channel and population

    Returns:
        Array aligned with NAMES; NaN when the population has no positive
        total weight
    """
    rows, cols = np.nonzero(ctx.mask)
    if rows.size == 0:
        return nan_result(NAMES)
    w = ctx.image[rows, cols]
    total = w.sum()
    if not np.isfinite(total) or total <= 0:
        return nan_result(NAMES)

    x = cols.astype(np.float64)
    y = rows.astype(np.float64)
    cx = (w * x).sum() / total
    cy = (w * y).sum() / total
    dx, dy = x - cx, y - cy
    radius = np.sqrt(dx * dx + dy * dy).max() + 0.5
    if radius <= 0:
        return nan_result(NAMES)
    rho = np.sqrt(dx * dx + dy * dy) / radius
    theta = np.arctan2(dy, dx)

    result = np.empty(len(ORDERS), dtype=np.float64)
    for idx, (n, m) in enumerate(ORDERS):
        basis = radial_polynomial(n, m, rho) * np.exp(-1j * m * theta)
        a_nm = (n + 1) / np.pi * (w * basis).sum() / total
        result[idx] = np.abs(a_nm)
    return result
