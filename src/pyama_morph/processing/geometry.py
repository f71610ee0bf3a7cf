"""
Shared geometry primitives for polygons and outlines.

All polygon quantities (area, centroid, second moments, orientation) come from
the discrete Green's theorem so that every descriptor derived from an outline
agrees with the shoelace area. Polygons are (K, 2) float arrays of (x, y)
vertices; a repeated closing vertex is tolerated everywhere.
"""

import logging

import numba as nb
import numpy as np
from scipy.spatial import ConvexHull, QhullError

logging.getLogger("numba.core.ssa").setLevel(logging.WARNING)
logging.getLogger("numba.core.byteflow").setLevel(logging.WARNING)
logging.getLogger("numba.core.interpreter").setLevel(logging.WARNING)


def open_ring(points: np.ndarray) -> np.ndarray:
    """Return vertices without a duplicated closing vertex."""
    points = np.asarray(points, dtype=np.float64)
    if len(points) > 1 and np.array_equal(points[0], points[-1]):
        return points[:-1]
    return points


def _cross_terms(points: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    pts = open_ring(points)
    x0, y0 = pts[:, 0], pts[:, 1]
    x1, y1 = np.roll(x0, -1), np.roll(y0, -1)
    return x0, y0, x1, y1, x0 * y1 - x1 * y0


def signed_area(points: np.ndarray) -> float:
    """Shoelace area; positive for counter-clockwise vertex order (y up)."""
    if len(points) < 3:
        return 0.0
    *_, cross = _cross_terms(points)
    return float(cross.sum() / 2.0)


def shoelace_area(points: np.ndarray) -> float:
    return abs(signed_area(points))


def perimeter(points: np.ndarray) -> float:
    pts = open_ring(points)
    if len(pts) < 2:
        return 0.0
    d = np.diff(np.vstack([pts, pts[:1]]), axis=0)
    return float(np.hypot(d[:, 0], d[:, 1]).sum())


def polygon_moments(points: np.ndarray) -> tuple[float, float, float, float, float, float]:
    """Area, centroid and central second moments of a simple polygon.

    Returns ``(area, cx, cy, cxx, cyy, cxy)`` where the central moments are
    normalised by area (i.e. the covariance of a uniform density over the
    polygon). Degenerate polygons return NaN for everything but the area.
    """
    if len(open_ring(points)) < 3:
        return 0.0, np.nan, np.nan, np.nan, np.nan, np.nan
    x0, y0, x1, y1, cross = _cross_terms(points)
    a = cross.sum() / 2.0
    if a == 0.0:
        return 0.0, np.nan, np.nan, np.nan, np.nan, np.nan
    cx = ((x0 + x1) * cross).sum() / (6.0 * a)
    cy = ((y0 + y1) * cross).sum() / (6.0 * a)
    ixx = ((x0 * x0 + x0 * x1 + x1 * x1) * cross).sum() / 12.0
    iyy = ((y0 * y0 + y0 * y1 + y1 * y1) * cross).sum() / 12.0
    ixy = ((x0 * y1 + 2.0 * x0 * y0 + 2.0 * x1 * y1 + x1 * y0) * cross).sum() / 24.0
    cxx = ixx / a - cx * cx
    cyy = iyy / a - cy * cy
    cxy = ixy / a - cx * cy
    return float(abs(a)), float(cx), float(cy), float(cxx), float(cyy), float(cxy)


def ellipse_from_covariance(
    cxx: float, cyy: float, cxy: float
) -> tuple[float, float, float, float]:
    """Equivalent ellipse ``(major, minor, eccentricity, orientation)``.

    Axis lengths follow the scikit-image ``regionprops`` convention
    (4 * sqrt(eigenvalue)). Orientation is the angle of the major axis from
    the x axis in radians. Undefined values are NaN: the orientation of an
    isotropic shape and everything for a zero covariance.
    """
    if not np.all(np.isfinite([cxx, cyy, cxy])):
        return np.nan, np.nan, np.nan, np.nan
    common = np.sqrt(((cxx - cyy) / 2.0) ** 2 + cxy * cxy)
    l1 = (cxx + cyy) / 2.0 + common
    l2 = max((cxx + cyy) / 2.0 - common, 0.0)
    if l1 <= 0.0:
        return np.nan, np.nan, np.nan, np.nan
    major = 4.0 * np.sqrt(l1)
    minor = 4.0 * np.sqrt(l2)
    eccentricity = np.sqrt(1.0 - l2 / l1)
    scale = max(abs(cxx), abs(cyy), 1e-300)
    if abs(cxx - cyy) <= 1e-12 * scale and abs(cxy) <= 1e-12 * scale:
        orientation = np.nan
    else:
        orientation = 0.5 * np.arctan2(2.0 * cxy, cxx - cyy)
    return float(major), float(minor), float(eccentricity), float(orientation)


def convex_hull(points: np.ndarray) -> np.ndarray | None:
    """Counter-clockwise hull vertices, or None when the points are collinear."""
    pts = np.unique(open_ring(points), axis=0)
    if len(pts) < 3:
        return None
    try:
        hull = ConvexHull(pts)
    except QhullError:
        return None
    return pts[hull.vertices]


def min_area_rect(hull: np.ndarray) -> tuple[float, float]:
    """Side lengths ``(long, short)`` of the minimum-area bounding rectangle.

    Uses the rotating-edge property: an optimal rectangle has a side collinear
    with a hull edge.
    """
    edges = np.diff(np.vstack([hull, hull[:1]]), axis=0)
    lengths = np.hypot(edges[:, 0], edges[:, 1])
    keep = lengths > 0
    u = edges[keep] / lengths[keep, np.newaxis]
    v = np.stack([-u[:, 1], u[:, 0]], axis=1)
    proj_u = hull @ u.T
    proj_v = hull @ v.T
    widths = proj_u.max(axis=0) - proj_u.min(axis=0)
    heights = proj_v.max(axis=0) - proj_v.min(axis=0)
    best = int(np.argmin(widths * heights))
    w, h = float(widths[best]), float(heights[best])
    return max(w, h), min(w, h)


@nb.njit(cache=False)
def _max_feret(points):
    n = points.shape[0]
    best = 0.0
    for i in range(n):
        for j in range(i + 1, n):
            dx = points[j, 0] - points[i, 0]
            dy = points[j, 1] - points[i, 1]
            d = np.sqrt(dx * dx + dy * dy)
            if d > best:
                best = d
    return best


@nb.njit(cache=False)
def _min_feret(points):
    n = points.shape[0]
    best = np.inf
    for i in range(n):
        j = (i + 1) % n
        ex = points[j, 0] - points[i, 0]
        ey = points[j, 1] - points[i, 1]
        norm = np.sqrt(ex * ex + ey * ey)
        if norm == 0.0:
            continue
        width = 0.0
        for k in range(n):
            d = abs(ex * (points[k, 1] - points[i, 1]) - ey * (points[k, 0] - points[i, 0])) / norm
            if d > width:
                width = d
        if width < best:
            best = width
    return best


def feret_diameters(hull: np.ndarray) -> tuple[float, float]:
    """``(min_feret, max_feret)`` caliper diameters of a convex hull."""
    hull = np.ascontiguousarray(hull, dtype=np.float64)
    return float(_min_feret(hull)), float(_max_feret(hull))


def point_segment_distances(
    px: float, py: float, points: np.ndarray
) -> np.ndarray:
    """Distance from (px, py) to every closed-ring edge of ``points``."""
    a = open_ring(points)
    b = np.roll(a, -1, axis=0)
    ab = b - a
    ap = np.array([px, py]) - a
    denom = (ab * ab).sum(axis=1)
    t = np.divide((ap * ab).sum(axis=1), denom, out=np.zeros_like(denom), where=denom > 0)
    t = np.clip(t, 0.0, 1.0)
    closest = a + ab * t[:, np.newaxis]
    return np.hypot(closest[:, 0] - px, closest[:, 1] - py)


__all__ = [
    "open_ring",
    "signed_area",
    "shoelace_area",
    "perimeter",
    "polygon_moments",
    "ellipse_from_covariance",
    "convex_hull",
    "min_area_rect",
    "feret_diameters",
    "point_segment_distances",
]
