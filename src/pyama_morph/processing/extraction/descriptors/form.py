"""Shape descriptors computed from an object's outline polygon."""

import numpy as np

from pyama_morph.processing.extraction.descriptors.context import nan_result
from pyama_morph.processing.geometry import (
    convex_hull,
    ellipse_from_covariance,
    feret_diameters,
    min_area_rect,
    open_ring,
    perimeter,
    point_segment_distances,
    polygon_moments,
)

NAMES = [
    "form_centroid_x",
    "form_centroid_y",
    "form_center_x",
    "form_center_y",
    "form_area",
    "form_area_bbox",
    "form_area_convex",
    "form_perimeter",
    "form_elongation",
    "form_thread_length",
    "form_thread_width",
    "form_solidity",
    "form_extent",
    "form_roundness",
    "form_circularity",
    "form_convexity",
    "form_convex_perimeter_ratio",
    "form_equivalent_diameter",
    "form_eccentricity",
    "form_major_axis",
    "form_minor_axis",
    "form_orientation",
    "form_min_rect_aspect_ratio",
    "form_minimum_radius",
    "form_maximum_radius",
    "form_mean_radius",
    "form_min_feret",
    "form_max_feret",
]


def _ratio(a: float, b: float) -> float:
    return a / b if b > 0 else np.nan


def compute(outline: np.ndarray) -> np.ndarray:
    """
    Form descriptors of a polygon.

    Area, centroid and the equivalent ellipse come from Green's theorem on
    the outline. Positions are in the coordinate frame of ``outline``.

    Definitions:
    - elongation: min(w, h) / max(w, h) of the axis-aligned bounding box
    - thread_length: (P + sqrt(P^2 - 16A)) / 4, thread_width: A / thread_length
    - solidity and convexity: A / convex area
    - convex_perimeter_ratio: convex perimeter / P
    - extent: A / bounding box area
    - circularity: 4 pi A / P^2, roundness: 4 A / (pi major^2)
    - min_rect_aspect_ratio: long / short side of the minimum-area rectangle
    - radii: distances from the centroid to the outline (min over edges,
      max and mean over vertices)

    Args:
        outline: (K, 2) polygon vertices

    Returns:
        Array aligned with NAMES
    """
    points = open_ring(outline)
    if len(points) < 3:
        return nan_result(NAMES)

    area, cx, cy, cxx, cyy, cxy = polygon_moments(points)
    if area <= 0:
        result = nan_result(NAMES)
        result[NAMES.index("form_area")] = 0.0
        return result
    length = perimeter(points)
    center_x, center_y = points.mean(axis=0)
    x_min, y_min = points.min(axis=0)
    x_max, y_max = points.max(axis=0)
    w, h = x_max - x_min, y_max - y_min
    area_bbox = w * h

    hull = convex_hull(points)
    if hull is not None:
        area_convex, *_ = polygon_moments(hull)
        hull_length = perimeter(hull)
        rect_long, rect_short = min_area_rect(hull)
        min_feret, max_feret = feret_diameters(hull)
    else:
        area_convex = hull_length = rect_long = rect_short = np.nan
        min_feret = max_feret = np.nan

    thread_term = length * length - 16.0 * area
    thread_length = (length + np.sqrt(max(thread_term, 0.0))) / 4.0
    major, minor, eccentricity, orientation = ellipse_from_covariance(cxx, cyy, cxy)

    radii = np.hypot(points[:, 0] - cx, points[:, 1] - cy)
    minimum_radius = point_segment_distances(cx, cy, points).min()

    return np.array(
        [
            cx,
            cy,
            center_x,
            center_y,
            area,
            area_bbox,
            area_convex,
            length,
            _ratio(min(w, h), max(w, h)),
            thread_length,
            _ratio(area, thread_length),
            _ratio(area, area_convex),
            _ratio(area, area_bbox),
            _ratio(4.0 * area, np.pi * major * major),
            _ratio(4.0 * np.pi * area, length * length),
            _ratio(area, area_convex),
            _ratio(hull_length, length),
            2.0 * np.sqrt(area / np.pi),
            eccentricity,
            major,
            minor,
            orientation,
            _ratio(rect_long, rect_short),
            minimum_radius,
            radii.max(),
            radii.mean(),
            min_feret,
            max_feret,
        ],
        dtype=np.float64,
    )
