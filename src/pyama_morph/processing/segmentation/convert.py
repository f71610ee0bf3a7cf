"""
Conversions between mask, polygon and bounding-box segmentations.

Conventions used throughout:
- Masks are (H, W) arrays, 0 is background.
- Polygon vertices are (x, y) with pixel (col=x, row=y) centred on integer
  coordinates. A pixel belongs to a polygon when its centre is inside it by
  the even-odd rule (``skimage.draw.polygon``).
- Boxes are [x_min, y_min, x_max, y_max] on pixel edges, so a box covers
  pixels x_min .. x_max - 1 and its area equals its pixel count.

Outlines are traced with marching squares at level 0.5 on a zero-padded
object mask. Holes are not represented: only the outer boundary of each
object is returned, so a mask -> polygon -> mask round trip fills holes and
is exact for hole-free objects.
"""

import numpy as np
from shapely.geometry import Polygon
from shapely.validation import make_valid
from skimage.draw import polygon as draw_polygon
from skimage.measure import find_contours, label, regionprops

from pyama_morph.errors import FormatError, GeometryError
from pyama_morph.processing.geometry import open_ring, shoelace_area, signed_area
from pyama_morph.types.objects import MaskKind, Region


# =============================================================================
# LABELING
# =============================================================================


def validate_mask(mask: np.ndarray) -> np.ndarray:
    """Return ``mask`` as a 2-D integer array or raise FormatError."""
    mask = np.asarray(mask)
    if mask.ndim == 3 and mask.shape[2] == 1:
        mask = mask[..., 0]
    if mask.ndim != 2:
        raise FormatError(f"Masks must be 2-D; got shape {mask.shape}")
    if mask.dtype == bool:
        return mask.astype(np.uint8)
    if np.issubdtype(mask.dtype, np.floating):
        if not np.all(np.isfinite(mask)) or not np.all(mask == np.round(mask)):
            raise FormatError("Floating point masks must contain integral values")
        mask = mask.astype(np.int64)
    elif not np.issubdtype(mask.dtype, np.integer):
        raise FormatError(f"Unsupported mask dtype: {mask.dtype}")
    if mask.size and mask.min() < 0:
        raise FormatError("Masks must not contain negative labels")
    return mask


def label_objects(
    mask: np.ndarray, kind: MaskKind = "binary", connectivity: int = 2
) -> np.ndarray:
    """Return a label image: components for binary masks, ids for integer masks."""
    if connectivity not in (1, 2):
        raise ValueError("connectivity must be 1 (4-neighbour) or 2 (8-neighbour)")
    mask = validate_mask(mask)
    if kind == "binary":
        return label(mask > 0, connectivity=connectivity)
    return mask


# =============================================================================
# MASK -> POLYGON / BOXES
# =============================================================================


def trace_outline(patch: np.ndarray, connectivity: int = 2) -> np.ndarray:
    """Outer boundary of the foreground in ``patch`` as (K, 2) (x, y) vertices.

    Coordinates are relative to the patch origin. When the patch holds several
    pieces the one enclosing the largest area is returned.
    """
    padded = np.pad(np.asarray(patch, dtype=np.float64) > 0, 1).astype(np.float64)
    fully_connected = "high" if connectivity == 2 else "low"
    contours = find_contours(padded, 0.5, fully_connected=fully_connected)
    if not contours:
        raise GeometryError("Cannot trace an outline of an empty mask")
    best = max(contours, key=shoelace_area)
    return open_ring(best[:, ::-1] - 1.0)


def mask_to_polygons(
    mask: np.ndarray, kind: MaskKind = "binary", connectivity: int = 2
) -> list[np.ndarray]:
    """One outer polygon per connected component (binary) or label (integer)."""
    labels = label_objects(mask, kind, connectivity)
    polygons: list[np.ndarray] = []
    for prop in regionprops(labels):
        min_row, min_col = prop.bbox[0], prop.bbox[1]
        outline = trace_outline(prop.image, connectivity)
        polygons.append(outline + np.array([min_col, min_row], dtype=np.float64))
    return polygons


def mask_to_polygon(mask: np.ndarray, connectivity: int = 2) -> np.ndarray:
    """Outer polygon of the single largest foreground component of ``mask``."""
    polygons = mask_to_polygons(mask, "binary", connectivity)
    if not polygons:
        raise GeometryError("Mask has no foreground pixels")
    return max(polygons, key=shoelace_area)


def mask_to_boxes(
    mask: np.ndarray, kind: MaskKind = "binary", connectivity: int = 2
) -> np.ndarray:
    """Tight (N, 4) edge-coordinate boxes, one per component or label."""
    labels = label_objects(mask, kind, connectivity)
    boxes = [
        [prop.bbox[1], prop.bbox[0], prop.bbox[3], prop.bbox[2]]
        for prop in regionprops(labels)
    ]
    return np.asarray(boxes, dtype=np.float64).reshape(-1, 4)


def region_outline(region: Region, connectivity: int = 2) -> np.ndarray:
    """Outline of a region in image coordinates."""
    if region.polygon is not None:
        return open_ring(region.polygon)
    outline = trace_outline(region.mask, connectivity)
    return outline + np.array(region.bbox[:2], dtype=np.float64)


# =============================================================================
# POLYGON / BOXES -> MASK
# =============================================================================


def validate_polygon(points, area_tolerance: float = 0.05) -> np.ndarray:
    """Check a polygon and return it as an open (K, 2) float64 ring.

    Raises FormatError for non-empty arrays that are not (K, 2) and
    GeometryError for fewer than three vertices (including none), zero area or a self-intersection whose
    repaired area differs from the shoelace area by more than
    ``area_tolerance`` (relative).
    """
    try:
        points = np.asarray(points, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise FormatError(f"Polygon vertices must be numeric: {exc}") from exc
    if points.size == 0:
        raise GeometryError("Polygon has 0 vertices; at least 3 required")
    if points.ndim != 2 or (points.size and points.shape[1] != 2):
        raise FormatError(f"Polygons must have shape (K, 2); got {points.shape}")
    points = open_ring(points)
    if len(points) < 3:
        raise GeometryError(f"Polygon has {len(points)} vertices; at least 3 required")
    if not np.all(np.isfinite(points)):
        raise GeometryError("Polygon has non-finite vertices")
    area = abs(signed_area(points))
    if area <= 1e-12:
        raise GeometryError("Polygon has zero area")
    shape = Polygon(points)
    if not shape.is_valid:
        repaired = make_valid(shape).area
        reference = max(repaired, area)
        if abs(repaired - area) / reference > area_tolerance:
            raise GeometryError("Polygon self-intersects beyond tolerance")
    return points


def polygon_pixels(
    points: np.ndarray, shape: tuple[int, int]
) -> tuple[np.ndarray, np.ndarray]:
    """Rows and columns of pixel centres inside ``points`` (even-odd rule)."""
    points = open_ring(points)
    if points.ndim != 2 or points.shape[1] != 2:
        raise FormatError(f"Polygons must have shape (K, 2); got {points.shape}")
    if len(points) < 3:
        empty = np.zeros(0, dtype=np.intp)
        return empty, empty
    return draw_polygon(points[:, 1], points[:, 0], shape=shape)


def polygon_to_mask(points: np.ndarray, shape: tuple[int, int]) -> np.ndarray:
    mask = np.zeros(shape, dtype=bool)
    rr, cc = polygon_pixels(points, shape)
    mask[rr, cc] = True
    return mask


def polygons_to_mask(polygons: list[np.ndarray], shape: tuple[int, int]) -> np.ndarray:
    """Integer mask with polygon ``i`` painted as ``i + 1``; later polygons win."""
    mask = np.zeros(shape, dtype=np.uint32)
    for idx, points in enumerate(polygons):
        rr, cc = polygon_pixels(points, shape)
        mask[rr, cc] = idx + 1
    return mask


def box_pixel_bounds(
    box, shape: tuple[int, int]
) -> tuple[int, int, int, int]:
    """Inclusive pixel bounds ``(x0, y0, x1, y1)`` of an edge-coordinate box."""
    x_min, y_min, x_max, y_max = (float(v) for v in box)
    height, width = shape
    x0 = max(int(np.floor(x_min)), 0)
    y0 = max(int(np.floor(y_min)), 0)
    x1 = min(int(np.ceil(x_max)) - 1, width - 1)
    y1 = min(int(np.ceil(y_max)) - 1, height - 1)
    return x0, y0, x1, y1


def boxes_to_mask(boxes: np.ndarray, shape: tuple[int, int]) -> np.ndarray:
    mask = np.zeros(shape, dtype=np.uint32)
    for idx, box in enumerate(np.asarray(boxes, dtype=np.float64).reshape(-1, 4)):
        x0, y0, x1, y1 = box_pixel_bounds(box, shape)
        if x1 >= x0 and y1 >= y0:
            mask[y0 : y1 + 1, x0 : x1 + 1] = idx + 1
    return mask


def mask_iou(a: np.ndarray, b: np.ndarray) -> float:
    """Intersection over union of two foreground masks (1.0 if both empty)."""
    a = np.asarray(a) > 0
    b = np.asarray(b) > 0
    union = np.count_nonzero(a | b)
    if union == 0:
        return 1.0
    return np.count_nonzero(a & b) / union


__all__ = [
    "validate_mask",
    "label_objects",
    "trace_outline",
    "mask_to_polygons",
    "mask_to_polygon",
    "mask_to_boxes",
    "region_outline",
    "validate_polygon",
    "polygon_pixels",
    "polygon_to_mask",
    "polygons_to_mask",
    "box_pixel_bounds",
    "boxes_to_mask",
    "mask_iou",
]
