"""
Normalize any segmentation source into an ordered list of regions.

Object ids:
- binary masks: connected-component labels (1..N in raster order)
- integer masks: the label value itself
- polygons and boxes: 1-based position in the input sequence

A region that fails geometric validation raises GeometryError internally and
is dropped on its own; the remaining regions of the image are still returned.
"""

import logging

import numpy as np
from skimage.measure import regionprops

from pyama_morph.errors import FormatError, GeometryError
from pyama_morph.processing.geometry import signed_area
from pyama_morph.processing.segmentation.convert import (
    box_pixel_bounds,
    label_objects,
    polygon_pixels,
    validate_polygon,
)
from pyama_morph.types.objects import (
    BoxSource,
    MaskSource,
    PolygonSource,
    Region,
    SegmentationSource,
)

logger = logging.getLogger(__name__)


def _touches_border(bbox: tuple[int, int, int, int], shape: tuple[int, int]) -> bool:
    height, width = shape
    x0, y0, x1, y1 = bbox
    return x0 <= 0 or y0 <= 0 or x1 >= width - 1 or y1 >= height - 1


def _decode_mask(
    source: MaskSource, connectivity: int
) -> tuple[list[Region], list[GeometryError]]:
    labels = label_objects(source.data, source.resolved_kind(), connectivity)
    regions: list[Region] = []
    for prop in regionprops(labels):
        min_row, min_col, max_row, max_col = prop.bbox
        bbox = (int(min_col), int(min_row), int(max_col) - 1, int(max_row) - 1)
        regions.append(
            Region(
                object_id=int(prop.label),
                bbox=bbox,
                mask=np.asarray(prop.image, dtype=bool).copy(),
                area=float(prop.area),
                touches_border=_touches_border(bbox, labels.shape),
            )
        )
    return regions, []


def _infer_canvas(arrays: list[np.ndarray]) -> tuple[int, int]:
    """Smallest canvas holding every vertex, used when no image shape is known."""
    width = height = 1
    for points in arrays:
        if points.size and np.all(np.isfinite(points)):
            width = max(width, int(np.ceil(points[:, 0].max())) + 1)
            height = max(height, int(np.ceil(points[:, 1].max())) + 1)
    return height, width


def _region_from_pixels(
    object_id: int,
    rr: np.ndarray,
    cc: np.ndarray,
    area: float,
    shape: tuple[int, int],
    polygon: np.ndarray,
) -> Region:
    x0, x1 = int(cc.min()), int(cc.max())
    y0, y1 = int(rr.min()), int(rr.max())
    patch = np.zeros((y1 - y0 + 1, x1 - x0 + 1), dtype=bool)
    patch[rr - y0, cc - x0] = True
    bbox = (x0, y0, x1, y1)
    return Region(
        object_id=object_id,
        bbox=bbox,
        mask=patch,
        area=area,
        touches_border=_touches_border(bbox, shape),
        polygon=polygon,
    )


def _decode_polygons(
    source: PolygonSource, shape: tuple[int, int] | None, area_tolerance: float
) -> tuple[list[Region], list[GeometryError]]:
    arrays = []
    for idx, points in enumerate(source.polygons):
        try:
            arrays.append(np.asarray(points, dtype=np.float64))
        except (TypeError, ValueError) as exc:
            raise FormatError(f"Polygon {idx + 1} is not numeric: {exc}") from exc
    if shape is None:
        shape = _infer_canvas([a for a in arrays if a.ndim == 2 and a.shape[-1] == 2])

    regions: list[Region] = []
    errors: list[GeometryError] = []
    for idx, points in enumerate(arrays):
        object_id = idx + 1
        try:
            points = validate_polygon(points, area_tolerance)
            rr, cc = polygon_pixels(points, shape)
            if rr.size == 0:
                raise GeometryError("Polygon covers no pixel centre inside the image")
        except GeometryError as exc:
            exc.object_id = object_id
            errors.append(exc)
            continue
        area = abs(signed_area(points))
        regions.append(_region_from_pixels(object_id, rr, cc, area, shape, points))
    return regions, errors


def _decode_boxes(
    source: BoxSource, shape: tuple[int, int] | None
) -> tuple[list[Region], list[GeometryError]]:
    try:
        boxes = np.asarray(source.boxes, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise FormatError(f"Bounding boxes are not numeric: {exc}") from exc
    if boxes.size == 0:
        return [], []
    if boxes.ndim == 1 and boxes.shape[0] == 4:
        boxes = boxes[np.newaxis, :]
    if boxes.ndim != 2 or boxes.shape[1] != 4:
        raise FormatError(f"Bounding boxes must have shape (N, 4); got {boxes.shape}")
    if shape is None:
        finite = boxes[np.all(np.isfinite(boxes), axis=1)]
        if finite.size:
            shape = (
                max(int(np.ceil(finite[:, 3].max())), 1),
                max(int(np.ceil(finite[:, 2].max())), 1),
            )
        else:
            shape = (1, 1)

    regions: list[Region] = []
    errors: list[GeometryError] = []
    for idx, box in enumerate(boxes):
        object_id = idx + 1
        x_min, y_min, x_max, y_max = box
        try:
            if not np.all(np.isfinite(box)):
                raise GeometryError("Bounding box has non-finite coordinates")
            if x_max <= x_min or y_max <= y_min:
                raise GeometryError("Bounding box has non-positive width or height")
            x0, y0, x1, y1 = box_pixel_bounds(box, shape)
            if x1 < x0 or y1 < y0:
                raise GeometryError("Bounding box lies outside the image")
        except GeometryError as exc:
            exc.object_id = object_id
            errors.append(exc)
            continue
        bbox = (x0, y0, x1, y1)
        height, width = shape
        x_min, x_max = np.clip([x_min, x_max], 0.0, width)
        y_min, y_max = np.clip([y_min, y_max], 0.0, height)
        # Outline on the pixel-centre grid: edge coordinate e is centre e - 0.5
        outline = np.array(
            [
                [x_min - 0.5, y_min - 0.5],
                [x_max - 0.5, y_min - 0.5],
                [x_max - 0.5, y_max - 0.5],
                [x_min - 0.5, y_max - 0.5],
            ]
        )
        regions.append(
            Region(
                object_id=object_id,
                bbox=bbox,
                mask=np.ones((y1 - y0 + 1, x1 - x0 + 1), dtype=bool),
                area=float((x_max - x_min) * (y_max - y_min)),
                touches_border=_touches_border(bbox, shape),
                polygon=outline,
            )
        )
    return regions, errors


def decode_with_errors(
    source: SegmentationSource,
    shape: tuple[int, int] | None = None,
    connectivity: int = 2,
    area_tolerance: float = 0.05,
) -> tuple[list[Region], list[GeometryError]]:
    """Decode ``source`` and return the regions plus the per-region errors.

    Args:
        source: Mask, polygon or box segmentation
        shape: (H, W) of the image the segmentation belongs to; polygons and
            boxes are rasterized onto this canvas. Inferred from the vertices
            when omitted.
        connectivity: 1 for 4-neighbour, 2 for 8-neighbour components
        area_tolerance: Relative area change allowed when repairing a
            self-intersecting polygon

    Raises:
        FormatError: When the source itself is malformed
    """
    if isinstance(source, MaskSource):
        return _decode_mask(source, connectivity)
    if isinstance(source, PolygonSource):
        return _decode_polygons(source, shape, area_tolerance)
    if isinstance(source, BoxSource):
        return _decode_boxes(source, shape)
    raise FormatError(f"Unsupported segmentation source: {type(source).__name__}")


def decode(
    source: SegmentationSource,
    shape: tuple[int, int] | None = None,
    connectivity: int = 2,
    area_tolerance: float = 0.05,
) -> list[Region]:
    """Decode ``source`` into regions, logging and dropping invalid ones."""
    regions, errors = decode_with_errors(source, shape, connectivity, area_tolerance)
    for error in errors:
        logger.warning(f"Dropped object {error.object_id}: {error}")
    return regions


__all__ = ["decode", "decode_with_errors"]
