"""Descriptors for inputs that need no segmentation pairing.

- ``measure_image``: one pixel family over every pixel of an image that is
  already cropped to a single object, columns ``{descriptor}_ch_{k}``
- ``measure_polygons``: form descriptors for each polygon of a polygon
  source, in image coordinates
"""

import numpy as np

from pyama_morph.errors import GeometryError
from pyama_morph.processing.extraction.descriptors import (
    DESCRIPTOR_NAMES,
    FORM_NAMES,
    DescriptorContext,
    form,
    get_descriptor,
)
from pyama_morph.processing.segmentation.convert import validate_polygon
from pyama_morph.types.mode import Family
from pyama_morph.types.objects import PolygonSource, as_pixel_buffer


def image_columns(family: Family, channels: int) -> list[str]:
    return [
        f"{name}_ch_{k}" for k in range(channels) for name in DESCRIPTOR_NAMES[family]
    ]


def measure_image(image: np.ndarray, family: Family) -> dict[str, float]:
    """Compute one pixel family on all pixels of each channel of ``image``."""
    pixels = as_pixel_buffer(image)
    compute = get_descriptor(family)
    mask = np.ones(pixels.shape[:2], dtype=bool)
    features: dict[str, float] = {}
    for k in range(pixels.shape[2]):
        values = compute(DescriptorContext(image=pixels[..., k], mask=mask))
        for name, value in zip(DESCRIPTOR_NAMES[family], values):
            features[f"{name}_ch_{k}"] = float(value)
    return features


def measure_polygons(
    source: PolygonSource, area_tolerance: float = 0.05
) -> tuple[list[tuple[int, dict[str, float]]], list[GeometryError]]:
    """Form descriptors for every valid polygon.

    Returns:
        ([(object_id, features), ...], errors) with 1-based object ids; an
        invalid polygon contributes a GeometryError instead of a row
    """
    rows: list[tuple[int, dict[str, float]]] = []
    errors: list[GeometryError] = []
    for idx, points in enumerate(source.polygons):
        object_id = idx + 1
        try:
            points = validate_polygon(points, area_tolerance)
        except GeometryError as exc:
            exc.object_id = object_id
            errors.append(exc)
            continue
        values = form.compute(points)
        rows.append((object_id, {n: float(v) for n, v in zip(FORM_NAMES, values)}))
    return rows, errors


__all__ = ["image_columns", "measure_image", "measure_polygons"]
