"""Bounding-box descriptors of a region (pixel-inclusive image coordinates)."""

import numpy as np

from pyama_morph.types.objects import Region

NAMES = [
    "bbox_x_min",
    "bbox_y_min",
    "bbox_x_max",
    "bbox_y_max",
    "bbox_width",
    "bbox_height",
    "bbox_area",
]


def compute(region: Region) -> np.ndarray:
    x_min, y_min, x_max, y_max = region.bbox
    width, height = region.width, region.height
    return np.array(
        [x_min, y_min, x_max, y_max, width, height, width * height],
        dtype=np.float64,
    )
