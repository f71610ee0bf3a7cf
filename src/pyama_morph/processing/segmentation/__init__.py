"""Segmentation decoding and mask/polygon/box conversions."""

from pyama_morph.processing.segmentation.convert import (
    boxes_to_mask,
    mask_iou,
    mask_to_boxes,
    mask_to_polygon,
    mask_to_polygons,
    polygon_to_mask,
    polygons_to_mask,
)
from pyama_morph.processing.segmentation.decode import decode, decode_with_errors

__all__ = [
    "decode",
    "decode_with_errors",
    "mask_to_polygon",
    "mask_to_polygons",
    "mask_to_boxes",
    "polygon_to_mask",
    "polygons_to_mask",
    "boxes_to_mask",
    "mask_iou",
]
