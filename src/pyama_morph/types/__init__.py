"""Shared types for pyama-morph."""

from pyama_morph.types.mode import (
    DEFAULT_FAMILIES,
    DEFAULT_POPULATIONS,
    Family,
    Mode,
    Population,
)
from pyama_morph.types.objects import (
    BoxSource,
    DescriptorRecord,
    ImagePair,
    MaskSource,
    ObjectCrop,
    PolygonSource,
    Region,
    SegmentationSource,
    as_pixel_buffer,
)

__all__ = [
    "DEFAULT_FAMILIES",
    "DEFAULT_POPULATIONS",
    "Family",
    "Mode",
    "Population",
    "BoxSource",
    "DescriptorRecord",
    "ImagePair",
    "MaskSource",
    "ObjectCrop",
    "PolygonSource",
    "Region",
    "SegmentationSource",
    "as_pixel_buffer",
]
