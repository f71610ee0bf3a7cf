"""Object extraction and descriptor computation."""

from pyama_morph.processing.extraction.crop import ExtractionCounts, extract, extract_all
from pyama_morph.processing.extraction.measure import (
    image_columns,
    measure_image,
    measure_polygons,
)
from pyama_morph.processing.extraction.run import (
    crop_image,
    ImageProfile,
    describe,
    descriptor_columns,
    profile_image,
)

__all__ = [
    "ExtractionCounts",
    "extract",
    "extract_all",
    "ImageProfile",
    "crop_image",
    "describe",
    "descriptor_columns",
    "profile_image",
    "image_columns",
    "measure_image",
    "measure_polygons",
]
