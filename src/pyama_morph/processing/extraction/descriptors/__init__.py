"""Descriptor families and registry.

Each pixel family module defines ``NAMES`` and a ``compute(ctx)`` function
taking a DescriptorContext and returning an array aligned with ``NAMES``.
Form and bounding-box descriptors work on the outline and region instead.
"""

from collections.abc import Callable

import numpy as np

from pyama_morph.processing.extraction.descriptors import bbox
from pyama_morph.processing.extraction.descriptors import form
from pyama_morph.processing.extraction.descriptors import intensity
from pyama_morph.processing.extraction.descriptors import moments
from pyama_morph.processing.extraction.descriptors import texture
from pyama_morph.processing.extraction.descriptors import zernike
from pyama_morph.processing.extraction.descriptors.context import DescriptorContext
from pyama_morph.types.mode import Family

# =============================================================================
# FAMILY REGISTRATION (EXPLICIT)
# =============================================================================
# Families computed on the complete / foreground / background populations.
PIXEL_DESCRIPTORS: dict[Family, Callable[[DescriptorContext], np.ndarray]] = {}
PIXEL_DESCRIPTORS[Family.INTENSITY] = intensity.compute
PIXEL_DESCRIPTORS[Family.MOMENTS] = moments.compute
PIXEL_DESCRIPTORS[Family.TEXTURE] = texture.compute
PIXEL_DESCRIPTORS[Family.ZERNIKE] = zernike.compute

DESCRIPTOR_NAMES: dict[Family, list[str]] = {
    Family.INTENSITY: intensity.NAMES,
    Family.MOMENTS: moments.NAMES,
    Family.TEXTURE: texture.NAMES,
    Family.ZERNIKE: zernike.NAMES,
}

# The binary mask population always gets these families.
MASK_FAMILIES: tuple[Family, ...] = (Family.MOMENTS, Family.ZERNIKE)

FORM_NAMES = form.NAMES
BBOX_NAMES = bbox.NAMES


def list_families() -> list[str]:
    """Return the flags of all registered pixel families."""
    return [family.value for family in PIXEL_DESCRIPTORS]


def list_descriptors(family: Family) -> list[str]:
    """Return the descriptor names of one family."""
    return list(DESCRIPTOR_NAMES[family])


def get_descriptor(family: Family) -> Callable[[DescriptorContext], np.ndarray]:
    """Get the compute function for a pixel family."""
    return PIXEL_DESCRIPTORS[family]


__all__ = [
    "DescriptorContext",
    "PIXEL_DESCRIPTORS",
    "DESCRIPTOR_NAMES",
    "MASK_FAMILIES",
    "FORM_NAMES",
    "BBOX_NAMES",
    "list_families",
    "list_descriptors",
    "get_descriptor",
    "bbox",
    "form",
]
