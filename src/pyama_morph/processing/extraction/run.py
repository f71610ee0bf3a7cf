"""Object profiling for one image (functional API).

Pipeline:
- Decode the segmentation into regions
- Cut padded crops, dropping small and border objects
- Compute the descriptor families selected by the mode for every crop

Columns are named ``{population}_{descriptor}_ch_{k}`` for the complete,
foreground and background pixel populations, ``mask_{descriptor}`` for the
binary object mask, and ``form_*``, ``bbox_*`` and ``embedding_{k}`` for the
remaining outputs. The column list depends only on the mode, the channel
count and the embedding size, so every record of a run has the same columns.
"""

from dataclasses import dataclass, field

import numpy as np

from pyama_morph.embedding import Embedder, embed_crop, embedding_columns
from pyama_morph.errors import FormatError, GeometryError
from pyama_morph.processing.extraction.crop import ExtractionCounts, extract_all
from pyama_morph.processing.extraction.descriptors import (
    BBOX_NAMES,
    DESCRIPTOR_NAMES,
    FORM_NAMES,
    MASK_FAMILIES,
    DescriptorContext,
    bbox,
    form,
    get_descriptor,
)
from pyama_morph.processing.segmentation.convert import region_outline
from pyama_morph.processing.segmentation.decode import decode_with_errors
from pyama_morph.types.mode import PIXEL_POPULATIONS, Mode, Population
from pyama_morph.types.objects import (
    DescriptorRecord,
    MaskSource,
    ObjectCrop,
    SegmentationSource,
    as_pixel_buffer,
)


@dataclass
class ImageProfile:
    """Crops or records plus bookkeeping for one image."""

    records: list[DescriptorRecord] = field(default_factory=list)
    crops: list[ObjectCrop] = field(default_factory=list)
    counts: ExtractionCounts = field(default_factory=ExtractionCounts)
    geometry_errors: list[GeometryError] = field(default_factory=list)
    undefined: set[str] = field(default_factory=set)


# =============================================================================
# COLUMNS
# =============================================================================


def population_mask(crop: ObjectCrop, population: Population) -> np.ndarray:
    """Pixels of ``crop`` that belong to a pixel population."""
    if population == Population.COMPLETE:
        return np.ones(crop.shape, dtype=bool)
    if population == Population.FOREGROUND:
        return crop.local_mask
    if population == Population.BACKGROUND:
        return ~crop.local_mask & ~crop.neighbor_mask
    raise ValueError(f"{population!r} is not a pixel population")


def descriptor_columns(mode: Mode, channels: int, embed_dim: int = 0) -> list[str]:
    """Run-wide descriptor column names, in output order."""
    columns: list[str] = []
    for population in mode.ordered_populations():
        if population == Population.BOUNDING_BOX:
            columns.extend(BBOX_NAMES)
        elif population == Population.POLYGON:
            columns.extend(FORM_NAMES)
        elif population in PIXEL_POPULATIONS:
            prefix = PIXEL_POPULATIONS[population]
            for family in mode.ordered_families():
                for k in range(channels):
                    columns.extend(
                        f"{prefix}_{name}_ch_{k}" for name in DESCRIPTOR_NAMES[family]
                    )
        elif population == Population.MASK:
            for family in MASK_FAMILIES:
                columns.extend(f"mask_{name}" for name in DESCRIPTOR_NAMES[family])
        elif population == Population.EMBEDDING:
            columns.extend(embedding_columns(embed_dim))
    return columns


# =============================================================================
# DESCRIPTORS
# =============================================================================


def describe(
    crop: ObjectCrop,
    mode: Mode,
    embedder: Embedder | None = None,
    connectivity: int = 2,
) -> tuple[dict[str, float], set[str]]:
    """Compute every descriptor the mode selects for one crop.

    Returns:
        (features, undefined) where ``features`` is ordered like
        ``descriptor_columns`` and ``undefined`` names the columns that came
        out as NaN
    """
    features: dict[str, float] = {}

    def _add(names, values) -> None:
        for name, value in zip(names, values):
            features[name] = float(value)

    for population in mode.ordered_populations():
        if population == Population.BOUNDING_BOX:
            _add(BBOX_NAMES, bbox.compute(crop.region))
        elif population == Population.POLYGON:
            outline = region_outline(crop.region, connectivity)
            outline = outline - np.array(crop.origin, dtype=np.float64)
            _add(FORM_NAMES, form.compute(outline))
        elif population in PIXEL_POPULATIONS:
            prefix = PIXEL_POPULATIONS[population]
            mask = population_mask(crop, population)
            for family in mode.ordered_families():
                compute = get_descriptor(family)
                for k in range(crop.channels):
                    ctx = DescriptorContext(image=crop.image[..., k], mask=mask)
                    names = [
                        f"{prefix}_{name}_ch_{k}" for name in DESCRIPTOR_NAMES[family]
                    ]
                    _add(names, compute(ctx))
        elif population == Population.MASK:
            ctx = DescriptorContext(
                image=crop.local_mask.astype(np.float64), mask=crop.local_mask
            )
            for family in MASK_FAMILIES:
                names = [f"mask_{name}" for name in DESCRIPTOR_NAMES[family]]
                _add(names, get_descriptor(family)(ctx))
        elif population == Population.EMBEDDING:
            if embedder is None:
                raise ValueError("Embedding requested without an embedder")
            _add(embedding_columns(embedder.dim), embed_crop(embedder, crop))

    undefined = {name for name, value in features.items() if np.isnan(value)}
    return features, undefined


# =============================================================================
# PER-IMAGE PROFILING
# =============================================================================


def crop_image(
    image_id: str,
    image: np.ndarray,
    source: SegmentationSource,
    pad: int = 1,
    min_size: int = 1,
    drop_borders: bool = False,
    connectivity: int = 2,
    area_tolerance: float = 0.05,
    channels: int | None = None,
) -> ImageProfile:
    """Decode the segmentation and cut the crops of one image.

    Raises:
        FormatError: When the image and segmentation do not fit together or
            the image has an unexpected channel count
    """
    pixels = as_pixel_buffer(image)
    height, width, n_channels = pixels.shape
    if channels is not None and n_channels != channels:
        raise FormatError(
            f"Image {image_id} has {n_channels} channels, expected {channels}"
        )
    if isinstance(source, MaskSource):
        mask_shape = np.asarray(source.data).shape[:2]
        if mask_shape != (height, width):
            raise FormatError(
                f"Mask shape {mask_shape} does not match image shape {(height, width)}"
            )

    regions, errors = decode_with_errors(
        source, (height, width), connectivity, area_tolerance
    )
    crops, counts = extract_all(pixels, regions, pad, min_size, drop_borders)
    counts.found += len(errors)
    return ImageProfile(crops=crops, counts=counts, geometry_errors=errors)


def profile_image(
    image_id: str,
    image: np.ndarray,
    source: SegmentationSource,
    mode: Mode,
    pad: int = 1,
    min_size: int = 1,
    drop_borders: bool = False,
    connectivity: int = 2,
    area_tolerance: float = 0.05,
    channels: int | None = None,
    embedder: Embedder | None = None,
) -> ImageProfile:
    """Decode, crop and describe every object of one image."""
    profile = crop_image(
        image_id,
        image,
        source,
        pad=pad,
        min_size=min_size,
        drop_borders=drop_borders,
        connectivity=connectivity,
        area_tolerance=area_tolerance,
        channels=channels,
    )
    for crop in profile.crops:
        features, undefined = describe(crop, mode, embedder, connectivity)
        profile.records.append(
            DescriptorRecord(image_id=image_id, object_id=crop.region_id, features=features)
        )
        profile.undefined |= undefined
    profile.crops = []
    return profile


__all__ = [
    "ImageProfile",
    "population_mask",
    "descriptor_columns",
    "describe",
    "crop_image",
    "profile_image",
]
