"""Dataclasses shared across decoding, extraction and the workflow."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Union

import numpy as np

from pyama_morph.errors import FormatError

MaskKind = Literal["binary", "integer"]
BBox = tuple[int, int, int, int]  # (x_min, y_min, x_max, y_max), inclusive pixels


# =============================================================================
# SEGMENTATION SOURCES
# =============================================================================


@dataclass(frozen=True)
class MaskSource:
    """Pixel-grid segmentation; 0 is background.

    ``kind`` distinguishes binary masks (any positive value is foreground and
    connected components define objects) from integer masks (each positive
    value is one object). ``None`` infers: at most one distinct positive value
    is treated as binary.
    """

    data: np.ndarray
    kind: MaskKind | None = None

    def resolved_kind(self) -> MaskKind:
        if self.kind is not None:
            return self.kind
        values = np.unique(self.data)
        values = values[values > 0]
        return "binary" if values.size <= 1 else "integer"


@dataclass(frozen=True)
class PolygonSource:
    """Ordered polygons, each a (K, 2) array of (x, y) vertices."""

    polygons: list[np.ndarray]


@dataclass(frozen=True)
class BoxSource:
    """(N, 4) array of [x_min, y_min, x_max, y_max] in pixel-edge coordinates."""

    boxes: np.ndarray


SegmentationSource = Union[MaskSource, PolygonSource, BoxSource]


@dataclass
class ImagePair:
    """One unit of work: an image with its segmentation.

    Either field may be a path; paths are decoded by the worker that
    processes the pair.
    """

    image_id: str
    image: np.ndarray | Path | str
    segmentation: SegmentationSource | Path | str


# =============================================================================
# REGIONS AND CROPS
# =============================================================================


@dataclass
class Region:
    object_id: int
    bbox: BBox
    mask: np.ndarray  # bool membership patch covering bbox
    area: float
    touches_border: bool
    polygon: np.ndarray | None = None  # (K, 2) image coordinates

    @property
    def width(self) -> int:
        return self.bbox[2] - self.bbox[0] + 1

    @property
    def height(self) -> int:
        return self.bbox[3] - self.bbox[1] + 1

    @property
    def pixel_count(self) -> int:
        return int(np.count_nonzero(self.mask))


@dataclass
class ObjectCrop:
    """Padded sub-image around one region plus its local membership."""

    region_id: int
    image: np.ndarray  # (h, w, C) float64
    local_mask: np.ndarray  # (h, w) bool, object pixels only
    neighbor_mask: np.ndarray  # (h, w) bool, pixels of other objects
    origin: tuple[int, int]  # (x0, y0) of local (0, 0) in the source image
    region: Region

    @property
    def shape(self) -> tuple[int, int]:
        return self.local_mask.shape

    @property
    def channels(self) -> int:
        return self.image.shape[2]

    def to_source(self, x: float, y: float) -> tuple[float, float]:
        return x + self.origin[0], y + self.origin[1]


@dataclass
class DescriptorRecord:
    image_id: str
    object_id: int
    features: dict[str, float] = field(default_factory=dict)

    def as_row(self) -> dict[str, object]:
        return {"image_id": self.image_id, "object_id": self.object_id, **self.features}


def as_pixel_buffer(image: np.ndarray) -> np.ndarray:
    """Return an (H, W, C) float64 view of a 2-D or channel-last image."""
    image = np.asarray(image)
    if image.ndim == 2:
        image = image[..., np.newaxis]
    if image.ndim != 3:
        raise FormatError(
            f"Images must be 2-D or (H, W, C); got array with shape {image.shape}"
        )
    return image.astype(np.float64, copy=False)


__all__ = [
    "BBox",
    "MaskKind",
    "MaskSource",
    "PolygonSource",
    "BoxSource",
    "SegmentationSource",
    "ImagePair",
    "Region",
    "ObjectCrop",
    "DescriptorRecord",
    "as_pixel_buffer",
]
