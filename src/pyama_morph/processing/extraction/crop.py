"""Cut padded, size-filtered crops around decoded regions."""

from dataclasses import dataclass, field

import numpy as np

from pyama_morph.errors import ConfigError
from pyama_morph.types.objects import ObjectCrop, Region, as_pixel_buffer

DROPPED_MIN_SIZE = "min_size"
DROPPED_BORDER = "border"


@dataclass
class ExtractionCounts:
    found: int = 0
    kept: int = 0
    dropped_min_size: int = 0
    dropped_border: int = 0
    skipped: list[tuple[int, str]] = field(default_factory=list)  # (object_id, reason)

    def merge(self, other: "ExtractionCounts") -> None:
        self.found += other.found
        self.kept += other.kept
        self.dropped_min_size += other.dropped_min_size
        self.dropped_border += other.dropped_border
        self.skipped.extend(other.skipped)

    def as_dict(self) -> dict[str, int]:
        return {
            "found": self.found,
            "kept": self.kept,
            "dropped_min_size": self.dropped_min_size,
            "dropped_border": self.dropped_border,
        }


def check_policy(pad: int, min_size: int) -> None:
    """Raise ConfigError for negative padding or minimum size."""
    if pad < 0:
        raise ConfigError(f"pad must be >= 0, got {pad}")
    if min_size < 0:
        raise ConfigError(f"min_size must be >= 0, got {min_size}")


def occupancy(regions: list[Region], shape: tuple[int, int]) -> np.ndarray:
    """Label image of every region's membership, later regions on top."""
    occupied = np.zeros(shape, dtype=np.int64)
    for region in regions:
        x0, y0, x1, y1 = region.bbox
        window = occupied[y0 : y1 + 1, x0 : x1 + 1]
        window[region.mask] = region.object_id
    return occupied


def too_small(region: Region, min_size: int) -> bool:
    return max(region.width, region.height) < min_size


def extract(
    image: np.ndarray,
    region: Region,
    pad: int = 1,
    min_size: int = 1,
    drop_borders: bool = False,
    occupied: np.ndarray | None = None,
) -> ObjectCrop | None:
    """Crop ``region`` out of ``image``.

    Returns None when the region is smaller than ``min_size`` along its larger
    side, or when ``drop_borders`` is set and its unpadded bounding box
    touches an image edge. The padded window is clamped to the image.

    Args:
        image: (H, W) or (H, W, C) pixel buffer
        region: Region to crop
        pad: Pixels added on every side of the bounding box
        min_size: Smallest accepted max(width, height)
        drop_borders: Drop regions touching the image border
        occupied: Label image of all regions, used to mark neighbours inside
            the window. Neighbours are not marked when omitted.
    """
    check_policy(pad, min_size)
    if too_small(region, min_size):
        return None
    if drop_borders and region.touches_border:
        return None

    pixels = as_pixel_buffer(image)
    height, width = pixels.shape[:2]
    bx0, by0, bx1, by1 = region.bbox
    x0, y0 = max(bx0 - pad, 0), max(by0 - pad, 0)
    x1, y1 = min(bx1 + pad, width - 1), min(by1 + pad, height - 1)

    local_mask = np.zeros((y1 - y0 + 1, x1 - x0 + 1), dtype=bool)
    local_mask[by0 - y0 : by1 - y0 + 1, bx0 - x0 : bx1 - x0 + 1] = region.mask

    if occupied is not None:
        window = occupied[y0 : y1 + 1, x0 : x1 + 1]
        neighbor_mask = (window > 0) & (window != region.object_id) & ~local_mask
    else:
        neighbor_mask = np.zeros_like(local_mask)

    return ObjectCrop(
        region_id=region.object_id,
        image=pixels[y0 : y1 + 1, x0 : x1 + 1].copy(),
        local_mask=local_mask,
        neighbor_mask=neighbor_mask,
        origin=(x0, y0),
        region=region,
    )


def extract_all(
    image: np.ndarray,
    regions: list[Region],
    pad: int = 1,
    min_size: int = 1,
    drop_borders: bool = False,
) -> tuple[list[ObjectCrop], ExtractionCounts]:
    """Extract every region in input order and count the drops by reason."""
    check_policy(pad, min_size)
    pixels = as_pixel_buffer(image)
    occupied = occupancy(regions, pixels.shape[:2])
    counts = ExtractionCounts(found=len(regions))
    crops: list[ObjectCrop] = []
    for region in regions:
        if too_small(region, min_size):
            counts.dropped_min_size += 1
            counts.skipped.append((region.object_id, DROPPED_MIN_SIZE))
            continue
        if drop_borders and region.touches_border:
            counts.dropped_border += 1
            counts.skipped.append((region.object_id, DROPPED_BORDER))
            continue
        crop = extract(pixels, region, pad, min_size, drop_borders, occupied)
        crops.append(crop)
    counts.kept = len(crops)
    return crops, counts


__all__ = ["ExtractionCounts", "extract", "extract_all", "occupancy"]
