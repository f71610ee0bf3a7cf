"""Per-object crop and mask files."""

import logging
from pathlib import Path

import numpy as np

from pyama_morph.errors import ConfigError
from pyama_morph.io.codecs import write_array
from pyama_morph.types.objects import ObjectCrop

logger = logging.getLogger(__name__)

OBJECT_FORMATS = ("npy", "tif", "tiff", "png")


def _to_image(data: np.ndarray, image_format: str) -> np.ndarray:
    """Prepare a crop for saving; image formats get integer samples."""
    if data.ndim == 3 and data.shape[2] == 1:
        data = data[..., 0]
    if image_format == "npy":
        return data
    if image_format == "png":
        return np.clip(np.rint(data), 0, np.iinfo(np.uint16).max).astype(np.uint16)
    return data.astype(np.float32)


class ObjectSink:
    """Writes ``{image_id}_{object_id}.{ext}`` and ``{image_id}_{object_id}_mask.{ext}``.

    ``write_record`` takes a batch of ``(image_id, crop)`` pairs.
    """

    def __init__(self, directory: Path, image_format: str = "npy", masks: bool = True) -> None:
        image_format = image_format.lower().lstrip(".")
        if image_format not in OBJECT_FORMATS:
            raise ConfigError(
                f"Unsupported object format '{image_format}'; use one of {', '.join(OBJECT_FORMATS)}"
            )
        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Cannot create output directory {directory}: {exc}") from exc
        self.directory = directory
        self.image_format = image_format
        self.masks = masks
        self.objects_written = 0

    def paths_for(self, image_id: str, object_id: int) -> tuple[Path, Path]:
        stem = f"{image_id}_{object_id}"
        return (
            self.directory / f"{stem}.{self.image_format}",
            self.directory / f"{stem}_mask.{self.image_format}",
        )

    def write_record(self, batch: list[tuple[str, ObjectCrop]]) -> None:
        for image_id, crop in batch:
            image_path, mask_path = self.paths_for(image_id, crop.region_id)
            write_array(image_path, _to_image(crop.image, self.image_format))
            if self.masks:
                if self.image_format == "npy":
                    mask = crop.local_mask
                else:
                    mask = crop.local_mask.astype(np.uint8) * 255
                write_array(mask_path, mask)
            self.objects_written += 1

    def close(self) -> None:
        logger.debug(f"Wrote {self.objects_written} objects to {self.directory}")

    def __enter__(self) -> "ObjectSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["ObjectSink", "OBJECT_FORMATS"]
