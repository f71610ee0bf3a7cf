"""Pair image files with their segmentation files."""

import logging
from pathlib import Path

from pyama_morph.errors import ConfigError
from pyama_morph.io.codecs import ARRAY_SUFFIXES, IMAGE_SUFFIXES
from pyama_morph.types.objects import ImagePair

logger = logging.getLogger(__name__)


def discover_files(
    directory: Path, substring: str = "", suffixes: tuple[str, ...] = IMAGE_SUFFIXES
) -> dict[str, Path]:
    """Map ``stem with substring removed`` -> path for matching files."""
    found: dict[str, Path] = {}
    for path in sorted(Path(directory).iterdir()):
        if not path.is_file() or path.suffix.lower() not in suffixes:
            continue
        if substring and substring not in path.stem:
            continue
        key = path.stem.replace(substring, "", 1) if substring else path.stem
        found[key] = path
    return found


def collect_pairs(
    images_dir: Path,
    segmentation_dir: Path | None = None,
    image_substring: str = "",
    segmentation_substring: str = "",
) -> list[ImagePair]:
    """Match images and segmentations by file stem.

    A file is a candidate when its stem contains the substring; the key used
    for matching is the stem with the substring removed. Pairs are returned
    sorted by key. Images without a segmentation are skipped with a warning.

    Raises:
        ConfigError: If a directory is missing, both kinds share a directory
            with identical substrings, or no pair is found
    """
    images_dir = Path(images_dir)
    segmentation_dir = Path(segmentation_dir) if segmentation_dir is not None else images_dir
    for directory in (images_dir, segmentation_dir):
        if not directory.is_dir():
            raise ConfigError(f"Directory not found: {directory}")
    if images_dir.resolve() == segmentation_dir.resolve() and image_substring == segmentation_substring:
        raise ConfigError(
            "If images and segmentations are located in the same directory, "
            "different image and segmentation substrings must be provided."
        )

    images = discover_files(images_dir, image_substring, IMAGE_SUFFIXES)
    if images_dir.resolve() == segmentation_dir.resolve() and segmentation_substring:
        images = {
            key: path
            for key, path in images.items()
            if segmentation_substring not in path.stem
        }
    if not images:
        raise ConfigError(
            f"No image files were detected in {images_dir}. "
            "Please check your path and/or substring identifier."
        )
    segmentations = discover_files(
        segmentation_dir, segmentation_substring, IMAGE_SUFFIXES + ARRAY_SUFFIXES
    )
    if not segmentations:
        raise ConfigError(
            f"No segmentation files were detected in {segmentation_dir}. "
            "Please check your path and/or substring identifier."
        )

    pairs: list[ImagePair] = []
    for key in sorted(images):
        if key not in segmentations:
            logger.warning(f"No segmentation found for {images[key].name}; skipping")
            continue
        pairs.append(ImagePair(image_id=key, image=images[key], segmentation=segmentations[key]))
    if not pairs:
        raise ConfigError("No image/segmentation pairs were found")
    return pairs


__all__ = ["collect_pairs", "discover_files"]
