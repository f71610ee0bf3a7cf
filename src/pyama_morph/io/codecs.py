"""
Image and segmentation file decoding and encoding.

Supported inputs:
- images: ``.npy`` (numpy) and any format ``skimage.io.imread`` reads
  (PNG, TIFF, JPEG, BMP, ...)
- segmentations: mask images or ``.npy`` arrays, and ``.json`` files holding
  polygons or bounding boxes under one of the recognised keys
"""

import json
from pathlib import Path

import numpy as np
from skimage import io as skio

from pyama_morph.errors import FormatError, IoError
from pyama_morph.types.objects import (
    BoxSource,
    MaskKind,
    MaskSource,
    PolygonSource,
    SegmentationSource,
)


IMAGE_SUFFIXES = (
    ".npy",
    ".png",
    ".tif",
    ".tiff",
    ".jpg",
    ".jpeg",
    ".bmp",
    ".gif",
    ".webp",
)
ARRAY_SUFFIXES = (".json",)

POLYGON_JSON_KEYS = ("polygons", "contours", "outlines", "shapes", "points")
BOUNDING_BOX_JSON_KEYS = (
    "bounding_boxes",
    "bboxes",
    "bbox",
    "bounding_box",
    "boxes",
    "box",
    "xyxy",
)


# =============================================================================
# DECODING
# =============================================================================


def decode_image(path: Path) -> np.ndarray:
    """Read an image as a (H, W) or (H, W, C) array.

    Raises:
        IoError: If the file is missing or cannot be read
        FormatError: If the decoded array is not 2-D or 3-D
    """
    path = Path(path)
    if not path.is_file():
        raise IoError(f"Image file not found: {path}")
    try:
        if path.suffix.lower() == ".npy":
            data = np.load(path, allow_pickle=False)
        else:
            data = skio.imread(path)
    except (OSError, ValueError) as exc:
        raise IoError(f"Failed to read {path}: {exc}") from exc
    data = np.asarray(data)
    if data.ndim not in (2, 3):
        raise FormatError(f"{path.name}: expected a 2-D or (H, W, C) array, got {data.shape}")
    return data


def _read_json(path: Path) -> dict | list:
    if not path.is_file():
        raise IoError(f"Segmentation file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise IoError(f"Failed to read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise FormatError(f"{path.name}: invalid JSON: {exc}") from exc
    if not isinstance(data, (dict, list)):
        raise FormatError(f"{path.name}: JSON must contain an object or an array")
    return data


def _polygons(entries, name: str, key: str) -> PolygonSource:
    if not isinstance(entries, list):
        raise FormatError(f"{name}: '{key}' must be a list of polygons")
    polygons = []
    for idx, entry in enumerate(entries):
        try:
            polygons.append(np.asarray(entry, dtype=np.float64))
        except (TypeError, ValueError) as exc:
            raise FormatError(f"{name}: polygon {idx} is not numeric") from exc
    return PolygonSource(polygons=polygons)


def _boxes(entries, name: str, key: str) -> BoxSource:
    try:
        boxes = np.asarray(entries, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise FormatError(f"{name}: '{key}' must be an (N, 4) array") from exc
    if boxes.size == 0:
        boxes = boxes.reshape(0, 4)
    if boxes.ndim != 2 or boxes.shape[1] != 4:
        raise FormatError(f"{name}: '{key}' must be an (N, 4) array, got {boxes.shape}")
    return BoxSource(boxes=boxes)


def _is_box_list(entries: list) -> bool:
    """A bare array holds boxes when every entry is a flat list of 4 numbers."""
    return bool(entries) and all(
        isinstance(entry, list)
        and len(entry) == 4
        and all(isinstance(v, (int, float)) for v in entry)
        for entry in entries
    )


def parse_segmentation_json(data: dict | list, name: str = "<json>") -> SegmentationSource:
    """Build a polygon or box source from decoded JSON.

    A mapping is searched for the recognised polygon keys first, then the box
    keys. A bare array is read as an (N, 4) box list when every entry is four
    numbers and as an (N, K, 2) polygon list otherwise.
    """
    if isinstance(data, list):
        if _is_box_list(data):
            return _boxes(data, name, "boxes")
        return _polygons(data, name, "polygons")
    for key in POLYGON_JSON_KEYS:
        if key in data:
            return _polygons(data[key], name, key)
    for key in BOUNDING_BOX_JSON_KEYS:
        if key in data:
            return _boxes(data[key], name, key)
    raise FormatError(
        f"{name}: no recognised key; expected one of "
        f"{', '.join(POLYGON_JSON_KEYS + BOUNDING_BOX_JSON_KEYS)}"
    )


def decode_segmentation(path: Path, kind: MaskKind | None = None) -> SegmentationSource:
    """Read a mask image, mask array or polygon/box JSON file.

    Args:
        path: Segmentation file
        kind: Mask encoding, inferred from the data when None
    """
    path = Path(path)
    if path.suffix.lower() in ARRAY_SUFFIXES:
        return parse_segmentation_json(_read_json(path), path.name)
    return MaskSource(data=decode_image(path), kind=kind)


# =============================================================================
# ENCODING
# =============================================================================


def _write_json(path: Path, payload: dict) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle)
    except OSError as exc:
        raise IoError(f"Failed to write {path}: {exc}") from exc


def write_polygons_json(path: Path, polygons: list[np.ndarray], key: str = "polygons") -> None:
    if key not in POLYGON_JSON_KEYS:
        raise ValueError(f"Unsupported polygon key: {key}")
    _write_json(path, {key: [np.asarray(p, dtype=np.float64).tolist() for p in polygons]})


def write_boxes_json(path: Path, boxes: np.ndarray, key: str = "bounding_boxes") -> None:
    if key not in BOUNDING_BOX_JSON_KEYS:
        raise ValueError(f"Unsupported bounding box key: {key}")
    _write_json(path, {key: np.asarray(boxes, dtype=np.float64).reshape(-1, 4).tolist()})


def write_array(path: Path, data: np.ndarray) -> None:
    """Save ``data`` as ``.npy`` or as an image file chosen by suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        if path.suffix.lower() == ".npy":
            np.save(path, data)
        else:
            skio.imsave(path, data, check_contrast=False)
    except (OSError, ValueError) as exc:
        raise IoError(f"Failed to write {path}: {exc}") from exc


def write_mask(path: Path, mask: np.ndarray) -> None:
    """Save an integer mask using the smallest unsigned dtype that holds it."""
    mask = np.asarray(mask)
    top = int(mask.max()) if mask.size else 0
    if top <= np.iinfo(np.uint8).max:
        dtype = np.uint8
    elif top <= np.iinfo(np.uint16).max:
        dtype = np.uint16
    else:
        dtype = np.uint32
    write_array(path, mask.astype(dtype))


__all__ = [
    "IMAGE_SUFFIXES",
    "POLYGON_JSON_KEYS",
    "BOUNDING_BOX_JSON_KEYS",
    "decode_image",
    "decode_segmentation",
    "parse_segmentation_json",
    "write_polygons_json",
    "write_boxes_json",
    "write_array",
    "write_mask",
]
