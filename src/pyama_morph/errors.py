"""
Error taxonomy for object extraction and profiling.

Errors are scoped by how far they propagate:
- GeometryError: one region is dropped, siblings in the same image continue
- IoError / FormatError: one image pair contributes no records
- ConfigError: the whole run is rejected before any work is scheduled
"""


class MorphError(Exception):
    """Base class for all pyama-morph errors."""


class IoError(MorphError):
    """An image or segmentation file is missing or unreadable."""


class FormatError(MorphError):
    """Segmentation or image data has an unexpected schema, dtype or key."""


class GeometryError(MorphError):
    """A region is degenerate (too few vertices, zero area, self-intersecting)."""

    def __init__(self, message: str, object_id: int | None = None) -> None:
        super().__init__(message)
        self.object_id = object_id


class ConfigError(MorphError):
    """Run configuration is invalid (mode string, padding, sizes, paths)."""


__all__ = [
    "MorphError",
    "IoError",
    "FormatError",
    "GeometryError",
    "ConfigError",
]
