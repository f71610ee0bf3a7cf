"""Object extraction, segmentation conversion and morphological descriptors."""

__version__ = "0.1.0"
