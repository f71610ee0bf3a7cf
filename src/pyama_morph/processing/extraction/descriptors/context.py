"""Descriptor context dataclass for pixel-population descriptors."""

from dataclasses import dataclass

import numpy as np


@dataclass
class DescriptorContext:
    """One channel of a crop restricted to one pixel population."""

    image: np.ndarray  # (h, w) float64 samples of a single channel
    mask: np.ndarray  # (h, w) bool, pixels that belong to the population

    @property
    def values(self) -> np.ndarray:
        return self.image[self.mask]

    @property
    def weights(self) -> np.ndarray:
        """Samples inside the population, zero elsewhere."""
        return np.where(self.mask, self.image, 0.0)


def nan_result(names: list[str]) -> np.ndarray:
    return np.full(len(names), np.nan, dtype=np.float64)
