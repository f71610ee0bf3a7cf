"""Interface for an external neural embedding provider.

The provider is a black box that maps a crop to a fixed-length vector. Any
model weights or cache location must be given to the provider when it is
constructed; nothing here reads environment state. Providers used with a
process pool must be picklable.
"""

from typing import Protocol, runtime_checkable

import numpy as np

from pyama_morph.errors import FormatError
from pyama_morph.types.objects import ObjectCrop


@runtime_checkable
class Embedder(Protocol):
    dim: int

    def embed(self, crop: ObjectCrop) -> np.ndarray: ...


def embed_crop(embedder: Embedder, crop: ObjectCrop) -> np.ndarray:
    """Run ``embedder`` on ``crop`` and check the vector length."""
    vector = np.asarray(embedder.embed(crop), dtype=np.float64).ravel()
    if vector.shape[0] != embedder.dim:
        raise FormatError(
            f"Embedding for object {crop.region_id} has {vector.shape[0]} values, "
            f"expected {embedder.dim}"
        )
    return vector


def embedding_columns(dim: int) -> list[str]:
    return [f"embedding_{k}" for k in range(dim)]


__all__ = ["Embedder", "embed_crop", "embedding_columns"]
