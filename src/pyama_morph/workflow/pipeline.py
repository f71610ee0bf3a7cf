"""
Parallel profiling pipeline.

Each image pair is one unit of work: decode -> extract -> describe runs
sequentially inside a worker and the unit returns a UnitResult. Failures are
isolated per unit. Results are released to the sink in submission order
through a reorder buffer, so the output rows do not depend on scheduling.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
from collections.abc import Callable
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import numpy as np

from pyama_morph.config import RunConfig
from pyama_morph.embedding import Embedder
from pyama_morph.errors import ConfigError, MorphError
from pyama_morph.io.codecs import decode_image, decode_segmentation
from pyama_morph.processing.extraction.crop import ExtractionCounts
from pyama_morph.processing.extraction.run import (
    crop_image,
    descriptor_columns,
    profile_image,
)
from pyama_morph.types.mode import Population
from pyama_morph.types.objects import DescriptorRecord, ImagePair, ObjectCrop

logger = logging.getLogger(__name__)

Task = Literal["profile", "export"]
ProgressCallback = Callable[[int, int, str], None]


@dataclass
class UnitResult:
    """Everything one image pair contributes to the run."""

    index: int
    image_id: str
    records: list[DescriptorRecord] = field(default_factory=list)
    crops: list[ObjectCrop] = field(default_factory=list)
    counts: ExtractionCounts = field(default_factory=ExtractionCounts)
    skipped: list[dict[str, Any]] = field(default_factory=list)
    undefined: set[str] = field(default_factory=set)
    error: str | None = None
    error_type: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class RunSummary:
    images_total: int = 0
    images_processed: int = 0
    images_failed: int = 0
    objects_found: int = 0
    objects_kept: int = 0
    dropped_min_size: int = 0
    dropped_border: int = 0
    dropped_geometry: int = 0
    columns: list[str] = field(default_factory=list)
    undefined: set[str] = field(default_factory=set)
    failures: list[tuple[str, str]] = field(default_factory=list)
    records: list[DescriptorRecord] = field(default_factory=list)

    def message(self) -> str:
        return (
            f"Processed {self.images_processed}/{self.images_total} images "
            f"({self.images_failed} failed); kept {self.objects_kept}/{self.objects_found} objects "
            f"(dropped: {self.dropped_min_size} min_size, {self.dropped_border} border, "
            f"{self.dropped_geometry} geometry)"
        )


# =============================================================================
# WORKER
# =============================================================================


def _load_image(image: np.ndarray | Path | str) -> np.ndarray:
    if isinstance(image, (str, Path)):
        return decode_image(Path(image))
    return image


def _load(pair: ImagePair) -> tuple[np.ndarray, Any]:
    image = _load_image(pair.image)
    segmentation = pair.segmentation
    if isinstance(segmentation, (str, Path)):
        segmentation = decode_segmentation(Path(segmentation))
    return image, segmentation


def process_pair(
    index: int,
    pair: ImagePair,
    config: RunConfig,
    task: Task = "profile",
    embedder: Embedder | None = None,
) -> UnitResult:
    """Run one image pair. Never raises; failures are stored on the result."""
    result = UnitResult(index=index, image_id=pair.image_id)
    try:
        image, source = _load(pair)
        options = dict(
            pad=config.pad,
            min_size=config.min_size,
            drop_borders=config.drop_borders,
            connectivity=config.connectivity,
            area_tolerance=config.area_tolerance,
            channels=config.channels,
        )
        if task == "export":
            profile = crop_image(pair.image_id, image, source, **options)
        else:
            profile = profile_image(
                pair.image_id, image, source, config.mode, embedder=embedder, **options
            )
    except MorphError as exc:
        result.error = str(exc)
        result.error_type = type(exc).__name__
        return result
    except Exception as exc:
        result.error = f"Unexpected error: {exc}"
        result.error_type = type(exc).__name__
        return result

    result.records = profile.records
    result.crops = profile.crops
    result.counts = profile.counts
    result.undefined = profile.undefined
    for object_id, reason in profile.counts.skipped:
        result.skipped.append(
            {"object_id": object_id, "error": reason, "message": f"dropped by {reason} filter"}
        )
    for exc in profile.geometry_errors:
        result.skipped.append(
            {"object_id": exc.object_id, "error": "GeometryError", "message": str(exc)}
        )
    return result


# =============================================================================
# AGGREGATION
# =============================================================================


class _Aggregator:
    """Releases unit results to the sink strictly in submission order."""

    def __init__(
        self,
        sink,
        summary: RunSummary,
        config: RunConfig,
        task: Task,
        progress_callback: ProgressCallback | None,
    ) -> None:
        self.sink = sink
        self.summary = summary
        self.verbose = config.verbose
        self.task = task
        self.progress_callback = progress_callback
        self.pending: dict[int, UnitResult] = {}
        self.next_index = 0
        self.completed = 0

    def add(self, result: UnitResult) -> None:
        self.pending[result.index] = result
        self.completed += 1
        while self.next_index in self.pending:
            self._emit(self.pending.pop(self.next_index))
            self.next_index += 1
        if self.progress_callback is not None:
            self.progress_callback(self.completed, self.summary.images_total, result.image_id)

    def _emit(self, result: UnitResult) -> None:
        summary = self.summary
        if result.failed:
            summary.images_failed += 1
            summary.failures.append((result.image_id, result.error))
            logger.error(f"Skipped image {result.image_id}: {result.error_type}: {result.error}")
            self._write_errors(
                result.image_id,
                [{"object_id": None, "error": result.error_type, "message": result.error}],
            )
            return

        summary.images_processed += 1
        counts = result.counts
        geometry = sum(1 for s in result.skipped if s["error"] == "GeometryError")
        summary.objects_found += counts.found
        summary.objects_kept += counts.kept
        summary.dropped_min_size += counts.dropped_min_size
        summary.dropped_border += counts.dropped_border
        summary.dropped_geometry += geometry

        if self.verbose:
            for skip in result.skipped:
                logger.info(
                    f"Skipped object {skip['object_id']} in {result.image_id}: {skip['message']}"
                )
        new_undefined = sorted(result.undefined - summary.undefined)
        if new_undefined:
            logger.warning(
                f"Undefined for some objects, written as NaN: {', '.join(new_undefined)}"
            )
        summary.undefined |= result.undefined

        if self.task == "export":
            batch = [(result.image_id, crop) for crop in result.crops]
        else:
            batch = result.records
        if self.sink is None:
            summary.records.extend(result.records)
        else:
            self.sink.write_record(batch)
        if hasattr(self.sink, "write_counts"):
            self.sink.write_counts(
                result.image_id, {**counts.as_dict(), "dropped_geometry": geometry}
            )
        self._write_errors(result.image_id, result.skipped)

    def _write_errors(self, image_id: str, rows: list[dict[str, Any]]) -> None:
        if rows and hasattr(self.sink, "write_errors"):
            self.sink.write_errors([{"image_id": image_id, **row} for row in rows])


# =============================================================================
# ORCHESTRATION
# =============================================================================


def _infer_channels(pairs: list[ImagePair]) -> int:
    """Channel count of the first readable image."""
    for pair in pairs:
        try:
            image = _load_image(pair.image)
        except MorphError:
            continue
        image = np.asarray(image)
        return 1 if image.ndim == 2 else int(image.shape[2])
    return 1


def _prepare(
    pairs: list[ImagePair], config: RunConfig, task: Task, embedder: Embedder | None
) -> tuple[RunConfig, list[str]]:
    """Fail fast on invalid configuration before any work is scheduled."""
    mode = config.validate()
    if not pairs:
        raise ConfigError("No image pairs to process")
    embed_dim = 0
    if task == "profile" and mode.has(Population.EMBEDDING):
        if embedder is None:
            raise ConfigError("Embedding output requested but no embedder was provided")
        embed_dim = int(embedder.dim)
    if config.channels is None:
        config = replace(config, channels=_infer_channels(pairs))
    columns = descriptor_columns(mode, config.channels, embed_dim) if task == "profile" else []
    return config, columns


def _run(
    pairs: list[ImagePair],
    config: RunConfig,
    task: Task,
    sink,
    embedder: Embedder | None,
    progress_callback: ProgressCallback | None,
) -> RunSummary:
    pairs = list(pairs)
    config, columns = _prepare(pairs, config, task, embedder)
    if columns and sink is not None and hasattr(sink, "set_columns"):
        sink.set_columns(columns)

    summary = RunSummary(images_total=len(pairs), columns=columns)
    aggregator = _Aggregator(sink, summary, config, task, progress_callback)
    n_workers = min(config.workers, len(pairs))
    logger.info(f"Processing {len(pairs)} images with {n_workers} workers (mode {config.mode})")

    try:
        if n_workers <= 1:
            for index, pair in enumerate(pairs):
                aggregator.add(process_pair(index, pair, config, task, embedder))
        else:
            ctx = mp.get_context("spawn")
            executor = ProcessPoolExecutor(max_workers=n_workers, mp_context=ctx)
            try:
                futures = {
                    executor.submit(process_pair, index, pair, config, task, embedder): index
                    for index, pair in enumerate(pairs)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    try:
                        result = future.result()
                    except Exception as exc:
                        result = UnitResult(
                            index=index,
                            image_id=pairs[index].image_id,
                            error=f"Worker exception: {exc}",
                            error_type=type(exc).__name__,
                        )
                    aggregator.add(result)
            except KeyboardInterrupt:
                logger.warning(
                    f"Interrupted; keeping results of the first {aggregator.next_index} images"
                )
                executor.shutdown(wait=False, cancel_futures=True)
                raise
            else:
                executor.shutdown(wait=True)
    finally:
        if sink is not None:
            sink.close()

    logger.info(summary.message())
    return summary


def run_profile(
    pairs: list[ImagePair],
    config: RunConfig,
    sink=None,
    embedder: Embedder | None = None,
    progress_callback: ProgressCallback | None = None,
) -> RunSummary:
    """Compute descriptor records for every image pair.

    Args:
        pairs: Ordered image pairs; the output keeps this order
        config: Run configuration, validated before any work starts
        sink: Object with ``write_record(batch)`` and ``close()`` such as
            TableSink. When None, records are collected on the summary.
        embedder: Neural embedding provider, required when the mode has ``e``
        progress_callback: Called as (completed, total, image_id)

    Raises:
        ConfigError: For invalid configuration or an empty pair list
    """
    return _run(pairs, config, "profile", sink, embedder, progress_callback)


def run_export(
    pairs: list[ImagePair],
    config: RunConfig,
    sink,
    progress_callback: ProgressCallback | None = None,
) -> RunSummary:
    """Write the crop and mask of every kept object through an ObjectSink."""
    if sink is None:
        raise ConfigError("Object export requires an output sink")
    return _run(pairs, config, "export", sink, None, progress_callback)


__all__ = [
    "UnitResult",
    "RunSummary",
    "process_pair",
    "run_profile",
    "run_export",
]
