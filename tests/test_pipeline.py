from pathlib import Path

import numpy as np
import pytest

from pyama_morph.config import RunConfig
from pyama_morph.errors import ConfigError
from pyama_morph.io import ObjectSink, TableSink, read_table
from pyama_morph.io.table import COUNTS_FILENAME
from pyama_morph.processing.extraction import crop_image, describe, descriptor_columns
from pyama_morph.types.mode import Mode
from pyama_morph.types.objects import ImagePair, MaskSource, PolygonSource
from pyama_morph.workflow import process_pair, run_export, run_profile


class AreaEmbedder:
    """Two-value embedding: object pixel count and crop height."""

    dim = 2

    def embed(self, crop):
        return [float(crop.local_mask.sum()), float(crop.shape[0])]


class RecordingSink:
    def __init__(self, interrupt_after: int | None = None) -> None:
        self.batches = []
        self.closed = False
        self.interrupt_after = interrupt_after

    def write_record(self, batch) -> None:
        if self.interrupt_after is not None and len(self.batches) >= self.interrupt_after:
            raise KeyboardInterrupt
        self.batches.append(list(batch))

    def close(self) -> None:
        self.closed = True


def _square_pair(image_id: str = "img", seed: int = 0) -> ImagePair:
    mask = np.zeros((10, 10), dtype=np.uint8)
    mask[2:5, 2:5] = 1
    image = np.random.default_rng(seed).random((10, 10)) * 100
    return ImagePair(image_id, image, MaskSource(mask))


def _scene(seed: int) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    image = rng.random((32, 32, 2)) * 255
    mask = np.zeros((32, 32), dtype=np.uint16)
    mask[3:9, 4:12] = 1
    mask[14:22, 14:20] = 2
    mask[24:30, 2:7] = 3
    mask[20:26, 24:31] = 4
    return image, mask


def _rows(summary) -> list[tuple]:
    return [
        (r.image_id, r.object_id, tuple(np.nan_to_num(list(r.features.values()), nan=-1.0)))
        for r in summary.records
    ]


# =============================================================================
# END-TO-END SCENARIOS
# =============================================================================


def test_single_square_object():
    pair = _square_pair()
    config = RunConfig(populations="xcf", families="i", pad=1, min_size=2, n_workers=1)
    summary = run_profile([pair], config)

    assert summary.objects_found == 1
    assert summary.objects_kept == 1
    (record,) = summary.records
    assert record.object_id == 1
    assert record.features["bbox_x_min"] == 2
    assert record.features["bbox_x_max"] == 4
    assert record.features["bbox_area"] == 9
    patch = pair.image[2:5, 2:5]
    assert record.features["foreground_intensity_mean_ch_0"] == pytest.approx(patch.mean())
    assert record.features["complete_intensity_mean_ch_0"] == pytest.approx(
        pair.image[1:6, 1:6].mean()
    )

    profile = crop_image("img", pair.image, pair.segmentation, pad=1, min_size=2)
    (crop,) = profile.crops
    assert crop.origin == (1, 1)
    assert crop.shape == (5, 5)
    assert crop.region.area == 9


def test_drop_borders_keeps_only_interior_object():
    mask = np.zeros((20, 20), dtype=np.uint16)
    mask[5:10, 0:4] = 1
    mask[10:15, 8:13] = 2
    pair = ImagePair("borders", np.ones((20, 20)), MaskSource(mask))
    config = RunConfig(populations="c", families="i", drop_borders=True, n_workers=1)
    summary = run_profile([pair], config)
    assert [r.object_id for r in summary.records] == [2]
    assert summary.dropped_border == 1


def test_degenerate_polygon_is_dropped_and_siblings_survive():
    polygons = [
        np.array([[1.0, 1.0], [5.0, 5.0]]),
        np.array([[2.0, 2.0], [8.0, 2.0], [8.0, 8.0], [2.0, 8.0]]),
    ]
    pair = ImagePair("poly", np.ones((12, 12)), PolygonSource(polygons))
    config = RunConfig(populations="pc", families="i", n_workers=1)
    summary = run_profile([pair], config)
    assert [r.object_id for r in summary.records] == [2]
    assert summary.objects_found == 2
    assert summary.dropped_geometry == 1
    assert summary.records[0].features["form_area"] == pytest.approx(36)


def test_empty_polygon_does_not_fail_the_image():
    square = [[2.0, 2.0], [8.0, 2.0], [8.0, 8.0], [2.0, 8.0]]
    pair = ImagePair("poly", np.ones((12, 12)), PolygonSource([[], square]))
    summary = run_profile([pair], RunConfig(populations="pc", families="i", n_workers=1))
    assert summary.images_failed == 0
    assert [r.object_id for r in summary.records] == [2]
    assert summary.dropped_geometry == 1


def test_string_paths_are_loaded(tmp_path: Path):
    (pair,) = _write_scenes(tmp_path, 1)
    as_text = ImagePair("s0", str(pair.image), str(pair.segmentation))
    summary = run_profile([as_text], RunConfig(populations="c", families="i", n_workers=1))
    assert summary.images_failed == 0
    assert summary.objects_kept == 4
    assert "complete_intensity_mean_ch_1" in summary.columns


# =============================================================================
# COLUMNS
# =============================================================================


def test_describe_matches_run_columns():
    image, mask = _scene(3)
    mode = Mode.parse("xpcfbm", "iotz")
    profile = crop_image("scene", image, MaskSource(mask))
    columns = descriptor_columns(mode, channels=2)
    assert len(columns) == len(set(columns))
    for crop in profile.crops:
        features, undefined = describe(crop, mode)
        assert list(features) == columns
        assert undefined == {k for k, v in features.items() if np.isnan(v)}


def test_column_order_follows_fixed_population_order():
    columns = descriptor_columns(Mode.parse("mcx", "ti"), channels=2)
    assert columns[0] == "bbox_x_min"
    first_pixel = columns.index("complete_intensity_min_ch_0")
    assert columns.index("complete_intensity_min_ch_1") > first_pixel
    assert columns.index("complete_texture_energy_ch_0") > columns.index(
        "complete_intensity_p95_ch_1"
    )
    assert columns[-1] == "mask_zernike_99"


def test_undefined_descriptors_are_nan_and_reported():
    mask = np.zeros((8, 8), dtype=np.uint8)
    mask[4, 4] = 1
    pair = ImagePair("dot", np.ones((8, 8)), MaskSource(mask))
    summary = run_profile([pair], RunConfig(populations="f", families="t", n_workers=1))
    (record,) = summary.records
    assert np.isnan(record.features["foreground_texture_energy_ch_0"])
    assert "foreground_texture_energy_ch_0" in summary.undefined


# =============================================================================
# SCHEDULING
# =============================================================================


def _write_scenes(directory: Path, n: int) -> list[ImagePair]:
    pairs = []
    for i in range(n):
        image, mask = _scene(i)
        np.save(directory / f"s{i}.npy", image)
        np.save(directory / f"s{i}_mask.npy", mask)
        pairs.append(
            ImagePair(f"s{i}", directory / f"s{i}.npy", directory / f"s{i}_mask.npy")
        )
    return pairs


def test_inline_runs_are_deterministic(tmp_path: Path):
    pairs = _write_scenes(tmp_path, 3)
    config = RunConfig(populations="xpcfbm", families="iotz", n_workers=1)
    first = run_profile(pairs, config)
    second = run_profile(pairs, config)
    assert _rows(first) == _rows(second)
    assert [r.image_id for r in first.records][:4] == ["s0"] * 4


def test_worker_pool_matches_inline_order(tmp_path: Path):
    pairs = _write_scenes(tmp_path, 4)
    inline = run_profile(pairs, RunConfig(populations="xcm", families="io", n_workers=1))
    pooled = run_profile(pairs, RunConfig(populations="xcm", families="io", n_workers=2))
    assert _rows(inline) == _rows(pooled)
    assert [r.image_id for r in pooled.records] == [
        f"s{i}" for i in range(4) for _ in range(4)
    ]


def test_failed_image_is_isolated(tmp_path: Path):
    pairs = _write_scenes(tmp_path, 2)
    pairs.insert(1, ImagePair("missing", tmp_path / "missing.npy", tmp_path / "s0_mask.npy"))
    calls = []
    summary = run_profile(
        pairs,
        RunConfig(populations="c", families="i", n_workers=1),
        progress_callback=lambda current, total, message: calls.append((current, total)),
    )
    assert summary.images_failed == 1
    assert summary.images_processed == 2
    assert summary.failures[0][0] == "missing"
    assert {r.image_id for r in summary.records} == {"s0", "s1"}
    assert calls == [(1, 3), (2, 3), (3, 3)]


def test_channel_mismatch_fails_that_image_only():
    image, mask = _scene(0)
    pairs = [
        ImagePair("two", image, MaskSource(mask)),
        ImagePair("one", image[..., 0], MaskSource(mask)),
    ]
    summary = run_profile(pairs, RunConfig(populations="c", families="i", n_workers=1))
    assert summary.images_failed == 1
    assert summary.failures[0][0] == "one"
    assert "complete_intensity_mean_ch_1" in summary.columns


def test_process_pair_reports_errors_instead_of_raising():
    pair = ImagePair("bad", np.zeros((4, 4)), MaskSource(np.zeros((5, 5), dtype=np.uint8)))
    result = process_pair(0, pair, RunConfig(channels=1))
    assert result.failed
    assert result.error_type == "FormatError"


# =============================================================================
# CONFIGURATION AND COLLABORATORS
# =============================================================================


def test_invalid_configuration_is_rejected_before_work():
    sink = RecordingSink()
    with pytest.raises(ConfigError):
        run_profile([_square_pair()], RunConfig(populations="cq"), sink=sink)
    with pytest.raises(ConfigError):
        run_profile([], RunConfig())
    with pytest.raises(ConfigError):
        run_profile([_square_pair()], RunConfig(populations="ce", n_workers=1))
    assert sink.batches == []


def test_embedding_columns():
    config = RunConfig(populations="ce", families="i", n_workers=1)
    summary = run_profile([_square_pair()], config, embedder=AreaEmbedder())
    (record,) = summary.records
    assert summary.columns[-2:] == ["embedding_0", "embedding_1"]
    assert record.features["embedding_0"] == 9
    assert record.features["embedding_1"] == 5


def test_interrupt_closes_sink_and_keeps_completed_batches():
    pairs = [_square_pair(f"img{i}", seed=i) for i in range(3)]
    sink = RecordingSink(interrupt_after=1)
    with pytest.raises(KeyboardInterrupt):
        run_profile(pairs, RunConfig(populations="c", families="i", n_workers=1), sink=sink)
    assert sink.closed
    assert len(sink.batches) == 1
    assert sink.batches[0][0].image_id == "img0"


def test_table_sink_run_writes_rows_and_counts(tmp_path: Path):
    pairs = _write_scenes(tmp_path, 2)
    out = tmp_path / "results"
    sink = TableSink(out)
    summary = run_profile(
        pairs, RunConfig(populations="xc", families="i", min_size=7, n_workers=1), sink=sink
    )
    df = read_table(out)
    assert list(df.columns) == ["image_id", "object_id"] + summary.columns
    assert len(df) == summary.objects_kept
    counts = read_table(out / COUNTS_FILENAME)
    assert counts["image_id"].tolist() == ["s0", "s1"]
    assert (counts["found"] == 4).all()
    assert summary.dropped_min_size == 2


def test_export_writes_object_files(tmp_path: Path):
    pairs = _write_scenes(tmp_path, 1)
    sink = ObjectSink(tmp_path / "objects")
    summary = run_export(pairs, RunConfig(pad=2, n_workers=1), sink)
    assert summary.objects_kept == 4
    image_path, mask_path = sink.paths_for("s0", 2)
    crop = np.load(image_path)
    assert crop.shape == (12, 10, 2)
    assert np.load(mask_path).sum() == 48
