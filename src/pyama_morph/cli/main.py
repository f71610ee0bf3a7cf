"""Command-line interface for pyama-morph."""

import logging
from pathlib import Path

import typer
from tqdm.auto import tqdm

from pyama_morph.config import RunConfig, load_config
from pyama_morph.errors import ConfigError, FormatError, MorphError
from pyama_morph.io.codecs import (
    ARRAY_SUFFIXES,
    IMAGE_SUFFIXES,
    decode_image,
    decode_segmentation,
    write_boxes_json,
    write_mask,
    write_polygons_json,
)
from pyama_morph.io.discovery import collect_pairs, discover_files
from pyama_morph.io.objects import ObjectSink
from pyama_morph.io.table import TableSink
from pyama_morph.processing.extraction.descriptors import FORM_NAMES
from pyama_morph.processing.extraction.measure import measure_image, measure_polygons
from pyama_morph.processing.segmentation.convert import (
    boxes_to_mask,
    mask_to_boxes,
    mask_to_polygons,
    polygons_to_mask,
)
from pyama_morph.types.mode import Family
from pyama_morph.types.objects import (
    BoxSource,
    DescriptorRecord,
    MaskSource,
    PolygonSource,
)
from pyama_morph.workflow import run_export, run_profile

app = typer.Typer(help="pyama-morph object extraction and descriptor utilities")
logger = logging.getLogger(__name__)

segmentation_dir_option = typer.Option(
    None,
    "--segmentation-dir",
    "-s",
    help="Directory with masks/polygons/boxes. Defaults to the image directory.",
)
image_substring_option = typer.Option(
    "", "--image-substring", help="Substring identifying image files."
)
segmentation_substring_option = typer.Option(
    "", "--segmentation-substring", help="Substring identifying segmentation files."
)
config_option = typer.Option(None, "--config", "-c", help="YAML run configuration.")
pad_option = typer.Option(None, "--pad", help="Pixels of padding around each object.")
min_size_option = typer.Option(
    None, "--min-size", help="Drop objects whose larger bounding-box side is smaller."
)
drop_borders_option = typer.Option(
    None, "--drop-borders/--keep-borders", help="Drop objects touching the image border."
)
connectivity_option = typer.Option(
    None, "--connectivity", help="1 for 4-neighbour, 2 for 8-neighbour components."
)
workers_option = typer.Option(
    None, "--workers", "-n", help="Worker processes (default: number of CPUs)."
)
channels_option = typer.Option(
    None, "--channels", help="Expected channel count (default: from the first image)."
)
verbose_option = typer.Option(None, "--verbose", "-v", help="Log every skipped object.")


@app.callback()
def main() -> None:
    """pyama-morph utility commands."""
    # Configure basic logging so info-level messages are visible by default.
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    return None


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


def _build_config(config_path: Path | None, **overrides) -> RunConfig:
    config = load_config(config_path) if config_path is not None else RunConfig()
    config = config.with_overrides(**overrides)
    config.validate()
    return config


class _ProgressBar:
    """Adapts the progress_callback(current, total, message) signature to tqdm."""

    def __init__(self, desc: str) -> None:
        self.desc = desc
        self.bar: tqdm | None = None

    def __call__(self, current: int, total: int, message: str) -> None:
        if self.bar is None:
            self.bar = tqdm(total=total, desc=self.desc, unit="image")
        self.bar.set_postfix_str(message)
        self.bar.update(current - self.bar.n)

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()


@app.command()
def profile(
    images_dir: Path = typer.Argument(..., help="Directory with images."),
    output: Path = typer.Argument(
        ..., help="Output table (.csv, .tsv, .txt, .parquet, .pq) or directory."
    ),
    segmentation_dir: Path | None = segmentation_dir_option,
    image_substring: str = image_substring_option,
    segmentation_substring: str = segmentation_substring_option,
    populations: str | None = typer.Option(
        None,
        "--populations",
        "-p",
        help="Outputs: c complete, f foreground, b background, m mask, p form, x bbox.",
    ),
    families: str | None = typer.Option(
        None,
        "--families",
        "-f",
        help="Pixel families: i intensity, o moments, t texture, z zernike.",
    ),
    config_path: Path | None = config_option,
    pad: int | None = pad_option,
    min_size: int | None = min_size_option,
    drop_borders: bool | None = drop_borders_option,
    connectivity: int | None = connectivity_option,
    n_workers: int | None = workers_option,
    channels: int | None = channels_option,
    verbose: bool | None = verbose_option,
) -> None:
    """Compute descriptors for every object of every image/segmentation pair."""
    progress = _ProgressBar("Profiling")
    try:
        config = _build_config(
            config_path,
            populations=populations,
            families=families,
            pad=pad,
            min_size=min_size,
            drop_borders=drop_borders,
            connectivity=connectivity,
            n_workers=n_workers,
            channels=channels,
            verbose=verbose,
        )
        pairs = collect_pairs(
            images_dir, segmentation_dir, image_substring, segmentation_substring
        )
        sink = TableSink(output)
        summary = run_profile(pairs, config, sink=sink, progress_callback=progress)
    except ConfigError as exc:
        _fail(f"Invalid configuration: {exc}")
    finally:
        progress.close()
    typer.echo(summary.message())
    typer.echo(f"Wrote {sink.rows_written} rows to {sink.path}")


@app.command()
def export(
    images_dir: Path = typer.Argument(..., help="Directory with images."),
    output_dir: Path = typer.Argument(..., help="Directory for object crops."),
    segmentation_dir: Path | None = segmentation_dir_option,
    image_substring: str = image_substring_option,
    segmentation_substring: str = segmentation_substring_option,
    image_format: str = typer.Option(
        "npy", "--format", help="Crop file format: npy, tif, tiff or png."
    ),
    config_path: Path | None = config_option,
    pad: int | None = pad_option,
    min_size: int | None = min_size_option,
    drop_borders: bool | None = drop_borders_option,
    connectivity: int | None = connectivity_option,
    n_workers: int | None = workers_option,
    verbose: bool | None = verbose_option,
) -> None:
    """Save a padded crop and mask for every kept object."""
    progress = _ProgressBar("Exporting")
    try:
        config = _build_config(
            config_path,
            pad=pad,
            min_size=min_size,
            drop_borders=drop_borders,
            connectivity=connectivity,
            n_workers=n_workers,
            verbose=verbose,
        )
        pairs = collect_pairs(
            images_dir, segmentation_dir, image_substring, segmentation_substring
        )
        sink = ObjectSink(output_dir, image_format)
        summary = run_export(pairs, config, sink, progress_callback=progress)
    except ConfigError as exc:
        _fail(f"Invalid configuration: {exc}")
    finally:
        progress.close()
    typer.echo(summary.message())


def _conversion_jobs(input_path: Path, output: Path, suffix: str) -> list[tuple[Path, Path]]:
    """Single file -> file, or every file of a directory -> same stem in ``output``."""
    if input_path.is_dir():
        output.mkdir(parents=True, exist_ok=True)
        return [
            (path, output / f"{path.stem}{suffix}")
            for path in sorted(input_path.iterdir())
            if path.is_file()
        ]
    return [(input_path, output)]


@app.command()
def mask2polygons(
    input_path: Path = typer.Argument(..., exists=True, help="Mask file or directory."),
    output: Path = typer.Argument(..., help="JSON file or directory."),
    connectivity: int = typer.Option(2, "--connectivity"),
) -> None:
    """Trace the outer contour of every object in a mask."""
    for source_path, target in _conversion_jobs(input_path, output, ".json"):
        try:
            source = decode_segmentation(source_path)
            if not isinstance(source, MaskSource):
                raise ConfigError(f"{source_path.name} is not a mask")
            polygons = mask_to_polygons(source.data, source.resolved_kind(), connectivity)
            write_polygons_json(target, polygons)
        except ConfigError as exc:
            _fail(str(exc))
        except MorphError as exc:
            logger.error(f"Skipped {source_path.name}: {exc}")
            continue
        typer.echo(f"{source_path.name}: {len(polygons)} polygons -> {target}")


@app.command()
def mask2boxes(
    input_path: Path = typer.Argument(..., exists=True, help="Mask file or directory."),
    output: Path = typer.Argument(..., help="JSON file or directory."),
    connectivity: int = typer.Option(2, "--connectivity"),
) -> None:
    """Write the tight bounding box of every object in a mask."""
    for source_path, target in _conversion_jobs(input_path, output, ".json"):
        try:
            source = decode_segmentation(source_path)
            if not isinstance(source, MaskSource):
                raise ConfigError(f"{source_path.name} is not a mask")
            boxes = mask_to_boxes(source.data, source.resolved_kind(), connectivity)
            write_boxes_json(target, boxes)
        except ConfigError as exc:
            _fail(str(exc))
        except MorphError as exc:
            logger.error(f"Skipped {source_path.name}: {exc}")
            continue
        typer.echo(f"{source_path.name}: {len(boxes)} boxes -> {target}")


@app.command()
def polygons2mask(
    input_path: Path = typer.Argument(..., exists=True, help="Polygon/box JSON file or directory."),
    output: Path = typer.Argument(..., help="Mask file (.png, .tif, .npy) or directory."),
    like: Path | None = typer.Option(None, "--like", help="Image whose shape sets the canvas."),
    height: int | None = typer.Option(None, "--height"),
    width: int | None = typer.Option(None, "--width"),
) -> None:
    """Rasterize polygons (or boxes) into an integer mask."""
    if like is not None:
        try:
            shape = decode_image(like).shape[:2]
        except MorphError as exc:
            _fail(str(exc))
    elif height is not None and width is not None:
        shape = (height, width)
    else:
        _fail("Provide --like IMAGE or both --height and --width")

    for source_path, target in _conversion_jobs(input_path, output, ".png"):
        try:
            source = decode_segmentation(source_path)
            if isinstance(source, PolygonSource):
                mask = polygons_to_mask(source.polygons, shape)
            elif isinstance(source, BoxSource):
                mask = boxes_to_mask(source.boxes, shape)
            else:
                raise ConfigError(f"{source_path.name} holds no polygons or boxes")
            write_mask(target, mask)
        except ConfigError as exc:
            _fail(str(exc))
        except MorphError as exc:
            logger.error(f"Skipped {source_path.name}: {exc}")
            continue
        typer.echo(f"{source_path.name}: {int(mask.max())} objects -> {target}")


# =============================================================================
# MEASURE (pre-cropped objects and polygon files)
# =============================================================================

measure_app = typer.Typer(help="Measure descriptors without pairing images and segmentations")
app.add_typer(measure_app, name="measure")


def _measure_inputs(input_path: Path, substring: str, suffixes: tuple[str, ...]) -> dict[str, Path]:
    if input_path.is_dir():
        files = discover_files(input_path, substring, suffixes)
    elif input_path.suffix.lower() in suffixes:
        files = {input_path.stem: input_path}
    else:
        _fail(f"Unsupported input file: {input_path.name}")
    if not files:
        _fail(f"No input files found in {input_path}")
    return files


def _measure_family(input_path: Path, output: Path, substring: str, family: Family) -> None:
    files = _measure_inputs(input_path, substring, IMAGE_SUFFIXES)
    try:
        sink = TableSink(output)
    except ConfigError as exc:
        _fail(f"Invalid configuration: {exc}")
    failed = 0
    with sink:
        for image_id, path in tqdm(files.items(), desc=f"Measuring {family.name.lower()}", unit="image"):
            try:
                features = measure_image(decode_image(path), family)
            except MorphError as exc:
                logger.error(f"Skipped {path.name}: {exc}")
                failed += 1
                continue
            if sink.columns is not None and list(features) != sink.columns:
                logger.error(f"Skipped {path.name}: channel count differs from earlier images")
                failed += 1
                continue
            sink.write_record([DescriptorRecord(image_id, 1, features)])
    typer.echo(f"Measured {sink.rows_written} images ({failed} failed) -> {sink.path}")


image_input_argument = typer.Argument(..., exists=True, help="Object image or directory of object images.")
measure_output_argument = typer.Argument(
    ..., help="Output table (.csv, .tsv, .txt, .parquet, .pq) or directory."
)


@measure_app.command("intensity")
def measure_intensity(
    input_path: Path = image_input_argument,
    output: Path = measure_output_argument,
    image_substring: str = image_substring_option,
) -> None:
    """Intensity statistics over every pixel of each object image."""
    _measure_family(input_path, output, image_substring, Family.INTENSITY)


@measure_app.command("moments")
def measure_moments(
    input_path: Path = image_input_argument,
    output: Path = measure_output_argument,
    image_substring: str = image_substring_option,
) -> None:
    """Image moments of each object image."""
    _measure_family(input_path, output, image_substring, Family.MOMENTS)


@measure_app.command("texture")
def measure_texture(
    input_path: Path = image_input_argument,
    output: Path = measure_output_argument,
    image_substring: str = image_substring_option,
) -> None:
    """GLCM texture statistics of each object image."""
    _measure_family(input_path, output, image_substring, Family.TEXTURE)


@measure_app.command("zernike")
def measure_zernike(
    input_path: Path = image_input_argument,
    output: Path = measure_output_argument,
    image_substring: str = image_substring_option,
) -> None:
    """Zernike moment magnitudes of each object image."""
    _measure_family(input_path, output, image_substring, Family.ZERNIKE)


@measure_app.command("form")
def measure_form(
    input_path: Path = typer.Argument(..., exists=True, help="Polygon JSON file or directory."),
    output: Path = measure_output_argument,
    polygon_substring: str = typer.Option(
        "", "--polygon-substring", help="Substring identifying polygon files."
    ),
) -> None:
    """Form descriptors for every polygon of each polygon file."""
    files = _measure_inputs(input_path, polygon_substring, ARRAY_SUFFIXES)
    try:
        sink = TableSink(output, columns=FORM_NAMES)
    except ConfigError as exc:
        _fail(f"Invalid configuration: {exc}")
    failed = skipped = 0
    with sink:
        for image_id, path in tqdm(files.items(), desc="Measuring form", unit="file"):
            try:
                source = decode_segmentation(path)
                if not isinstance(source, PolygonSource):
                    raise FormatError(f"{path.name} holds no polygons")
                rows, errors = measure_polygons(source)
            except MorphError as exc:
                logger.error(f"Skipped {path.name}: {exc}")
                failed += 1
                continue
            for error in errors:
                logger.warning(f"{image_id}: dropped polygon {error.object_id}: {error}")
            skipped += len(errors)
            sink.write_record(
                [DescriptorRecord(image_id, object_id, features) for object_id, features in rows]
            )
    typer.echo(
        f"Measured {sink.rows_written} polygons ({skipped} invalid, {failed} files failed) -> {sink.path}"
    )



if __name__ == "__main__":
    app()
