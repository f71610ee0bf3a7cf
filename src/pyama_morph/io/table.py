"""
Tabular record sinks.

``TableSink`` appends descriptor batches to a single table as they arrive so
that an interrupted run leaves every fully written batch on disk:
- ``.csv``: comma separated
- ``.tsv`` / ``.txt``: tab separated
- ``.parquet`` / ``.pq``: one row group per batch (pyarrow)
- a directory: ``descriptors.csv`` plus ``object_counts.tsv`` and
  ``object_errors.tsv`` bookkeeping tables

Columns are ``image_id, object_id`` followed by the run's descriptor columns.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from pyama_morph.errors import ConfigError, IoError
from pyama_morph.types.objects import DescriptorRecord

logger = logging.getLogger(__name__)

ID_COLUMNS = ["image_id", "object_id"]
COUNT_COLUMNS = [
    "image_id",
    "found",
    "kept",
    "dropped_min_size",
    "dropped_border",
    "dropped_geometry",
]
ERROR_COLUMNS = ["image_id", "object_id", "error", "message"]

DESCRIPTORS_FILENAME = "descriptors.csv"
COUNTS_FILENAME = "object_counts.tsv"
ERRORS_FILENAME = "object_errors.tsv"

_SEPARATORS = {".csv": ",", ".tsv": "\t", ".txt": "\t"}
_PARQUET_SUFFIXES = (".parquet", ".pq")


def records_to_dataframe(
    records: list[DescriptorRecord], columns: list[str] | None = None
) -> pd.DataFrame:
    """Rows for ``records`` with ``image_id, object_id`` first."""
    df = pd.DataFrame([record.as_row() for record in records])
    if columns is not None:
        df = df.reindex(columns=ID_COLUMNS + list(columns))
    if not df.empty:
        df["image_id"] = df["image_id"].astype(str)
        df["object_id"] = df["object_id"].astype(np.int64)
    return df


class _DelimitedWriter:
    def __init__(self, path: Path, sep: str) -> None:
        self.path = path
        self.sep = sep
        self._started = False

    def append(self, df: pd.DataFrame) -> None:
        try:
            df.to_csv(
                self.path,
                sep=self.sep,
                index=False,
                header=not self._started,
                mode="a" if self._started else "w",
            )
        except OSError as exc:
            raise IoError(f"Failed to write {self.path}: {exc}") from exc
        self._started = True

    def close(self, columns: list[str]) -> None:
        if not self._started:
            self.append(pd.DataFrame(columns=columns))


class _ParquetWriter:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._writer: pq.ParquetWriter | None = None
        self._schema: pa.Schema | None = None

    def _open(self, columns: list[str]) -> None:
        fields = [pa.field("image_id", pa.string()), pa.field("object_id", pa.int64())]
        fields += [pa.field(name, pa.float64()) for name in columns[len(ID_COLUMNS) :]]
        self._schema = pa.schema(fields)
        self._writer = pq.ParquetWriter(str(self.path), self._schema)

    def append(self, df: pd.DataFrame) -> None:
        if self._writer is None:
            self._open(list(df.columns))
        table = pa.Table.from_pandas(df, schema=self._schema, preserve_index=False)
        self._writer.write_table(table)

    def close(self, columns: list[str]) -> None:
        if self._writer is None:
            self._open(columns)
        self._writer.close()


class TableSink:
    """Incremental writer for descriptor records.

    Args:
        path: Output file (``.csv``, ``.tsv``, ``.txt``, ``.parquet``, ``.pq``)
            or a directory
        columns: Descriptor columns; taken from the first batch when omitted

    Raises:
        ConfigError: If the destination cannot be written to
    """

    def __init__(self, path: Path, columns: list[str] | None = None) -> None:
        path = Path(path)
        self.columns: list[str] | None = list(columns) if columns is not None else None
        self.rows_written = 0
        self._counts: _DelimitedWriter | None = None
        self._errors: _DelimitedWriter | None = None

        suffix = path.suffix.lower()
        if path.is_dir() or suffix == "":
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ConfigError(f"Cannot create output directory {path}: {exc}") from exc
            self.directory: Path | None = path
            self.path = path / DESCRIPTORS_FILENAME
            self._table = _DelimitedWriter(self.path, ",")
            self._counts = _DelimitedWriter(path / COUNTS_FILENAME, "\t")
            self._errors = _DelimitedWriter(path / ERRORS_FILENAME, "\t")
        else:
            if not path.parent.is_dir():
                raise ConfigError(f"Output directory does not exist: {path.parent}")
            self.directory = None
            self.path = path
            if suffix in _SEPARATORS:
                self._table = _DelimitedWriter(path, _SEPARATORS[suffix])
            elif suffix in _PARQUET_SUFFIXES:
                self._table = _ParquetWriter(path)
            else:
                raise ConfigError(
                    f"Unsupported output format '{suffix}'; use .csv, .tsv, .txt, "
                    ".parquet, .pq or a directory"
                )
        self._closed = False

    def set_columns(self, columns: list[str]) -> None:
        if self.rows_written:
            raise RuntimeError("Columns cannot change after records were written")
        self.columns = list(columns)

    def write_record(self, batch: list[DescriptorRecord]) -> None:
        """Append one batch of records (typically all objects of one image)."""
        if not batch:
            return
        if self.columns is None:
            self.columns = [k for k in batch[0].features]
        df = records_to_dataframe(batch, self.columns)
        self._table.append(df)
        self.rows_written += len(df)

    def write_counts(self, image_id: str, counts: dict[str, int]) -> None:
        """Append per-image object counts (directory outputs only)."""
        if self._counts is None:
            return
        row = {"image_id": image_id, **counts}
        self._counts.append(pd.DataFrame([row]).reindex(columns=COUNT_COLUMNS))

    def write_errors(self, rows: list[dict]) -> None:
        """Append skipped objects or images (directory outputs only)."""
        if self._errors is None or not rows:
            return
        self._errors.append(pd.DataFrame(rows).reindex(columns=ERROR_COLUMNS))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._table.close(ID_COLUMNS + (self.columns or []))
        if self._counts is not None:
            self._counts.close(COUNT_COLUMNS)
        if self._errors is not None:
            self._errors.close(ERROR_COLUMNS)
        logger.debug(f"Wrote {self.rows_written} rows to {self.path}")

    def __enter__(self) -> "TableSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def read_table(path: Path) -> pd.DataFrame:
    """Read a table written by TableSink."""
    path = Path(path)
    if path.is_dir():
        path = path / DESCRIPTORS_FILENAME
    suffix = path.suffix.lower()
    if suffix in _PARQUET_SUFFIXES:
        return pd.read_parquet(path)
    return pd.read_csv(path, sep=_SEPARATORS.get(suffix, ","), dtype={"image_id": str})


__all__ = [
    "TableSink",
    "read_table",
    "records_to_dataframe",
    "DESCRIPTORS_FILENAME",
    "COUNTS_FILENAME",
    "ERRORS_FILENAME",
]
