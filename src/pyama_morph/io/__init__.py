"""
IO utilities: codecs, record sinks and file discovery.
"""

from pyama_morph.io.codecs import (
    decode_image,
    decode_segmentation,
    write_boxes_json,
    write_mask,
    write_polygons_json,
)
from pyama_morph.io.discovery import collect_pairs
from pyama_morph.io.objects import ObjectSink
from pyama_morph.io.table import TableSink, read_table

__all__ = [
    # Codecs
    "decode_image",
    "decode_segmentation",
    "write_polygons_json",
    "write_boxes_json",
    "write_mask",
    # Sinks
    "TableSink",
    "ObjectSink",
    "read_table",
    # Discovery
    "collect_pairs",
]
