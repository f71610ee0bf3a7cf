import numpy as np
import pytest

from pyama_morph.errors import FormatError, GeometryError
from pyama_morph.processing.segmentation import decode, decode_with_errors
from pyama_morph.types.objects import BoxSource, MaskSource, PolygonSource


def test_binary_mask_components_in_raster_order():
    mask = np.zeros((12, 12), dtype=bool)
    mask[1:3, 6:9] = True
    mask[7:10, 2:4] = True
    regions = decode(MaskSource(mask))
    assert [r.object_id for r in regions] == [1, 2]
    assert regions[0].bbox == (6, 1, 8, 2)
    assert regions[0].area == 6
    assert regions[1].bbox == (2, 7, 3, 9)


def test_binary_mask_connectivity():
    mask = np.zeros((6, 6), dtype=np.uint8)
    mask[1, 1] = 1
    mask[2, 2] = 1
    assert len(decode(MaskSource(mask, "binary"), connectivity=2)) == 1
    assert len(decode(MaskSource(mask, "binary"), connectivity=1)) == 2


def test_integer_mask_keeps_label_values_as_ids():
    mask = np.zeros((10, 10), dtype=np.uint16)
    mask[1:4, 1:4] = 7
    mask[1:4, 4:6] = 3
    regions = decode(MaskSource(mask))
    assert [r.object_id for r in regions] == [3, 7]
    by_id = {r.object_id: r for r in regions}
    assert by_id[7].pixel_count == 9
    assert by_id[3].bbox == (4, 1, 5, 3)


def test_mask_touches_border():
    mask = np.zeros((8, 8), dtype=np.uint8)
    mask[0:2, 3:5] = 1
    mask[4:6, 3:5] = 2
    regions = decode(MaskSource(mask))
    assert [r.touches_border for r in regions] == [True, False]


def test_mask_rejects_non_integral_values():
    with pytest.raises(FormatError):
        decode(MaskSource(np.full((4, 4), 0.5)))
    with pytest.raises(FormatError):
        decode(MaskSource(np.zeros((2, 4, 4), dtype=np.uint8)))


def test_polygon_regions_use_pixel_centre_membership():
    square = [[0.5, 0.5], [3.5, 0.5], [3.5, 3.5], [0.5, 3.5]]
    regions = decode(PolygonSource([square]), shape=(8, 8))
    (region,) = regions
    assert region.object_id == 1
    assert region.bbox == (1, 1, 3, 3)
    assert region.pixel_count == 9
    assert region.area == pytest.approx(9.0)
    assert region.polygon.shape == (4, 2)


def test_polygon_canvas_is_inferred_without_shape():
    square = [[0.5, 0.5], [3.5, 0.5], [3.5, 3.5], [0.5, 3.5]]
    (region,) = decode(PolygonSource([square]))
    assert region.bbox == (1, 1, 3, 3)
    assert not region.touches_border


def test_invalid_polygon_is_dropped_alone():
    good = [[1, 1], [6, 1], [6, 6], [1, 6]]
    two_vertices = [[2, 2], [4, 4]]
    bowtie = [[0, 0], [8, 4], [8, 0], [0, 2]]
    regions, errors = decode_with_errors(
        PolygonSource([two_vertices, good, bowtie]), shape=(10, 10)
    )
    assert [r.object_id for r in regions] == [2]
    assert [e.object_id for e in errors] == [1, 3]


def test_empty_polygon_is_dropped_alone():
    square = [[1, 1], [6, 1], [6, 6], [1, 6]]
    regions, errors = decode_with_errors(PolygonSource([[], square]), shape=(10, 10))
    assert [r.object_id for r in regions] == [2]
    assert [e.object_id for e in errors] == [1]
    assert isinstance(errors[0], GeometryError)


def test_polygon_outside_image_is_a_geometry_error():
    far = [[20, 20], [25, 20], [25, 25], [20, 25]]
    regions, errors = decode_with_errors(PolygonSource([far]), shape=(10, 10))
    assert regions == []
    assert errors[0].object_id == 1


def test_polygon_with_wrong_shape_is_a_format_error():
    with pytest.raises(FormatError):
        decode(PolygonSource([[[0, 0, 0], [1, 1, 1], [2, 0, 1]]]), shape=(5, 5))


def test_boxes_edge_coordinates():
    regions = decode(BoxSource(np.array([[2, 3, 5, 7]])), shape=(10, 10))
    (region,) = regions
    assert region.bbox == (2, 3, 4, 6)
    assert region.area == 12
    assert region.pixel_count == 12
    assert region.polygon[0].tolist() == [1.5, 2.5]


def test_box_past_the_image_is_clipped_to_the_canvas():
    (region,) = decode(BoxSource(np.array([[-2, 6, 4, 14]])), shape=(10, 10))
    assert region.bbox == (0, 6, 3, 9)
    assert region.area == 16
    assert region.pixel_count == 16
    assert region.polygon.tolist() == [
        [-0.5, 5.5],
        [3.5, 5.5],
        [3.5, 9.5],
        [-0.5, 9.5],
    ]


def test_boxes_accept_single_flat_box():
    (region,) = decode(BoxSource(np.array([0, 0, 2, 2])), shape=(5, 5))
    assert region.bbox == (0, 0, 1, 1)
    assert region.touches_border


def test_invalid_boxes_are_dropped():
    boxes = np.array(
        [
            [1, 1, 3, 3],
            [4, 4, 4, 6],
            [20, 20, 25, 25],
            [np.nan, 1, 2, 2],
        ]
    )
    regions, errors = decode_with_errors(BoxSource(boxes), shape=(10, 10))
    assert [r.object_id for r in regions] == [1]
    assert [e.object_id for e in errors] == [2, 3, 4]


def test_boxes_with_wrong_shape():
    with pytest.raises(FormatError):
        decode(BoxSource(np.zeros((2, 3))), shape=(5, 5))


def test_unknown_source_type():
    with pytest.raises(FormatError):
        decode(np.zeros((4, 4)))
