import numpy as np
import pytest
from skimage.draw import disk

from pyama_morph.errors import FormatError, GeometryError
from pyama_morph.processing.geometry import perimeter, shoelace_area
from pyama_morph.processing.segmentation.convert import (
    boxes_to_mask,
    mask_iou,
    mask_to_boxes,
    mask_to_polygon,
    mask_to_polygons,
    polygon_to_mask,
    polygons_to_mask,
    validate_polygon,
)


def _disk_mask(shape=(40, 40), center=(20, 18), radius=11) -> np.ndarray:
    mask = np.zeros(shape, dtype=bool)
    rr, cc = disk(center, radius, shape=shape)
    mask[rr, cc] = True
    return mask


def _l_shape() -> np.ndarray:
    mask = np.zeros((12, 12), dtype=bool)
    mask[2:10, 3:5] = True
    mask[8:10, 3:9] = True
    return mask


@pytest.mark.parametrize("mask", [_disk_mask(), _l_shape()])
def test_mask_polygon_mask_round_trip_is_exact_for_hole_free_masks(mask):
    polygon = mask_to_polygon(mask)
    restored = polygon_to_mask(polygon, mask.shape)
    assert mask_iou(mask, restored) >= 0.98
    assert np.array_equal(restored, mask)


def test_round_trip_fills_holes():
    mask = np.zeros((10, 10), dtype=bool)
    mask[2:8, 2:8] = True
    mask[4:6, 4:6] = False
    restored = polygon_to_mask(mask_to_polygon(mask), mask.shape)
    assert restored[4:6, 4:6].all()
    assert np.array_equal(restored[mask], np.ones(mask.sum(), dtype=bool))


def test_square_outline_area_and_pixel_centres():
    mask = np.zeros((10, 10), dtype=np.uint8)
    mask[2:5, 2:5] = 1
    polygon = mask_to_polygon(mask)
    assert shoelace_area(polygon) == pytest.approx(8.5)
    assert polygon[:, 0].min() == pytest.approx(1.5)
    assert polygon[:, 0].max() == pytest.approx(4.5)


def test_polygon_area_is_close_to_pixel_count():
    mask = _disk_mask()
    polygon = mask_to_polygon(mask)
    count = mask.sum()
    assert abs(shoelace_area(polygon) - count) <= perimeter(polygon) / 2


def test_mask_to_polygons_one_per_component():
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[1:4, 1:4] = 1
    mask[10:15, 12:18] = 1
    polygons = mask_to_polygons(mask)
    assert len(polygons) == 2
    assert polygons[1][:, 0].min() > 10


def test_mask_to_polygons_integer_labels_keep_touching_objects_apart():
    mask = np.zeros((10, 10), dtype=np.uint16)
    mask[2:6, 2:4] = 3
    mask[2:6, 4:6] = 9
    polygons = mask_to_polygons(mask, kind="integer")
    assert len(polygons) == 2
    restored = polygons_to_mask(polygons, mask.shape)
    assert np.array_equal(restored > 0, mask > 0)
    assert np.array_equal(restored == 1, mask == 3)


def test_mask_to_boxes_edge_coordinates_and_area_bound():
    mask = np.zeros((10, 10), dtype=np.uint8)
    mask[2:5, 2:5] = 1
    mask[6, 1:9] = 1
    mask[7, 8] = 1
    boxes = mask_to_boxes(mask)
    assert boxes.shape == (2, 4)
    assert boxes[0].tolist() == [2.0, 2.0, 5.0, 5.0]
    assert boxes[1].tolist() == [1.0, 6.0, 9.0, 8.0]
    counts = [9, 9]
    for box, count in zip(boxes, counts):
        assert (box[2] - box[0]) * (box[3] - box[1]) >= count


def test_mask_to_boxes_empty_mask():
    assert mask_to_boxes(np.zeros((5, 5), dtype=np.uint8)).shape == (0, 4)


def test_boxes_to_mask_covers_edge_box():
    mask = boxes_to_mask(np.array([[1, 1, 3, 4]]), (6, 6))
    assert mask.sum() == 6
    assert mask[1:4, 1:3].all()


def test_polygons_to_mask_later_polygons_win():
    square = np.array([[0.5, 0.5], [4.5, 0.5], [4.5, 4.5], [0.5, 4.5]])
    shifted = square + 2
    mask = polygons_to_mask([square, shifted], (8, 8))
    assert mask[3, 3] == 2
    assert mask[1, 1] == 1


def test_polygon_to_mask_even_odd_rule():
    square = np.array([[0.5, 0.5], [3.5, 0.5], [3.5, 3.5], [0.5, 3.5]])
    mask = polygon_to_mask(square, (6, 6))
    assert mask.sum() == 9
    assert mask[1:4, 1:4].all()


def test_mask_iou():
    a = np.zeros((4, 4), dtype=bool)
    b = np.zeros((4, 4), dtype=bool)
    a[:2] = True
    b[1:3] = True
    assert mask_iou(a, b) == pytest.approx(4 / 12)
    assert mask_iou(np.zeros((2, 2)), np.zeros((2, 2))) == 1.0


def test_validate_polygon_rejects_degenerate_input():
    with pytest.raises(GeometryError):
        validate_polygon([[0, 0], [3, 3]])
    with pytest.raises(GeometryError):
        validate_polygon([[0, 0], [1, 1], [2, 2]])
    with pytest.raises(GeometryError):
        validate_polygon([[0, 0], [8, 4], [8, 0], [0, 2]])
    with pytest.raises(FormatError):
        validate_polygon([[0, 0, 1], [1, 1, 1], [2, 0, 1]])


def test_validate_polygon_drops_closing_vertex():
    points = validate_polygon([[0, 0], [4, 0], [4, 4], [0, 4], [0, 0]])
    assert points.shape == (4, 2)
