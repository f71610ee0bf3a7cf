import numpy as np
import pytest

from pyama_morph.processing.extraction.descriptors import (
    DescriptorContext,
    bbox,
    form,
    get_descriptor,
    list_descriptors,
    list_families,
)
from pyama_morph.processing.extraction.descriptors import (
    intensity,
    moments,
    texture,
    zernike,
)
from pyama_morph.types.mode import Family
from pyama_morph.types.objects import Region


def _named(names, values) -> dict[str, float]:
    assert len(names) == len(values)
    return dict(zip(names, values))


def _full(image: np.ndarray) -> DescriptorContext:
    return DescriptorContext(image=image, mask=np.ones(image.shape, dtype=bool))


def test_registry_lists_families_in_flag_order():
    assert list_families() == ["i", "o", "t", "z"]
    assert get_descriptor(Family.TEXTURE) is texture.compute
    assert list_descriptors(Family.ZERNIKE)[0] == "zernike_00"
    assert len(list_descriptors(Family.ZERNIKE)) == 30


# =============================================================================
# INTENSITY
# =============================================================================


def test_intensity_statistics():
    image = np.arange(1, 10, dtype=np.float64).reshape(3, 3)
    stats = _named(intensity.NAMES, intensity.compute(_full(image)))
    assert stats["intensity_min"] == 1
    assert stats["intensity_max"] == 9
    assert stats["intensity_sum"] == 45
    assert stats["intensity_mean"] == 5
    assert stats["intensity_std"] == pytest.approx(np.sqrt(60 / 9))
    assert stats["intensity_median"] == 5
    assert stats["intensity_mad"] == 2
    assert stats["intensity_p25"] == 3
    assert stats["intensity_p75"] == 7


def test_intensity_respects_mask():
    image = np.array([[1.0, 100.0], [3.0, 100.0]])
    mask = np.array([[True, False], [True, False]])
    stats = _named(intensity.NAMES, intensity.compute(DescriptorContext(image, mask)))
    assert stats["intensity_mean"] == 2
    assert stats["intensity_max"] == 3


def test_empty_population_is_nan():
    ctx = DescriptorContext(np.ones((3, 3)), np.zeros((3, 3), dtype=bool))
    for family in (intensity, moments, texture, zernike):
        assert np.isnan(family.compute(ctx)[1:]).all()


# =============================================================================
# MOMENTS
# =============================================================================


def test_moments_of_uniform_square():
    values = _named(moments.NAMES, moments.compute(_full(np.ones((5, 5)))))
    assert values["moments_m00"] == pytest.approx(25)
    assert values["moments_m10"] == pytest.approx(50)
    assert values["moments_m01"] == pytest.approx(50)
    assert values["moments_centroid_x"] == pytest.approx(2)
    assert values["moments_centroid_y"] == pytest.approx(2)
    assert values["moments_u11"] == pytest.approx(0, abs=1e-9)
    assert values["moments_u20"] == pytest.approx(values["moments_u02"])
    assert values["moments_eccentricity"] == pytest.approx(0)
    assert np.isnan(values["moments_orientation"])
    assert values["moments_i1"] == pytest.approx(
        values["moments_nu20"] + values["moments_nu02"]
    )


def test_moments_index_columns_as_x_and_rows_as_y():
    image = np.zeros((3, 6))
    image[1, 1:5] = 1.0
    values = _named(moments.NAMES, moments.compute(_full(image)))
    assert values["moments_centroid_x"] == pytest.approx(2.5)
    assert values["moments_centroid_y"] == pytest.approx(1)
    assert values["moments_u20"] > 0
    assert values["moments_u02"] == pytest.approx(0)
    assert values["moments_orientation"] == pytest.approx(0)


def test_moments_zero_weight():
    values = moments.compute(_full(np.zeros((4, 4))))
    assert values[0] == 0
    assert np.isnan(values[1:]).all()


# =============================================================================
# TEXTURE
# =============================================================================


def test_texture_constant_population():
    values = _named(texture.NAMES, texture.compute(_full(np.full((6, 6), 7.0))))
    assert values["texture_energy"] == pytest.approx(1)
    assert values["texture_contrast"] == pytest.approx(0)
    assert values["texture_homogeneity"] == pytest.approx(1)
    assert values["texture_entropy"] == pytest.approx(0)
    assert np.isnan(values["texture_correlation"])


def test_texture_checkerboard_contrast():
    image = (np.indices((6, 6)).sum(axis=0) % 2).astype(np.float64)
    values = _named(texture.NAMES, texture.compute(_full(image)))
    # horizontal and vertical pairs span the full 63-level range, diagonals none
    assert values["texture_contrast"] == pytest.approx(63**2 / 2)


def test_texture_quantize_reserves_zero_for_outside():
    image = np.array([[0.0, 1.0], [2.0, 3.0]])
    mask = np.array([[True, True], [True, False]])
    levels = texture.quantize(DescriptorContext(image, mask))
    assert levels[1, 1] == 0
    assert levels[0, 0] == 1
    assert levels[1, 0] == texture.GLCM_LEVELS


def test_texture_single_pixel_is_nan():
    mask = np.zeros((3, 3), dtype=bool)
    mask[1, 1] = True
    assert np.isnan(texture.compute(DescriptorContext(np.ones((3, 3)), mask))).all()


# =============================================================================
# ZERNIKE
# =============================================================================


def test_zernike_zeroth_order():
    image = np.random.default_rng(1).random((9, 9)) + 0.1
    values = _named(zernike.NAMES, zernike.compute(_full(image)))
    assert values["zernike_00"] == pytest.approx(1 / np.pi)
    assert all(v >= 0 for v in values.values())


def test_zernike_is_rotation_invariant_for_quarter_turns():
    image = np.zeros((11, 11))
    image[2:9, 4:7] = 1.0
    image[2:4, 4:9] = 1.0
    original = zernike.compute(_full(image))
    rotated = zernike.compute(_full(np.rot90(image)))
    np.testing.assert_allclose(original, rotated, atol=1e-9)


def test_zernike_radial_polynomial_is_one_at_rim():
    rho = np.array([1.0])
    for n, m in zernike.ORDERS:
        assert zernike.radial_polynomial(n, m, rho)[0] == pytest.approx(1.0)


# =============================================================================
# FORM AND BOUNDING BOX
# =============================================================================


def test_form_of_square():
    square = np.array([[0, 0], [4, 0], [4, 4], [0, 4]], dtype=np.float64)
    values = _named(form.NAMES, form.compute(square))
    assert values["form_area"] == pytest.approx(16)
    assert values["form_perimeter"] == pytest.approx(16)
    assert values["form_centroid_x"] == pytest.approx(2)
    assert values["form_centroid_y"] == pytest.approx(2)
    assert values["form_circularity"] == pytest.approx(np.pi / 4)
    assert values["form_thread_length"] == pytest.approx(4)
    assert values["form_solidity"] == pytest.approx(1)
    assert values["form_extent"] == pytest.approx(1)
    assert values["form_convexity"] == pytest.approx(1)
    assert values["form_convex_perimeter_ratio"] == pytest.approx(1)
    assert values["form_elongation"] == pytest.approx(1)
    assert values["form_roundness"] == pytest.approx(3 / np.pi)
    assert values["form_min_feret"] == pytest.approx(4)
    assert values["form_max_feret"] == pytest.approx(4 * np.sqrt(2))
    assert values["form_minimum_radius"] == pytest.approx(2)
    assert values["form_maximum_radius"] == pytest.approx(2 * np.sqrt(2))
    assert values["form_equivalent_diameter"] == pytest.approx(2 * np.sqrt(16 / np.pi))
    assert np.isnan(values["form_orientation"])


def test_form_of_rectangle_and_winding():
    rectangle = np.array([[0, 0], [8, 0], [8, 2], [0, 2]], dtype=np.float64)
    forward = form.compute(rectangle)
    backward = form.compute(rectangle[::-1])
    np.testing.assert_allclose(forward, backward, atol=1e-9)
    values = _named(form.NAMES, forward)
    assert values["form_orientation"] == pytest.approx(0)
    assert values["form_min_rect_aspect_ratio"] == pytest.approx(4)
    assert values["form_elongation"] == pytest.approx(0.25)
    assert values["form_eccentricity"] == pytest.approx(np.sqrt(1 - 1 / 16))


def test_form_concave_shape_convexity_is_area_over_hull_area():
    l_shape = np.array(
        [[0, 0], [6, 0], [6, 2], [2, 2], [2, 6], [0, 6]], dtype=np.float64
    )
    values = _named(form.NAMES, form.compute(l_shape))
    assert values["form_area"] == pytest.approx(20)
    assert values["form_area_convex"] == pytest.approx(28)
    assert values["form_convexity"] == pytest.approx(20 / 28)
    assert values["form_solidity"] == pytest.approx(20 / 28)
    assert values["form_convex_perimeter_ratio"] == pytest.approx((16 + 4 * np.sqrt(2)) / 24)


def test_form_of_degenerate_outline_is_nan():
    assert np.isnan(form.compute(np.array([[0.0, 0.0], [1.0, 1.0]]))).all()


def test_bbox_descriptors():
    region = Region(
        object_id=1,
        bbox=(2, 3, 4, 6),
        mask=np.ones((4, 3), dtype=bool),
        area=12.0,
        touches_border=False,
    )
    values = _named(bbox.NAMES, bbox.compute(region))
    assert values == {
        "bbox_x_min": 2,
        "bbox_y_min": 3,
        "bbox_x_max": 4,
        "bbox_y_max": 6,
        "bbox_width": 3,
        "bbox_height": 4,
        "bbox_area": 12,
    }
