import numpy as np
import pytest

from camcalib.exceptions import MalformedValue, UnsupportedDistortionModel
from camcalib.frontend.geometry.pose_utils import pose_from_R_t
from camcalib.frontend.io.camera_params import CalibrationProfile

INTRINSICS = (458.654, 457.296, 367.215, 248.375)
COEFFS = (-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05)


def make_profile(**overrides):
    fields = dict(intrinsics=INTRINSICS,
                  body_pose_cam=pose_from_R_t(np.eye(3), [0.1, 0.0, 0.0]),
                  frame_rate=20.0,
                  image_size=(752, 480),
                  distortion_model_name="radial-tangential",
                  distortion_coefficients=COEFFS,
                  camera_id="cam0")
    fields.update(overrides)
    return CalibrationProfile(**fields)


def test_identical_profiles_are_equal():
    assert make_profile().equals(make_profile())
    assert make_profile().calibration_equals(make_profile())


def test_frame_rate_within_tolerance():
    a = make_profile()
    assert a.equals(make_profile(frame_rate=20.0 + 1e-10), tol=1e-9)
    assert not a.equals(make_profile(frame_rate=20.0 + 1e-3), tol=1e-9)


def test_calibration_equality_ignores_rate_size_and_pose():
    a = make_profile()
    b = make_profile(frame_rate=30.0,
                     image_size=(640, 480),
                     body_pose_cam=pose_from_R_t(np.eye(3), [5.0, 5.0, 5.0]))
    assert not a.equals(b)
    assert a.calibration_equals(b)


def test_intrinsics_difference_breaks_both():
    a = make_profile()
    b = make_profile(intrinsics=(458.654 + 1e-3,) + INTRINSICS[1:])
    assert not a.equals(b, tol=1e-6)
    assert not a.calibration_equals(b, tol=1e-6)
    assert a.calibration_equals(b, tol=1e-2)


def test_distortion_differences():
    a = make_profile()
    assert not a.calibration_equals(make_profile(distortion_model_name="equidistant"))
    shifted = (COEFFS[0] + 1e-4,) + COEFFS[1:]
    assert not a.calibration_equals(make_profile(distortion_coefficients=shifted), tol=1e-6)


def test_pose_components_compared_with_tolerance():
    a = make_profile()
    b = make_profile(body_pose_cam=pose_from_R_t(np.eye(3), [0.1 + 1e-7, 0.0, 0.0]))
    assert a.equals(b, tol=1e-6)
    assert not a.equals(b, tol=1e-9)


def test_image_size_and_id_compare_exactly():
    a = make_profile()
    assert not a.equals(make_profile(image_size=(752, 481)), tol=10.0)
    assert not a.equals(make_profile(camera_id="cam1"))


def test_empty_profiles():
    assert CalibrationProfile().equals(CalibrationProfile())
    assert not CalibrationProfile().equals(make_profile())
    assert not make_profile().calibration_equals(CalibrationProfile())
    assert not make_profile().equals("not a profile")


def test_rectification_maps_take_part_in_equality():
    a = make_profile()
    map_x = np.zeros((480, 752), dtype=np.float32)
    map_y = np.ones((480, 752), dtype=np.float32)
    rectified = a.with_rectification(map_x, map_y)

    assert not a.equals(rectified)
    assert a.calibration_equals(rectified)
    assert rectified.equals(a.with_rectification(map_x.copy(), map_y.copy()))
    assert not rectified.equals(a.with_rectification(map_x + 1.0, map_y))


def test_with_rectification_shares_the_model():
    a = make_profile()
    P = np.hstack([a.camera_matrix, np.zeros((3, 1))])
    rectified = a.with_rectification(None, None, np.eye(3), P)
    assert rectified.distortion_model is a.distortion_model
    assert np.array_equal(rectified.rectified_projection_matrix, P)
    assert a.rectified_projection_matrix is None


def test_with_rectification_validates_inputs():
    a = make_profile()
    with pytest.raises(MalformedValue):
        a.with_rectification(None, None, rectification_rotation=2.0 * np.eye(3))
    with pytest.raises(MalformedValue):
        a.with_rectification(None, None, rectified_projection_matrix=np.eye(4))


def test_constructor_finalizes_derived_fields():
    a = make_profile(distortion_model_name="radtan")
    assert a.distortion_model_name == "radial-tangential"
    assert a.camera_matrix[0, 2] == INTRINSICS[2]
    assert a.distortion_coeff_matrix.ravel().tolist() == list(COEFFS)
    with pytest.raises(ValueError):
        a.camera_matrix[0, 0] = 1.0


@pytest.mark.parametrize("overrides", [
    dict(frame_rate=-5.0),
    dict(frame_rate=0.0),
    dict(frame_rate=float("nan")),
    dict(frame_rate=float("inf")),
    dict(image_size=(0, -1)),
    dict(image_size=(640.9, 480)),
    dict(image_size=(752,)),
    dict(image_size=(True, 480)),
])
def test_constructor_rejects_out_of_range_fields(overrides):
    with pytest.raises(MalformedValue) as excinfo:
        make_profile(**overrides)
    assert excinfo.value.field == next(iter(overrides))


def test_constructor_keeps_integral_float_sizes():
    assert make_profile(image_size=(752.0, 480.0)).image_size == (752, 480)


def test_constructor_rejects_unknown_tag_without_intrinsics():
    with pytest.raises(UnsupportedDistortionModel) as excinfo:
        CalibrationProfile(distortion_model_name="fisheye-unknown")
    assert excinfo.value.tag == "fisheye-unknown"
    assert CalibrationProfile(distortion_model_name="radtan").distortion_model_name == \
        "radial-tangential"


@pytest.mark.parametrize("map_x, map_y", [
    (np.zeros(5), np.zeros(5)),
    (np.zeros((480, 752, 3)), None),
    (np.zeros((480, 752)), np.zeros((480, 751))),
])
def test_with_rectification_checks_remap_shapes(map_x, map_y):
    with pytest.raises(MalformedValue):
        make_profile().with_rectification(map_x, map_y)


def test_with_rectification_accepts_packed_maps():
    rectified = make_profile().with_rectification(np.zeros((480, 752, 2), dtype=np.int16),
                                                  np.zeros((480, 752), dtype=np.uint16))
    assert rectified.undistort_rectify_map_x.shape == (480, 752, 2)
