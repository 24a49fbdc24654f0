import gtsam
import numpy as np
import pytest

from camcalib.exceptions import MalformedValue, UnsupportedDistortionModel
from camcalib.frontend.geometry.distortion import (DistortionModelKind,
                                                   EquidistantDistortionModel,
                                                   RadTanDistortionModel,
                                                   make_distortion_model)
from camcalib.frontend.geometry.matrices import (distortion_vector_to_matrix,
                                                 intrinsics_to_camera_matrix)

K = intrinsics_to_camera_matrix((458.654, 457.296, 367.215, 248.375))
RADTAN = distortion_vector_to_matrix([-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05])


def test_radtan_with_four_coefficients():
    model = make_distortion_model("radial-tangential", RADTAN, K)
    assert isinstance(model, RadTanDistortionModel)
    assert isinstance(model.calibration, gtsam.Cal3DS2)
    assert model.kind is DistortionModelKind.RADIAL_TANGENTIAL
    assert model.name == "radial-tangential"
    assert np.array_equal(model.camera_matrix, K)
    assert model.coefficients.tolist() == RADTAN.ravel().tolist()


def test_radtan_alias():
    model = make_distortion_model("radtan", RADTAN, K)
    assert model.name == "radial-tangential"


def test_radtan_with_five_coefficients_fails():
    coeffs = distortion_vector_to_matrix([-0.28, 0.07, 0.0002, 1.7e-05, 0.01])
    with pytest.raises(MalformedValue):
        make_distortion_model("radial-tangential", coeffs, K)


def test_equidistant_model():
    coeffs = distortion_vector_to_matrix([-0.01, 0.02, -0.003, 0.0004])
    model = make_distortion_model("equidistant", coeffs, K)
    assert isinstance(model, EquidistantDistortionModel)
    assert isinstance(model.calibration, gtsam.Cal3Fisheye)


@pytest.mark.parametrize("coeffs", [[], [0.0] * 4, [0.0] * 5, [1.0, 2.0]])
def test_unknown_tag_fails_whatever_the_coefficients(coeffs):
    with pytest.raises(UnsupportedDistortionModel):
        make_distortion_model("fisheye-unknown", np.asarray(coeffs).reshape(1, -1), K)


def test_from_tag_rejects_non_strings():
    with pytest.raises(UnsupportedDistortionModel):
        DistortionModelKind.from_tag(None)


def test_each_kind_declares_its_coefficient_count():
    assert DistortionModelKind.RADIAL_TANGENTIAL.num_coefficients == 4
    assert DistortionModelKind.EQUIDISTANT.num_coefficients == 4


def test_project_without_distortion_is_pinhole():
    model = make_distortion_model("radial-tangential", np.zeros((1, 4)), K)
    X = np.array([0.3, -0.2, 2.0])
    uv = model.project(X)
    assert np.allclose(uv, [458.654 * 0.15 + 367.215, 457.296 * -0.1 + 248.375], atol=1e-9)


def test_equidistant_projection_without_distortion():
    model = make_distortion_model("equidistant", np.zeros((1, 4)), K)
    x, y = 0.3, 0.4
    r = np.hypot(x, y)
    scale = np.arctan(r) / r
    uv = model.project([x, y, 1.0])
    assert np.allclose(uv, [458.654 * scale * x + 367.215,
                           457.296 * scale * y + 248.375], atol=1e-6)


@pytest.mark.parametrize("tag, coeffs", [
    ("radial-tangential", RADTAN),
    ("equidistant", distortion_vector_to_matrix([-0.01, 0.02, -0.003, 0.0004])),
])
def test_unproject_recovers_projected_ray(tag, coeffs):
    model = make_distortion_model(tag, coeffs, K)
    X = np.array([0.1, -0.05, 1.0])
    ray = model.unproject(model.project(X))
    assert np.linalg.norm(ray) == pytest.approx(1.0)
    assert np.allclose(ray, X / np.linalg.norm(X), atol=1e-4)


def test_project_behind_camera_raises():
    model = make_distortion_model("radial-tangential", RADTAN, K)
    with pytest.raises(ValueError):
        model.project([0.0, 0.0, -1.0])


def test_model_parameters_are_read_only():
    model = make_distortion_model("radial-tangential", RADTAN, K)
    with pytest.raises(ValueError):
        model.coefficients[0] = 1.0
    with pytest.raises(ValueError):
        model.camera_matrix[0, 0] = 1.0


def test_model_equality():
    a = make_distortion_model("radial-tangential", RADTAN, K)
    b = make_distortion_model("radtan", RADTAN.copy(), K.copy())
    c = make_distortion_model("equidistant", RADTAN, K)
    assert a.equals(b)
    assert not a.equals(c)
