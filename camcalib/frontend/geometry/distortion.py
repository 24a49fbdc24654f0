"""
camcalib/frontend/geometry/distortion.py

Objective:
    Turn a distortion tag plus coefficient and camera matrices into a concrete,
    immutable lens model that can project 3D points to distorted pixels and
    unproject pixels back to bearing rays. The projection math is delegated to
    gtsam's calibration classes (Cal3DS2 for radial-tangential, Cal3Fisheye for
    equidistant).
"""
from abc import ABC, abstractmethod
from enum import Enum

import gtsam
import numpy as np

from camcalib.exceptions import MalformedValue, UnsupportedDistortionModel
from camcalib.frontend.geometry.matrices import camera_matrix_to_intrinsics, frozen_array


class DistortionModelKind(Enum):
    """ Closed set of supported lens models; the value is the canonical tag. """
    RADIAL_TANGENTIAL = "radial-tangential"
    EQUIDISTANT = "equidistant"

    @property
    def num_coefficients(self) -> int:
        return _NUM_COEFFICIENTS[self]

    @classmethod
    def from_tag(cls, tag) -> "DistortionModelKind":
        """ Resolve a tag (or alias) to its kind; unknown tags raise. """
        if isinstance(tag, DistortionModelKind):
            return tag
        if not isinstance(tag, str):
            raise UnsupportedDistortionModel(tag)
        kind = _TAGS.get(tag.strip().lower())
        if kind is None:
            raise UnsupportedDistortionModel(tag)
        return kind


_NUM_COEFFICIENTS = {
    DistortionModelKind.RADIAL_TANGENTIAL: 4,   # k1 k2 p1 p2
    DistortionModelKind.EQUIDISTANT: 4,         # k1 k2 k3 k4
}

_TAGS = {
    "radial-tangential": DistortionModelKind.RADIAL_TANGENTIAL,
    "radtan": DistortionModelKind.RADIAL_TANGENTIAL,
    "equidistant": DistortionModelKind.EQUIDISTANT,
}


class DistortionModel(ABC):
    """
    Immutable lens model: pinhole intrinsics plus distortion coefficients.
    Holds no state besides its parameters, so one instance can be shared by
    any number of readers.

    ---
    Attributes:
    kind            DistortionModelKind
    coefficients    (N,) read-only distortion coefficients
    camera_matrix   (3x3) read-only pinhole matrix
    calibration     the underlying gtsam calibration object
    """
    kind: DistortionModelKind = None

    def __init__(self, coefficients, camera_matrix):
        coefficients = np.asarray(coefficients, dtype=np.float64).ravel()
        expected = self.kind.num_coefficients
        if coefficients.size != expected:
            raise MalformedValue(
                f"Distortion model '{self.kind.value}' expects {expected} "
                f"coefficients, got {coefficients.size}",
                field="distortion_coefficients")
        camera_matrix = np.asarray(camera_matrix, dtype=np.float64)
        if camera_matrix.shape != (3, 3):
            raise MalformedValue(f"Camera matrix must be 3x3, got {camera_matrix.shape}",
                                 field="intrinsics")

        self._coefficients = frozen_array(coefficients)
        self._camera_matrix = frozen_array(camera_matrix)
        self._calibration = self._make_calibration(
            camera_matrix_to_intrinsics(camera_matrix), coefficients)


    @abstractmethod
    def _make_calibration(self, intrinsics, coefficients):
        """ Build the gtsam calibration for (fu, fv, cu, cv) and the coefficients. """


    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def coefficients(self):
        return self._coefficients

    @property
    def camera_matrix(self):
        return self._camera_matrix

    @property
    def calibration(self):
        return self._calibration


    def uncalibrate(self, xy):
        """ Normalized image-plane point (x/z, y/z) -> distorted pixel (u, v). """
        xy = np.asarray(xy, dtype=np.float64).reshape(2)
        return np.asarray(self._calibration.uncalibrate(xy), dtype=np.float64)


    def calibrate(self, uv):
        """ Distorted pixel (u, v) -> normalized image-plane point (x/z, y/z). """
        uv = np.asarray(uv, dtype=np.float64).reshape(2)
        return np.asarray(self._calibration.calibrate(uv), dtype=np.float64)


    def project(self, point_cam):
        """ Project a 3D point in camera coordinates to a distorted pixel. """
        X = np.asarray(point_cam, dtype=np.float64).reshape(3)
        if X[2] <= 0:
            raise ValueError(f"Point is behind the camera (z={X[2]})")
        return self.uncalibrate(X[:2] / X[2])


    def unproject(self, uv):
        """ Distorted pixel -> unit-norm bearing ray in camera coordinates. """
        x, y = self.calibrate(uv)
        ray = np.array([x, y, 1.0])
        return ray / np.linalg.norm(ray)


    def equals(self, other, tol=1e-9) -> bool:
        if not isinstance(other, DistortionModel) or other.kind != self.kind:
            return False
        return (np.max(np.abs(self._coefficients - other.coefficients)) <= tol
                and np.max(np.abs(self._camera_matrix - other.camera_matrix)) <= tol)


    def __repr__(self):
        fu, fv, cu, cv = camera_matrix_to_intrinsics(self._camera_matrix)
        return (f"{type(self).__name__}(fu={fu}, fv={fv}, cu={cu}, cv={cv}, "
                f"coefficients={self._coefficients.tolist()})")


class RadTanDistortionModel(DistortionModel):
    """ Radial-tangential (plumb bob) model, coefficients k1 k2 p1 p2. """
    kind = DistortionModelKind.RADIAL_TANGENTIAL

    def _make_calibration(self, intrinsics, coefficients):
        fu, fv, cu, cv = intrinsics
        k1, k2, p1, p2 = coefficients
        return gtsam.Cal3DS2(fu, fv, 0.0, cu, cv, k1, k2, p1, p2)


class EquidistantDistortionModel(DistortionModel):
    """ Equidistant (Kannala-Brandt fisheye) model, coefficients k1 k2 k3 k4. """
    kind = DistortionModelKind.EQUIDISTANT

    def _make_calibration(self, intrinsics, coefficients):
        fu, fv, cu, cv = intrinsics
        k1, k2, k3, k4 = coefficients
        return gtsam.Cal3Fisheye(fu, fv, 0.0, cu, cv, k1, k2, k3, k4)


_MODELS = {
    DistortionModelKind.RADIAL_TANGENTIAL: RadTanDistortionModel,
    DistortionModelKind.EQUIDISTANT: EquidistantDistortionModel,
}


def make_distortion_model(distortion_model_name,
                          distortion_coeff_matrix,
                          camera_matrix) -> DistortionModel:
    """
    Factory: validate the tag first, then let the concrete model check its
    coefficient count and build the gtsam calibration.

    Raises:
        UnsupportedDistortionModel: unknown tag, whatever the coefficients
        MalformedValue:             coefficient count does not fit the model
    """
    kind = DistortionModelKind.from_tag(distortion_model_name)
    return _MODELS[kind](distortion_coeff_matrix, camera_matrix)
