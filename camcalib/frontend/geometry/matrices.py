"""
camcalib/frontend/geometry/matrices.py

Objective:
    Pure conversions from the flat calibration vectors to the dense
    matrices consumed by the distortion-model layer and by OpenCV.
"""
import numpy as np


def _frozen(arr):
    arr.setflags(write=False)
    return arr


def intrinsics_to_camera_matrix(intrinsics):
    """
    Build the (3x3) pinhole matrix from (fu, fv, cu, cv):
        [[fu,  0, cu],
         [ 0, fv, cv],
         [ 0,  0,  1]]
    """
    intrinsics = np.asarray(intrinsics, dtype=np.float64).ravel()
    if intrinsics.size != 4:
        raise ValueError(f"Expected 4 intrinsics (fu, fv, cu, cv), got {intrinsics.size}")
    fu, fv, cu, cv = intrinsics
    K = np.array([[fu, 0.0, cu],
                  [0.0, fv, cv],
                  [0.0, 0.0, 1.0]], dtype=np.float64)
    return _frozen(K)


def camera_matrix_to_intrinsics(K):
    """ Inverse of intrinsics_to_camera_matrix (skew is ignored). """
    K = np.asarray(K, dtype=np.float64)
    return float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2])


def distortion_vector_to_matrix(distortion_coeffs):
    """
    Reshape the flat coefficient list into a (1xN) row matrix, the OpenCV
    distCoeffs layout. Order and count are preserved.
    """
    coeffs = np.asarray(distortion_coeffs, dtype=np.float64).ravel()
    return _frozen(coeffs.reshape(1, -1).copy())


def frozen_array(values, shape=None):
    """ Copy 'values' into a read-only float64 array, optionally reshaped. """
    arr = np.array(values, dtype=np.float64)
    if shape is not None:
        arr = arr.reshape(shape)
    return _frozen(arr)
