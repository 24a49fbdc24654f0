"""
camcalib/frontend/geometry/pose_utils.py

Objective:
    Compose gtsam.Pose3 extrinsics from flat parameter lists or (R, t) pairs,
    and take them apart again for comparison and serialization.
"""
import gtsam
import numpy as np

ORTHONORMAL_TOL = 1e-3


def homogenous(Rt):
    """ Make a (3x4) matrix homogenous (4x4). """
    return np.vstack([Rt, [0.0, 0.0, 0.0, 1.0]])


def split_R_t(Rt):
    """ Given a non-homogenous Rt or homogenous T, return (R,t) """
    R = Rt[:3, :3]
    t = Rt[:3, 3]
    return R, t


def is_rotation(R, tol=ORTHONORMAL_TOL):
    """ True when R is orthonormal with determinant +1 (within tol). """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3) or not np.all(np.isfinite(R)):
        return False
    return (np.max(np.abs(R @ R.T - np.eye(3))) <= tol
            and abs(np.linalg.det(R) - 1.0) <= tol)


def pose_from_R_t(R, t):
    """ Wrap a 3x3 rotation and a 3-vector translation into gtsam.Pose3. """
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(3)
    return gtsam.Pose3(gtsam.Rot3(R), t)


def pose_from_flat(params):
    """
    Compose a rigid transform from a row-major flat list: 16 values (4x4, last
    row [0 0 0 1]) or 12 values (3x4 [R|t]).
    Raises ValueError when the list cannot describe a rigid transform.
    """
    values = np.asarray(params, dtype=np.float64).ravel()
    if values.size == 16:
        T = values.reshape(4, 4)
        if np.max(np.abs(T[3] - [0.0, 0.0, 0.0, 1.0])) > ORTHONORMAL_TOL:
            raise ValueError(f"Last row of a 4x4 transform must be [0 0 0 1], got {T[3]}")
    elif values.size == 12:
        T = homogenous(values.reshape(3, 4))
    else:
        raise ValueError(f"A rigid transform needs 12 or 16 values, got {values.size}")

    R, t = split_R_t(T)
    if not is_rotation(R):
        raise ValueError("Rotation block of the transform is not orthonormal")
    return pose_from_R_t(R, t)


def pose_to_R_t(pose: gtsam.Pose3):
    """ Return (R (3x3), t (3,)) numpy arrays of a gtsam.Pose3. """
    R = np.asarray(pose.rotation().matrix(), dtype=np.float64)
    t = np.asarray(pose.translation(), dtype=np.float64).reshape(3)
    return R, t


def pose_to_flat(pose: gtsam.Pose3):
    """ Row-major 16-vector of the homogenous matrix of a pose. """
    R, t = pose_to_R_t(pose)
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = t
    return T.ravel()


def poses_close(pose_a: gtsam.Pose3, pose_b: gtsam.Pose3, tol):
    """ Compare rotation matrices and translations independently (max abs diff). """
    Ra, ta = pose_to_R_t(pose_a)
    Rb, tb = pose_to_R_t(pose_b)
    return (np.max(np.abs(Ra - Rb)) <= tol
            and np.max(np.abs(ta - tb)) <= tol)
