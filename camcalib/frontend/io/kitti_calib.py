"""
camcalib/frontend/io/kitti_calib.py

Objective:
    Read KITTI calibration dumps into the normalized pieces of a calibration
    profile. Two layouts are understood:

    odometry calib.txt       one 3x4 projection per camera
        P0: fx 0 cx tx  0 fy cy ty  0 0 1 tz

    raw calib_cam_to_cam.txt one block of labelled lines per camera
        S_00: w h
        K_00: 3x3 intrinsics        D_00: k1 k2 p1 p2 k3
        R_00: 3x3 rotation          T_00: translation   (x_cam = R x_cam00 + T)
        S_rect_00, R_rect_00, P_rect_00: rectified size, rotation, projection

    Frame convention: the caller's R_cam_to_imu / T_cam_to_imu map points from
    the reference camera (camera 0) into the IMU ("body") frame,
        p_imu = R_cam_to_imu @ p_cam0 + T_cam_to_imu
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import gtsam
import numpy as np

from camcalib.exceptions import CameraNotFound, MalformedValue, MissingField
from camcalib.frontend.geometry.pose_utils import is_rotation, pose_from_R_t
from camcalib.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class KittiCameraCalib:
    """
    Normalized calibration of one KITTI camera.

    ---
    Attributes:
    intrinsics                  (fu, fv, cu, cv)
    distortion_coefficients     k1 k2 p1 p2 (radial-tangential)
    body_pose_cam               pose of this camera in the IMU frame
    image_size                  (width, height) or None when the dump has none
    rectification_rotation      (3x3) or None
    rectified_projection_matrix (3x4) or None
    """
    intrinsics: Tuple[float, float, float, float]
    distortion_coefficients: Tuple[float, ...]
    body_pose_cam: gtsam.Pose3
    image_size: Optional[Tuple[int, int]]
    rectification_rotation: Optional[np.ndarray]
    rectified_projection_matrix: Optional[np.ndarray]


def read_kitti_calib(calib_txt) -> Dict[str, List[str]]:
    """
    Read a calibration dump into {label: tokens}. Labels keep their colon
    ('P0:'), values stay as text until a caller asks for them, so lines such
    as 'calib_time: 09-Jan-2012 13:57:47' do not break parsing.
    """
    path = Path(calib_txt)
    if not path.is_file():
        raise MissingField("Calibration file not found", path=path)

    entries = {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            for line in f:
                tokens = line.split()
                if not tokens:
                    continue
                label, values = tokens[0], tokens[1:]
                if not label.endswith(':'):     # 'P0 : ...' style separators
                    if values and values[0] == ':':
                        values = values[1:]
                    label = label + ':'
                entries[label] = values
    except UnicodeDecodeError as e:
        raise MalformedValue(f"Calibration file is not UTF-8 text: {e}", path=path) from e
    return entries


def _floats(entries, label, count, path):
    """ Numeric values of one labelled line, exactly 'count' of them. """
    try:
        values = [float(v) for v in entries[label]]
    except ValueError as e:
        raise MalformedValue(f"Non-numeric value on line '{label}'",
                             path=path, field=label) from e
    if len(values) != count:
        raise MalformedValue(f"Line '{label}' must hold {count} values, got {len(values)}",
                             path=path, field=label)
    if not np.all(np.isfinite(values)):
        raise MalformedValue(f"Line '{label}' holds non-finite values",
                             path=path, field=label)
    return np.array(values, dtype=np.float64)


def _optional(entries, label, count, path, shape):
    if label not in entries:
        return None
    return _floats(entries, label, count, path).reshape(shape)


def _body_pose_cam0(R_cam_to_imu, T_cam_to_imu):
    """ Pose of camera 0 in the IMU frame from the caller's extrinsics. """
    R = np.asarray(R_cam_to_imu, dtype=np.float64)
    T = np.asarray(T_cam_to_imu, dtype=np.float64)
    if R.shape != (3, 3):
        raise MalformedValue(f"R_cam_to_imu must be 3x3, got {R.shape}", field="R_cam_to_imu")
    if T.size != 3:
        raise MalformedValue(f"T_cam_to_imu must hold 3 values, got {T.size}",
                             field="T_cam_to_imu")
    if not is_rotation(R):
        raise MalformedValue("R_cam_to_imu is not a rotation matrix", field="R_cam_to_imu")
    return pose_from_R_t(R, T.reshape(3))


def _projection_to_intrinsics(P):
    """
    Split a rectified projection P = K [I | t] into (fu, fv, cu, cv) and the
    residual t, which carries KITTI's stereo baseline.
    """
    K = P[:, :3]
    t = np.linalg.solve(K, P[:, 3])
    return (float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2])), t


def _parse_odometry(entries, label, path, body_pose_cam0):
    P = _floats(entries, label, 12, path).reshape(3, 4)
    if P[0, 0] <= 0 or P[1, 1] <= 0:
        raise MalformedValue(f"Line '{label}' has non-positive focal lengths",
                             path=path, field=label)
    if not np.allclose(P[2, :3], [0.0, 0.0, 1.0]) or P[1, 0] != 0.0:
        raise MalformedValue(f"Line '{label}' is not a rectified projection K [I | t]",
                             path=path, field=label)
    intrinsics, t = _projection_to_intrinsics(P)
    # x_cam = x_cam0 + t, so this camera sits at -t in camera 0
    cam0_pose_cam = pose_from_R_t(np.eye(3), -t)
    logger.debug(f"KITTI {label} baseline term t={t.tolist()}")
    return KittiCameraCalib(
        intrinsics=intrinsics,
        distortion_coefficients=(0.0, 0.0, 0.0, 0.0),   # odometry images are rectified
        body_pose_cam=body_pose_cam0.compose(cam0_pose_cam),
        image_size=None,
        rectification_rotation=np.eye(3),
        rectified_projection_matrix=P,
    )


def _parse_raw(entries, cam_key, path, body_pose_cam0):
    K = _floats(entries, f"K_{cam_key}:", 9, path).reshape(3, 3)
    if K[0, 0] <= 0 or K[1, 1] <= 0:
        raise MalformedValue(f"Line 'K_{cam_key}:' has non-positive focal lengths",
                             path=path, field=f"K_{cam_key}:")
    intrinsics = (float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2]))

    for required in (f"S_{cam_key}:", f"D_{cam_key}:", f"R_{cam_key}:", f"T_{cam_key}:"):
        if required not in entries:
            raise MissingField(f"Missing line '{required}'", path=path, field=required)

    width, height = _floats(entries, f"S_{cam_key}:", 2, path)
    if width <= 0 or height <= 0 or width != int(width) or height != int(height):
        raise MalformedValue(f"Line 'S_{cam_key}:' must hold two positive integers",
                             path=path, field=f"S_{cam_key}:")

    D = _floats(entries, f"D_{cam_key}:", 5, path)
    if D[4] != 0.0:
        logger.warning(f"KITTI D_{cam_key} k3={D[4]} dropped: "
                       f"the radial-tangential model keeps k1 k2 p1 p2")

    R = _floats(entries, f"R_{cam_key}:", 9, path).reshape(3, 3)
    T = _floats(entries, f"T_{cam_key}:", 3, path)
    if not is_rotation(R):
        raise MalformedValue(f"Line 'R_{cam_key}:' is not a rotation matrix",
                             path=path, field=f"R_{cam_key}:")
    # x_cam = R x_cam0 + T  ->  pose of this camera in camera 0 is the inverse
    cam0_pose_cam = pose_from_R_t(R, T).inverse()

    return KittiCameraCalib(
        intrinsics=intrinsics,
        distortion_coefficients=tuple(float(d) for d in D[:4]),
        body_pose_cam=body_pose_cam0.compose(cam0_pose_cam),
        image_size=(int(width), int(height)),
        rectification_rotation=_optional(entries, f"R_rect_{cam_key}:", 9, path, (3, 3)),
        rectified_projection_matrix=_optional(entries, f"P_rect_{cam_key}:", 12, path, (3, 4)),
    )


def parse_kitti_camera(calib_txt, R_cam_to_imu, T_cam_to_imu, cam_id: str) -> KittiCameraCalib:
    """
    Locate 'cam_id' in a KITTI dump and normalize its calibration.
    'cam_id' is an odometry label ('P0' or 'P0:') or a raw camera key ('00').

    Raises:
        MissingField:   file absent, or a raw block misses a required line
        CameraNotFound: no line for 'cam_id'
        MalformedValue: wrong value counts, non-numeric or degenerate values
    """
    path = Path(calib_txt)
    entries = read_kitti_calib(path)
    body_pose_cam0 = _body_pose_cam0(R_cam_to_imu, T_cam_to_imu)

    cam_key = cam_id.strip().rstrip(':')
    label = cam_key + ':'
    if cam_key and label in entries:
        logger.debug(f"Parsing KITTI odometry camera {label} from {path}")
        return _parse_odometry(entries, label, path, body_pose_cam0)
    if cam_key and f"K_{cam_key}:" in entries:
        logger.debug(f"Parsing KITTI raw camera {cam_key} from {path}")
        return _parse_raw(entries, cam_key, path, body_pose_cam0)
    raise CameraNotFound(cam_id, path=path)
