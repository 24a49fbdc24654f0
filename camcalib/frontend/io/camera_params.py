"""
camcalib/frontend/io/camera_params.py

Objective:
    One normalized calibration profile for a monocular camera, whatever file
    it came from: intrinsics, lens distortion, extrinsics w.r.t. the body
    frame, image info, and the matrices needed downstream for undistortion
    and rectification.
"""
from pathlib import Path
from typing import Optional, Sequence, Tuple
import math

import gtsam
import numpy as np

from camcalib.config import KittiConfig
from camcalib.exceptions import MalformedCalibration, MalformedValue
from camcalib.frontend.geometry.distortion import (DistortionModel, DistortionModelKind,
                                                   make_distortion_model)
from camcalib.frontend.geometry.matrices import (distortion_vector_to_matrix, frozen_array,
                                                 intrinsics_to_camera_matrix)
from camcalib.frontend.geometry.pose_utils import is_rotation, pose_to_R_t, poses_close
from camcalib.frontend.io import kitti_calib, yaml_io
from camcalib.utils.logger import get_logger

logger = get_logger(__name__)


class CalibrationProfile:
    """
    Calibration of a monocular camera. Built in one pass by from_yaml() or
    from_kitti() (or the constructor); there is no mutation API afterwards and
    every matrix is a read-only numpy array, so a profile may be shared by
    concurrent readers.

    ---
    Attributes:
    camera_id                   optional identifier
    intrinsics                  (fu, fv, cu, cv) in pixels
    body_pose_cam               gtsam.Pose3 of the camera in the body frame
    frame_rate                  frames per second
    image_size                  (width, height) in pixels
    camera_matrix               (3x3) pinhole matrix built from intrinsics
    distortion_model_name       canonical distortion tag
    distortion_coefficients     coefficients, meaning set by the tag
    distortion_coeff_matrix     (1xN) OpenCV layout of the coefficients
    distortion_model            shared DistortionModel built from the above
    undistort_rectify_map_x/y   remap tables produced by an external rectifier
    rectification_rotation      (3x3) rotation applied by rectification (I by default)
    rectified_projection_matrix (3x4) camera matrix after rectification
    """
    def __init__(self,
                 intrinsics: Optional[Sequence[float]] = None,
                 body_pose_cam: Optional[gtsam.Pose3] = None,
                 frame_rate: Optional[float] = None,
                 image_size: Optional[Tuple[int, int]] = None,
                 distortion_model_name: Optional[str] = None,
                 distortion_coefficients: Sequence[float] = (),
                 camera_id: Optional[str] = None,
                 undistort_rectify_map_x: Optional[np.ndarray] = None,
                 undistort_rectify_map_y: Optional[np.ndarray] = None,
                 rectification_rotation: Optional[np.ndarray] = None,
                 rectified_projection_matrix: Optional[np.ndarray] = None,
                 distortion_model: Optional[DistortionModel] = None):
        """
        With no arguments this is an empty profile. Given intrinsics, the
        derived fields are finalized in order: camera matrix, coefficient
        matrix, then (once a tag is known) the distortion model. A prebuilt
        'distortion_model' is shared instead of rebuilt.

        Raises:
            MalformedValue:             rate, size, intrinsics or remap tables out of range
            UnsupportedDistortionModel: 'distortion_model_name' is not a known tag
        """
        self.camera_id = camera_id
        self.intrinsics = None if intrinsics is None else tuple(float(v) for v in intrinsics)
        self.body_pose_cam = body_pose_cam if body_pose_cam is not None else gtsam.Pose3()
        self.frame_rate = _checked_frame_rate(frame_rate)
        self.image_size = _checked_image_size(image_size)
        # unknown tags fail here even before intrinsics are known; aliases
        # such as 'radtan' are stored under their canonical tag
        self.distortion_model_name = (None if distortion_model_name is None
                                      else DistortionModelKind.from_tag(distortion_model_name).value)
        self.distortion_coefficients = tuple(float(v) for v in distortion_coefficients)

        # Derived: pure functions of the vectors above
        self.camera_matrix = None
        self.distortion_coeff_matrix = None
        self.distortion_model = None
        if self.intrinsics is not None:
            if len(self.intrinsics) != 4:
                raise MalformedValue(f"Expected 4 intrinsics (fu, fv, cu, cv), "
                                     f"got {len(self.intrinsics)}", field="intrinsics")
            self.camera_matrix = intrinsics_to_camera_matrix(self.intrinsics)
        if self.distortion_coefficients:
            self.distortion_coeff_matrix = distortion_vector_to_matrix(self.distortion_coefficients)
        if distortion_model is not None:
            self.distortion_model = distortion_model
        elif self.distortion_model_name is not None and self.camera_matrix is not None:
            coeff_matrix = (self.distortion_coeff_matrix
                            if self.distortion_coeff_matrix is not None else np.empty((1, 0)))
            self.distortion_model = make_distortion_model(self.distortion_model_name,
                                                          coeff_matrix,
                                                          self.camera_matrix)

        # Rectification artifacts, filled in by an external rectifier
        _check_remap_tables(undistort_rectify_map_x, undistort_rectify_map_y)
        self.undistort_rectify_map_x = _optional_frozen(undistort_rectify_map_x)
        self.undistort_rectify_map_y = _optional_frozen(undistort_rectify_map_y)
        self.rectification_rotation = frozen_array(
            np.eye(3) if rectification_rotation is None else rectification_rotation, (3, 3))
        self.rectified_projection_matrix = (None if rectified_projection_matrix is None
                                            else frozen_array(rectified_projection_matrix))


    ## Ingestion ##
    @classmethod
    def from_yaml(cls, filepath) -> "CalibrationProfile":
        """
        Build a profile from a generic calibration YAML (see yaml_io for the
        keys). Any missing or malformed field aborts the whole parse.

        Raises:
            MalformedCalibration (MissingField, MalformedValue,
            UnsupportedDistortionModel)
        """
        path = Path(filepath)
        with yaml_io.open_file_storage(path) as fs:
            distortion_model_name, distortion_coefficients = yaml_io.parse_distortion(fs, path)
            image_size = yaml_io.parse_img_size(fs, path)
            frame_rate = yaml_io.parse_frame_rate(fs, path)
            body_pose_cam = yaml_io.parse_body_pose_cam(fs, path)
            intrinsics = yaml_io.parse_camera_intrinsics(fs, path)
            camera_id = yaml_io.parse_camera_id(fs, path)

        try:
            profile = cls(intrinsics=intrinsics,
                          body_pose_cam=body_pose_cam,
                          frame_rate=frame_rate,
                          image_size=image_size,
                          distortion_model_name=distortion_model_name,
                          distortion_coefficients=distortion_coefficients,
                          camera_id=camera_id)
        except MalformedValue as e:
            # model construction knows no file; attach it
            raise MalformedValue(str(e), path=path, field=e.field) from e
        logger.debug(f"Parsed {profile.distortion_model_name} camera "
                     f"{profile.camera_id or ''} from {path}")
        return profile


    @classmethod
    def from_kitti(cls,
                   filepath,
                   R_cam_to_imu,
                   T_cam_to_imu,
                   cam_id: str,
                   frame_rate: Optional[float] = None,
                   image_size: Optional[Tuple[int, int]] = None,
                   kitti_config: KittiConfig = KittiConfig()) -> "CalibrationProfile":
        """
        Build a profile from a KITTI calibration dump (odometry calib.txt or
        raw calib_cam_to_cam.txt). 'body' is the IMU; R_cam_to_imu and
        T_cam_to_imu place camera 0 in it (p_imu = R p_cam0 + T).

        KITTI dumps carry no frame rate, and odometry dumps no image size:
        explicit arguments win, then the dump (raw S_xx lines), then
        'kitti_config'. The distortion model is always radial-tangential.

        Raises:
            MissingField, CameraNotFound, MalformedValue
        """
        path = Path(filepath)
        calib = kitti_calib.parse_kitti_camera(path, R_cam_to_imu, T_cam_to_imu, cam_id)

        if frame_rate is None:
            frame_rate = kitti_config.frame_rate_hz
        if image_size is None:
            image_size = calib.image_size or kitti_config.image_size

        try:
            return cls(intrinsics=calib.intrinsics,
                       body_pose_cam=calib.body_pose_cam,
                       frame_rate=frame_rate,
                       image_size=image_size,
                       distortion_model_name="radial-tangential",
                       distortion_coefficients=calib.distortion_coefficients,
                       camera_id=cam_id.strip().rstrip(':'),
                       rectification_rotation=calib.rectification_rotation,
                       rectified_projection_matrix=calib.rectified_projection_matrix)
        except MalformedValue as e:
            raise MalformedValue(str(e), path=path, field=e.field) from e


    def parse_yaml(self, filepath) -> bool:
        """
        Populate this empty profile from a generic YAML in one pass.
        Returns False and logs the reason on failure; the profile then stays
        empty, never partially filled.
        """
        return self._populate_from(CalibrationProfile.from_yaml, filepath)


    def parse_kitti_calib(self, filepath, R_cam_to_imu, T_cam_to_imu, cam_id: str,
                          **kwargs) -> bool:
        """ Boolean-signal counterpart of from_kitti(), see parse_yaml(). """
        return self._populate_from(CalibrationProfile.from_kitti, filepath,
                                   R_cam_to_imu, T_cam_to_imu, cam_id, **kwargs)


    def _populate_from(self, builder, *args, **kwargs) -> bool:
        if self.intrinsics is not None:
            raise RuntimeError("Profile is already populated; parse into a new profile")
        try:
            parsed = builder(*args, **kwargs)
        except MalformedCalibration as e:
            logger.error(f"Failed to parse camera calibration: {e}")
            return False
        self.__dict__.update(vars(parsed))
        return True


    def to_yaml(self, filepath) -> Path:
        """
        Write this profile as a generic calibration YAML readable by from_yaml().
        Nothing is written unless every field from_yaml() requires is set.
        """
        unset = [name for name in ("intrinsics", "distortion_model_name", "frame_rate",
                                   "image_size")
                 if getattr(self, name) is None]
        if not self.distortion_coefficients:
            unset.append("distortion_coefficients")
        if unset:
            raise MalformedValue(f"Cannot write an incomplete calibration profile, "
                                 f"unset: {', '.join(unset)}", path=filepath, field=unset[0])
        return yaml_io.write_calibration_yaml(
            filepath,
            intrinsics=self.intrinsics,
            distortion_model_name=self.distortion_model_name,
            distortion_coefficients=self.distortion_coefficients,
            image_size=self.image_size,
            frame_rate=self.frame_rate,
            body_pose_cam=self.body_pose_cam,
            camera_id=self.camera_id)


    def with_rectification(self,
                           undistort_rectify_map_x,
                           undistort_rectify_map_y,
                           rectification_rotation=None,
                           rectified_projection_matrix=None) -> "CalibrationProfile":
        """
        Return a new profile carrying rectification artifacts computed
        elsewhere. The calibration and the distortion model are shared.
        """
        if rectification_rotation is not None and not is_rotation(rectification_rotation):
            raise MalformedValue("Rectification rotation is not a rotation matrix",
                                 field="rectification_rotation")
        if rectified_projection_matrix is not None:
            shape = np.shape(rectified_projection_matrix)
            if shape not in ((3, 3), (3, 4)):
                raise MalformedValue(f"Rectified projection must be 3x3 or 3x4, got {shape}",
                                     field="rectified_projection_matrix")
        return CalibrationProfile(
            intrinsics=self.intrinsics,
            body_pose_cam=self.body_pose_cam,
            frame_rate=self.frame_rate,
            image_size=self.image_size,
            distortion_model_name=self.distortion_model_name,
            distortion_coefficients=self.distortion_coefficients,
            camera_id=self.camera_id,
            undistort_rectify_map_x=undistort_rectify_map_x,
            undistort_rectify_map_y=undistort_rectify_map_y,
            rectification_rotation=(self.rectification_rotation
                                    if rectification_rotation is None else rectification_rotation),
            rectified_projection_matrix=(self.rectified_projection_matrix
                                         if rectified_projection_matrix is None
                                         else rectified_projection_matrix),
            distortion_model=self.distortion_model)


    ## Comparison ##
    def equals(self, other: "CalibrationProfile", tol: float = 1e-9) -> bool:
        """ Equality of every field up to 'tol' (max abs elementwise difference). """
        if not isinstance(other, CalibrationProfile):
            return False
        return (self.camera_id == other.camera_id
                and self.calibration_equals(other, tol)
                and poses_close(self.body_pose_cam, other.body_pose_cam, tol)
                and _scalars_close(self.frame_rate, other.frame_rate, tol)
                and self.image_size == other.image_size
                and _arrays_close(self.camera_matrix, other.camera_matrix, tol)
                and _arrays_close(self.distortion_coeff_matrix, other.distortion_coeff_matrix, tol)
                and _arrays_close(self.undistort_rectify_map_x, other.undistort_rectify_map_x, tol)
                and _arrays_close(self.undistort_rectify_map_y, other.undistort_rectify_map_y, tol)
                and _arrays_close(self.rectification_rotation, other.rectification_rotation, tol)
                and _arrays_close(self.rectified_projection_matrix,
                                  other.rectified_projection_matrix, tol))


    def calibration_equals(self, other: "CalibrationProfile", tol: float = 1e-9) -> bool:
        """ Compare intrinsics and distortion only; extrinsics, rate and size are ignored. """
        if not isinstance(other, CalibrationProfile):
            return False
        return (self.distortion_model_name == other.distortion_model_name
                and _arrays_close(self.intrinsics, other.intrinsics, tol)
                and _arrays_close(self.distortion_coefficients or None,
                                  other.distortion_coefficients or None, tol))


    ## Display ##
    def __str__(self):
        R, t = pose_to_R_t(self.body_pose_cam)
        lines = [
            "------------ CalibrationProfile ------------",
            f"camera_id: {_fmt(self.camera_id)}",
            f"intrinsics (fu, fv, cu, cv): {_fmt(self.intrinsics)}",
            f"body_pose_cam R:\n{np.array2string(R, precision=6)}",
            f"body_pose_cam t: {np.array2string(t, precision=6)}",
            f"frame_rate: {_fmt(self.frame_rate)}",
            f"image_size (w, h): {_fmt(self.image_size)}",
            f"camera_matrix:\n{_fmt(self.camera_matrix)}",
            f"distortion_model: {_fmt(self.distortion_model_name)}",
            f"distortion_coefficients: {_fmt(self.distortion_coefficients or None)}",
            f"undistort_rectify_map_x: {_fmt_map(self.undistort_rectify_map_x)}",
            f"undistort_rectify_map_y: {_fmt_map(self.undistort_rectify_map_y)}",
            f"rectification_rotation:\n{_fmt(self.rectification_rotation)}",
            f"rectified_projection_matrix:\n{_fmt(self.rectified_projection_matrix)}",
        ]
        return "\n".join(lines)


    def __repr__(self):
        return (f"CalibrationProfile(camera_id={self.camera_id!r}, "
                f"intrinsics={self.intrinsics}, "
                f"distortion_model_name={self.distortion_model_name!r})")


    def print(self):
        """ Log the full parameter dump at INFO level. """
        logger.info("\n" + str(self))


def _checked_frame_rate(frame_rate):
    if frame_rate is None:
        return None
    try:
        rate = float(frame_rate)
    except (TypeError, ValueError) as e:
        raise MalformedValue(f"Frame rate must be a number, got {frame_rate!r}",
                             field="frame_rate") from e
    if isinstance(frame_rate, bool) or not math.isfinite(rate) or rate <= 0:
        raise MalformedValue(f"Frame rate must be finite and > 0, got {frame_rate!r}",
                             field="frame_rate")
    return rate


def _checked_image_size(image_size):
    """ (width, height) as ints; fractional or non-positive sizes are rejected, never rounded. """
    if image_size is None:
        return None
    error = MalformedValue(f"Image size must be two positive integers, got {image_size!r}",
                           field="image_size")
    try:
        values = tuple(image_size)
        sizes = [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise error from e
    if (len(sizes) != 2
            or any(isinstance(v, bool) for v in values)
            or not all(math.isfinite(v) and v == int(v) and v > 0 for v in sizes)):
        raise error
    return tuple(int(v) for v in sizes)


def _check_remap_tables(map_x, map_y):
    """ Remap tables are HxW, or HxWx2 for OpenCV's packed fixed-point layout. """
    shapes = []
    for name, table in (("undistort_rectify_map_x", map_x), ("undistort_rectify_map_y", map_y)):
        if table is None:
            continue
        shape = np.shape(table)
        if not (len(shape) == 2 or (len(shape) == 3 and shape[2] == 2)) or min(shape) == 0:
            raise MalformedValue(f"Remap table must be HxW or HxWx2, got {shape}", field=name)
        shapes.append(shape[:2])
    if len(shapes) == 2 and shapes[0] != shapes[1]:
        raise MalformedValue(f"Remap tables disagree on image size: {shapes[0]} vs {shapes[1]}",
                             field="undistort_rectify_map_y")


def _optional_frozen(arr):
    """ Read-only copy keeping the dtype (remap tables are often float32). """
    if arr is None:
        return None
    arr = np.array(arr)
    arr.setflags(write=False)
    return arr


def _scalars_close(a, b, tol):
    if a is None or b is None:
        return a is None and b is None
    return abs(a - b) <= tol


def _arrays_close(a, b, tol):
    """ Both absent, or same shape with max abs difference <= tol. """
    if a is None or b is None:
        return a is None and b is None
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        return False
    if a.size == 0:
        return True
    return bool(np.max(np.abs(a - b)) <= tol)


def _fmt(value):
    if value is None:
        return "unset"
    if isinstance(value, np.ndarray):
        return np.array2string(value, precision=6)
    return str(value)


def _fmt_map(value):
    if value is None:
        return "unset"
    dims = list(value.shape)
    if len(dims) >= 2:
        dims[0], dims[1] = dims[1], dims[0]     # width first
    return f"{'x'.join(str(d) for d in dims)} {value.dtype}"
