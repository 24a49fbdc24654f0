"""
camcalib/frontend/io/yaml_io.py

Objective:
    Read and write the generic camera calibration YAML (the OpenCV FileStorage
    dialect, '%YAML:1.0' header included) one field at a time. Each parse_*
    function takes an open cv2.FileStorage and returns plain Python values, or
    raises a MalformedCalibration subclass naming the key and the file.

    Example document:
        %YAML:1.0
        camera_id: cam0
        T_BS:
          cols: 4
          rows: 4
          data: [1.0, 0.0, 0.0, 0.0,  0.0, 1.0, 0.0, 0.0,
                 0.0, 0.0, 1.0, 0.0,  0.0, 0.0, 0.0, 1.0]
        rate_hz: 20
        resolution: [752, 480]
        intrinsics: [458.654, 457.296, 367.215, 248.375]
        distortion_model: radial-tangential
        distortion_coefficients: [-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05]
"""
from contextlib import contextmanager
from pathlib import Path
import math

import cv2
import numpy as np

from camcalib.exceptions import MalformedValue, MissingField, UnsupportedDistortionModel
from camcalib.frontend.geometry.distortion import DistortionModelKind
from camcalib.frontend.geometry.pose_utils import pose_from_flat, pose_to_flat

# Key names are a compatibility surface with existing calibration files
DISTORTION_MODEL_KEY = "distortion_model"
DISTORTION_COEFFS_KEY = "distortion_coefficients"
RESOLUTION_KEY = "resolution"
IMAGE_WIDTH_KEY = "image_width"
IMAGE_HEIGHT_KEY = "image_height"
FRAME_RATE_KEY = "rate_hz"
BODY_POSE_CAM_KEY = "T_BS"
INTRINSICS_KEY = "intrinsics"
CAMERA_ID_KEY = "camera_id"


@contextmanager
def open_file_storage(filepath):
    """ Open a calibration file for reading and always release the handle. """
    path = Path(filepath)
    if not path.is_file():
        raise MissingField("Calibration file not found", path=path)
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    except cv2.error as e:
        raise MalformedValue(f"Cannot parse calibration file: {e}", path=path) from e
    try:
        if not fs.isOpened():
            raise MalformedValue("Cannot open calibration file", path=path)
        yield fs
    finally:
        fs.release()


## Node helpers ##
def _is_missing(node):
    return node is None or node.empty() or node.isNone()


def _get_node(fs, key, filepath):
    node = fs.getNode(key)
    if _is_missing(node):
        raise MissingField(f"Missing required key '{key}'", path=filepath, field=key)
    return node


def _node_to_float(node, key, filepath):
    if not (node.isReal() or node.isInt()):
        raise MalformedValue(f"Key '{key}' must hold numbers", path=filepath, field=key)
    return float(node.real())


def _read_vector(node, key, filepath):
    """
    Numeric values of a node: a flow/block sequence, a single scalar, or a map
    with a 'data' sequence (Kimera-style T_BS, !!opencv-matrix).
    """
    if node.isSeq():
        return [_node_to_float(node.at(i), key, filepath) for i in range(node.size())]
    if node.isMap():
        data = node.getNode("data")
        if _is_missing(data):
            raise MalformedValue(f"Key '{key}' is a map without 'data'",
                                 path=filepath, field=key)
        values = _read_vector(data, key, filepath)
        rows, cols = node.getNode("rows"), node.getNode("cols")
        if not _is_missing(rows) and not _is_missing(cols):
            n = int(rows.real()) * int(cols.real())
            if n != len(values):
                raise MalformedValue(
                    f"Key '{key}' declares {int(rows.real())}x{int(cols.real())} "
                    f"but holds {len(values)} values", path=filepath, field=key)
        return values
    return [_node_to_float(node, key, filepath)]


def _read_string(fs, key, filepath):
    node = _get_node(fs, key, filepath)
    if not node.isString():
        raise MalformedValue(f"Key '{key}' must be a string", path=filepath, field=key)
    return node.string()


def _to_positive_int(value, key, filepath):
    if not math.isfinite(value) or value != int(value) or value <= 0:
        raise MalformedValue(f"Key '{key}' must be a positive integer, got {value}",
                             path=filepath, field=key)
    return int(value)


## Field parsers ##
def parse_distortion(fs, filepath):
    """
    Return (canonical tag, coefficients). Parsed together because the count
    only means something in light of the tag; the count itself is checked when
    the distortion model is built.
    """
    tag = _read_string(fs, DISTORTION_MODEL_KEY, filepath)
    try:
        kind = DistortionModelKind.from_tag(tag)
    except UnsupportedDistortionModel:
        raise UnsupportedDistortionModel(tag, path=filepath) from None

    coeffs = _read_vector(_get_node(fs, DISTORTION_COEFFS_KEY, filepath),
                          DISTORTION_COEFFS_KEY, filepath)
    if not coeffs:
        raise MalformedValue("Distortion coefficients are empty",
                             path=filepath, field=DISTORTION_COEFFS_KEY)
    return kind.value, tuple(coeffs)


def parse_img_size(fs, filepath):
    """ Return (width, height) from 'resolution' or 'image_width'/'image_height'. """
    node = fs.getNode(RESOLUTION_KEY)
    if not _is_missing(node):
        values = _read_vector(node, RESOLUTION_KEY, filepath)
        if len(values) != 2:
            raise MalformedValue(f"'{RESOLUTION_KEY}' must be [width, height], "
                                 f"got {len(values)} values",
                                 path=filepath, field=RESOLUTION_KEY)
        width, height = values
        return (_to_positive_int(width, RESOLUTION_KEY, filepath),
                _to_positive_int(height, RESOLUTION_KEY, filepath))

    width_node = fs.getNode(IMAGE_WIDTH_KEY)
    height_node = fs.getNode(IMAGE_HEIGHT_KEY)
    if _is_missing(width_node) or _is_missing(height_node):
        raise MissingField(f"Missing image size: '{RESOLUTION_KEY}' or "
                           f"'{IMAGE_WIDTH_KEY}'/'{IMAGE_HEIGHT_KEY}'",
                           path=filepath, field=RESOLUTION_KEY)
    width = _node_to_float(width_node, IMAGE_WIDTH_KEY, filepath)
    height = _node_to_float(height_node, IMAGE_HEIGHT_KEY, filepath)
    return (_to_positive_int(width, IMAGE_WIDTH_KEY, filepath),
            _to_positive_int(height, IMAGE_HEIGHT_KEY, filepath))


def parse_frame_rate(fs, filepath):
    node = _get_node(fs, FRAME_RATE_KEY, filepath)
    rate = _node_to_float(node, FRAME_RATE_KEY, filepath)
    if not math.isfinite(rate) or rate <= 0:
        raise MalformedValue(f"'{FRAME_RATE_KEY}' must be > 0, got {rate}",
                             path=filepath, field=FRAME_RATE_KEY)
    return rate


def parse_body_pose_cam(fs, filepath):
    """ Compose the body-to-camera extrinsic (gtsam.Pose3) from 'T_BS'. """
    node = _get_node(fs, BODY_POSE_CAM_KEY, filepath)
    values = _read_vector(node, BODY_POSE_CAM_KEY, filepath)
    try:
        return pose_from_flat(values)
    except ValueError as e:
        raise MalformedValue(f"'{BODY_POSE_CAM_KEY}': {e}",
                             path=filepath, field=BODY_POSE_CAM_KEY) from e


def parse_camera_intrinsics(fs, filepath):
    node = _get_node(fs, INTRINSICS_KEY, filepath)
    values = _read_vector(node, INTRINSICS_KEY, filepath)
    if len(values) != 4:
        raise MalformedValue(f"'{INTRINSICS_KEY}' must hold 4 values (fu, fv, cu, cv), "
                             f"got {len(values)}", path=filepath, field=INTRINSICS_KEY)
    if not all(math.isfinite(v) for v in values):
        raise MalformedValue(f"'{INTRINSICS_KEY}' must be finite",
                             path=filepath, field=INTRINSICS_KEY)
    return tuple(values)


def parse_camera_id(fs, filepath):
    """ Optional free-text identifier; None when absent. """
    if _is_missing(fs.getNode(CAMERA_ID_KEY)):
        return None
    return _read_string(fs, CAMERA_ID_KEY, filepath)


## Writer ##
def _write_seq(fs, key, values):
    fs.startWriteStruct(key, cv2.FileNode_SEQ | cv2.FileNode_FLOW)
    for v in values:
        fs.write("", v)
    fs.endWriteStruct()


def write_calibration_yaml(filepath, *,
                           intrinsics,
                           distortion_model_name,
                           distortion_coefficients,
                           image_size,
                           frame_rate,
                           body_pose_cam,
                           camera_id=None):
    """
    Write the normalized fields under the same keys parse_* reads. Values are
    converted before the file is opened, so a bad value leaves no file behind.
    """
    path = Path(filepath)
    try:
        pose_data = [float(v) for v in pose_to_flat(body_pose_cam)]
        rate = float(frame_rate)
        size = [int(v) for v in image_size]
        intrinsics_data = [float(v) for v in np.ravel(intrinsics)]
        coeffs_data = [float(v) for v in np.ravel(distortion_coefficients)]
    except (TypeError, ValueError) as e:
        raise MalformedValue(f"Cannot write calibration: {e}", path=path) from e

    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE | cv2.FILE_STORAGE_FORMAT_YAML)
    try:
        if camera_id is not None:
            fs.write(CAMERA_ID_KEY, str(camera_id))
        fs.startWriteStruct(BODY_POSE_CAM_KEY, cv2.FileNode_MAP)
        fs.write("cols", 4)
        fs.write("rows", 4)
        _write_seq(fs, "data", pose_data)
        fs.endWriteStruct()
        fs.write(FRAME_RATE_KEY, rate)
        _write_seq(fs, RESOLUTION_KEY, size)
        _write_seq(fs, INTRINSICS_KEY, intrinsics_data)
        fs.write(DISTORTION_MODEL_KEY, str(distortion_model_name))
        _write_seq(fs, DISTORTION_COEFFS_KEY, coeffs_data)
    finally:
        fs.release()
    return path
