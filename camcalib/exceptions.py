"""
camcalib/exceptions.py

Objective:
    Error kinds raised while building a calibration profile. Every calibration
    failure derives from MalformedCalibration, so callers can catch one type.
"""
from typing import Optional


class MalformedCalibration(ValueError):
    """
    Base exception for calibration files that cannot produce a valid profile.

    ---
    Attributes:
    path    file the failure refers to (None when not file related)
    field   key or line label at fault (None when not field related)
    """
    def __init__(self, message: str,
                 path: Optional[str] = None,
                 field: Optional[str] = None):
        self.path = str(path) if path is not None else None
        self.field = field
        if self.path is not None:
            message = f"{message} [{self.path}]"
        super().__init__(message)


class MissingField(MalformedCalibration):
    """Raised when a required key, line or file is absent."""
    pass


class MalformedValue(MalformedCalibration):
    """Raised when a field is present but has the wrong count, type or range."""
    pass


class UnsupportedDistortionModel(MalformedCalibration):
    """Raised when a distortion model tag is outside the supported set."""
    def __init__(self, tag, path: Optional[str] = None):
        self.tag = tag
        super().__init__(f"Unsupported distortion model: {tag!r}",
                         path=path, field="distortion_model")


class CameraNotFound(MalformedCalibration):
    """Raised when a KITTI dump has no line for the requested camera."""
    def __init__(self, cam_id: str, path: Optional[str] = None):
        self.cam_id = cam_id
        super().__init__(f"No calibration line for camera {cam_id!r}",
                         path=path, field=cam_id)


class ConfigError(Exception):
    """Raised when the application configuration cannot be loaded."""
    pass
