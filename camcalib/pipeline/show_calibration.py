"""
camcalib/pipeline/show_calibration.py

Objective:
    Command-line entry point: load a generic YAML or a KITTI calibration and
    print the resulting profile, or compare two calibration files.
"""
import argparse
import sys
from pathlib import Path

import numpy as np

from camcalib.config import load_config
from camcalib.exceptions import ConfigError, MalformedCalibration
from camcalib.frontend.io.camera_params import CalibrationProfile
from camcalib.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def parse_cli(argv=None):
    parser = argparse.ArgumentParser(description="Inspect a camera calibration file")
    parser.add_argument("calib",
                        type=Path,
                        help="Calibration file (YAML, or KITTI calib.txt with --kitti)")
    parser.add_argument("--kitti", metavar="CAM_ID",
                        help="Read 'calib' as a KITTI dump, camera id 'P0' or raw '00'")
    parser.add_argument("--cam-to-imu", type=Path,
                        help="Text file with the 3x4 [R|t] of camera 0 in the IMU frame "
                             "(KITTI only, identity when omitted)")
    parser.add_argument("--compare", type=Path,
                        help="Second YAML calibration to compare against")
    parser.add_argument("--tol", type=float, default=None,
                        help="Comparison tolerance (defaults to the config value)")
    parser.add_argument("--config", type=Path, default=None,
                        help="Application YAML config")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


def load_cam_to_imu(path):
    """ (R, t) from a 12-value [R|t] text file, identity when 'path' is None. """
    if path is None:
        return np.eye(3), np.zeros(3)
    Rt = np.loadtxt(path, dtype=np.float64).reshape(3, 4)
    return Rt[:, :3], Rt[:, 3]


def main(argv=None):
    args = parse_cli(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    setup_logging(args.log_level or config.logging.level, config.logging.log_file)

    try:
        if args.kitti:
            R, t = load_cam_to_imu(args.cam_to_imu)
            profile = CalibrationProfile.from_kitti(args.calib, R, t, args.kitti,
                                                    kitti_config=config.kitti)
        else:
            profile = CalibrationProfile.from_yaml(args.calib)
        profile.print()

        if args.compare is not None:
            other = CalibrationProfile.from_yaml(args.compare)
            tol = args.tol if args.tol is not None else config.comparison.tolerance
            logger.info(f"equals: {profile.equals(other, tol)}, "
                        f"calibration_equals: {profile.calibration_equals(other, tol)}")
    except (MalformedCalibration, OSError, ValueError) as e:
        logger.error(f"{e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
