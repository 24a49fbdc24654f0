"""
Shared fixtures: calibration files written into pytest's tmp_path.
"""
import numpy as np
import pytest

# EuRoC MAV cam0, in the OpenCV FileStorage YAML dialect
EUROC_CAM0 = {
    "camera_id": "cam0",
    "T_BS": ("\n  cols: 4\n  rows: 4\n"
             "  data: [0.0148655429818, -0.999880929698, 0.00414029679422, -0.0216401454975,\n"
             "         0.999557249008, 0.0149672133247, 0.025715529948, -0.064676986768,\n"
             "         -0.0257744366974, 0.00375618835797, 0.999660727178, 0.00981073058949,\n"
             "         0.0, 0.0, 0.0, 1.0]"),
    "rate_hz": "20",
    "resolution": "[752, 480]",
    "camera_model": "pinhole",
    "intrinsics": "[458.654, 457.296, 367.215, 248.375]",
    "distortion_model": "radial-tangential",
    "distortion_coefficients": "[-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05]",
}

EUROC_T_BS = np.array([
    [0.0148655429818, -0.999880929698, 0.00414029679422, -0.0216401454975],
    [0.999557249008, 0.0149672133247, 0.025715529948, -0.064676986768],
    [-0.0257744366974, 0.00375618835797, 0.999660727178, 0.00981073058949],
    [0.0, 0.0, 0.0, 1.0],
])

KITTI_ODOMETRY = (
    "P0: 7.188560000000e+02 0.000000000000e+00 6.071928000000e+02 0.000000000000e+00 "
    "0.000000000000e+00 7.188560000000e+02 1.852157000000e+02 0.000000000000e+00 "
    "0.000000000000e+00 0.000000000000e+00 1.000000000000e+00 0.000000000000e+00\n"
    "P1: 7.188560000000e+02 0.000000000000e+00 6.071928000000e+02 -3.861448000000e+02 "
    "0.000000000000e+00 7.188560000000e+02 1.852157000000e+02 0.000000000000e+00 "
    "0.000000000000e+00 0.000000000000e+00 1.000000000000e+00 0.000000000000e+00\n"
)

KITTI_RAW = (
    "calib_time: 09-Jan-2012 13:57:47\n"
    "corner_dist: 9.950000e-02\n"
    "S_00: 1.392000e+03 5.120000e+02\n"
    "K_00: 9.842439e+02 0.000000e+00 6.900000e+02 0.000000e+00 9.808141e+02 2.331966e+02 "
    "0.000000e+00 0.000000e+00 1.000000e+00\n"
    "D_00: -3.728755e-01 2.037299e-01 2.219027e-03 1.383707e-03 -7.233722e-02\n"
    "R_00: 1.000000e+00 0.000000e+00 0.000000e+00 0.000000e+00 1.000000e+00 0.000000e+00 "
    "0.000000e+00 0.000000e+00 1.000000e+00\n"
    "T_00: 2.573699e-16 -1.059758e-16 1.614870e-16\n"
    "S_rect_00: 1.242000e+03 3.750000e+02\n"
    "R_rect_00: 9.999239e-01 9.837760e-03 -7.445048e-03 -9.869795e-03 9.999421e-01 "
    "-4.278459e-03 7.402527e-03 4.351614e-03 9.999631e-01\n"
    "P_rect_00: 7.215377e+02 0.000000e+00 6.095593e+02 0.000000e+00 0.000000e+00 "
    "7.215377e+02 1.728540e+02 0.000000e+00 0.000000e+00 0.000000e+00 1.000000e+00 "
    "0.000000e+00\n"
    "S_01: 1.392000e+03 5.120000e+02\n"
    "K_01: 9.895267e+02 0.000000e+00 7.020000e+02 0.000000e+00 9.878386e+02 2.455590e+02 "
    "0.000000e+00 0.000000e+00 1.000000e+00\n"
    "D_01: -3.644661e-01 1.790019e-01 1.148107e-03 -6.298563e-04 -5.314062e-02\n"
    "R_01: 9.993513e-01 1.860866e-02 -3.083487e-02 -1.887662e-02 9.997863e-01 "
    "-8.421873e-03 3.067156e-02 8.998467e-03 9.994890e-01\n"
    "T_01: -5.370000e-01 4.822061e-03 -1.252488e-02\n"
)


def yaml_text(fields):
    lines = ["%YAML:1.0"]
    for key, value in fields.items():
        sep = ":" if value.startswith("\n") else ": "
        lines.append(f"{key}{sep}{value}")
    return "\n".join(lines) + "\n"


@pytest.fixture
def write_yaml(tmp_path):
    """
    Factory: write the EuRoC cam0 document with keys replaced ('overrides')
    or removed ('drop') and return its path.
    """
    def _write(name="sensor.yaml", drop=(), **overrides):
        fields = dict(EUROC_CAM0)
        fields.update(overrides)
        for key in drop:
            fields.pop(key)
        path = tmp_path / name
        path.write_text(yaml_text(fields))
        return path
    return _write


@pytest.fixture
def euroc_yaml(write_yaml):
    return write_yaml()


@pytest.fixture
def kitti_odometry_txt(tmp_path):
    path = tmp_path / "calib.txt"
    path.write_text(KITTI_ODOMETRY)
    return path


@pytest.fixture
def kitti_raw_txt(tmp_path):
    path = tmp_path / "calib_cam_to_cam.txt"
    path.write_text(KITTI_RAW)
    return path
