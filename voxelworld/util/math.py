from __future__ import annotations

import numpy as np


def normalize(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    n = float(np.linalg.norm(v))
    return v if n < eps else v / n


def look_at(eye: np.ndarray, target: np.ndarray, up: np.ndarray) -> np.ndarray:
    """View matrix laid out column-major (ready for program[...].write())."""
    fwd = normalize(np.asarray(target, dtype=np.float32) - eye)
    side = normalize(np.cross(fwd, up))
    cam_up = np.cross(side, fwd)

    # rows of the rotation are the camera axes; transpose at the end for GL layout
    rot = np.stack([side, cam_up, -fwd]).astype(np.float32)
    m = np.eye(4, dtype=np.float32)
    m[:3, :3] = rot
    m[:3, 3] = -rot @ np.asarray(eye, dtype=np.float32)
    return m.T.copy()


def perspective(fov_deg: float, aspect: float, near: float, far: float) -> np.ndarray:
    """Projection matrix laid out column-major."""
    f = 1.0 / np.tan(np.radians(fov_deg) * 0.5)
    depth = near - far
    m = np.array(
        [
            [f / aspect, 0.0, 0.0, 0.0],
            [0.0, f, 0.0, 0.0],
            [0.0, 0.0, (far + near) / depth, (2.0 * far * near) / depth],
            [0.0, 0.0, -1.0, 0.0],
        ],
        dtype=np.float32,
    )
    return m.T.copy()
