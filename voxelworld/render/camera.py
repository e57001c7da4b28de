from __future__ import annotations

from typing import Sequence

import numpy as np

from voxelworld.util.math import look_at, perspective


def _clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


class FlyCamera:
    """Free-flying first-person camera.

    Conventions:
    - yaw == 0 looks toward -Z, positive yaw turns left (counter-clockwise seen from above).
    - Horizontal movement stays in the XZ plane regardless of pitch.
    """

    def __init__(
        self,
        position: Sequence[float] = (0.0, 0.0, 0.0),
        *,
        fov_deg: float = 75.0,
        near: float = 0.1,
        far: float = 1000.0,
        aspect: float = 16.0 / 9.0,
        pitch_limit: float = 1.5,
    ) -> None:
        self.position = np.array(position, dtype=np.float64)
        self.yaw = 0.0
        self.pitch = 0.0
        self.fov_deg = float(fov_deg)
        self.near = float(near)
        self.far = float(far)
        self.aspect = float(aspect)
        self.pitch_limit = float(pitch_limit)

    def rotate(self, d_yaw: float, d_pitch: float) -> None:
        self.yaw += float(d_yaw)
        self.pitch = _clamp(self.pitch + float(d_pitch), -self.pitch_limit, self.pitch_limit)

    def look_at_point(self, target: Sequence[float]) -> None:
        d = np.asarray(target, dtype=np.float64) - self.position
        horiz = float(np.hypot(d[0], d[2]))
        if horiz < 1e-9 and abs(float(d[1])) < 1e-9:
            return
        self.yaw = float(np.arctan2(-d[0], -d[2]))
        self.pitch = _clamp(float(np.arctan2(d[1], horiz)), -self.pitch_limit, self.pitch_limit)

    def forward(self) -> np.ndarray:
        cp = float(np.cos(self.pitch))
        return np.array(
            [-np.sin(self.yaw) * cp, np.sin(self.pitch), -np.cos(self.yaw) * cp],
            dtype=np.float64,
        )

    def _ground_forward(self) -> np.ndarray:
        return np.array([-np.sin(self.yaw), 0.0, -np.cos(self.yaw)], dtype=np.float64)

    def _ground_right(self) -> np.ndarray:
        return np.array([np.cos(self.yaw), 0.0, -np.sin(self.yaw)], dtype=np.float64)

    def move_forward(self, distance: float) -> None:
        self.position += self._ground_forward() * float(distance)

    def move_right(self, distance: float) -> None:
        self.position += self._ground_right() * float(distance)

    def eye(self) -> np.ndarray:
        return self.position.astype(np.float32)

    def view_matrix(self) -> np.ndarray:
        eye = self.eye()
        target = (self.position + self.forward()).astype(np.float32)
        up = np.array([0.0, 1.0, 0.0], dtype=np.float32)
        return look_at(eye, target, up)

    def projection_matrix(self) -> np.ndarray:
        return perspective(self.fov_deg, self.aspect, self.near, self.far)
