from __future__ import annotations

import math
from typing import Dict

import pygame

from voxelworld.render.camera import FlyCamera

KEY_CODES: Dict[int, str] = {
    pygame.K_w: "KeyW",
    pygame.K_a: "KeyA",
    pygame.K_s: "KeyS",
    pygame.K_d: "KeyD",
    pygame.K_SPACE: "Space",
    pygame.K_LSHIFT: "ShiftLeft",
}


class KeyTracker:
    """Pressed state for the movement keys, by DOM-style code name."""

    def __init__(self) -> None:
        self.keys: Dict[str, bool] = {code: False for code in KEY_CODES.values()}
        self.active = True

    def handle_event(self, event: pygame.event.Event) -> None:
        if not self.active or event.type not in (pygame.KEYDOWN, pygame.KEYUP):
            return
        code = KEY_CODES.get(event.key)
        if code is not None:
            self.keys[code] = event.type == pygame.KEYDOWN

    def dispose(self) -> None:
        self.active = False
        for code in self.keys:
            self.keys[code] = False


class PointerLockControls:
    """Mouse-look while the pointer is grabbed. Click to lock, Escape to release."""

    def __init__(self, camera: FlyCamera, *, sensitivity: float = 0.0025) -> None:
        self.camera = camera
        self.sensitivity = float(sensitivity)
        self.is_locked = False

    def lock(self) -> None:
        pygame.event.set_grab(True)
        pygame.mouse.set_visible(False)
        pygame.mouse.get_rel()  # drop the motion accumulated while unlocked
        self.is_locked = True

    def unlock(self) -> None:
        pygame.event.set_grab(False)
        pygame.mouse.set_visible(True)
        self.is_locked = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.MOUSEBUTTONDOWN and not self.is_locked:
            self.lock()
        elif event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE and self.is_locked:
            self.unlock()
        elif event.type == pygame.MOUSEMOTION and self.is_locked:
            dx, dy = event.rel
            self.camera.rotate(-dx * self.sensitivity, -dy * self.sensitivity)

    def move_right(self, distance: float) -> None:
        self.camera.move_right(distance)

    def move_forward(self, distance: float) -> None:
        self.camera.move_forward(distance)

    def dispose(self) -> None:
        if self.is_locked:
            self.unlock()


def apply_movement(keys: Dict[str, bool], controls, camera: FlyCamera, dt: float, speed: float) -> bool:
    """WASD + Space/ShiftLeft fly movement. Returns True if the camera moved."""
    vx = (1 if keys.get("KeyD") else 0) - (1 if keys.get("KeyA") else 0)
    vz = (1 if keys.get("KeyS") else 0) - (1 if keys.get("KeyW") else 0)
    vy = (1 if keys.get("Space") else 0) - (1 if keys.get("ShiftLeft") else 0)

    len_sq = vx * vx + vy * vy + vz * vz
    if len_sq == 0 or not controls.is_locked:
        return False
    scale = (float(speed) * float(dt)) / math.sqrt(len_sq)
    controls.move_right(vx * scale)
    controls.move_forward(-vz * scale)
    camera.position[1] += vy * scale
    return True
