from __future__ import annotations

import asyncio
import logging

import httpx
import moderngl
import numpy as np
import pygame

from voxelworld.config import (
    APP_VERSION,
    CAMERA_INITIAL_POSITION,
    FAR,
    FOG_END,
    FOG_START,
    FOV_DEG,
    FPS_CAP,
    MAX_DT,
    MOUSE_SENSITIVITY,
    NEAR,
    PITCH_LIMIT,
    SUN_DISTANCE,
    WINDOW_HEIGHT,
    WINDOW_WIDTH,
)
from voxelworld.render.controls import KeyTracker, PointerLockControls, apply_movement
from voxelworld.render.renderer import Renderer
from voxelworld.render.scene import SceneContext, create_scene_context
from voxelworld.world.coords import chunk_of
from voxelworld.world.world import World, WorldParams

log = logging.getLogger(__name__)

TARGET = (0.0, 0.0, 0.0)
WINDOW_FLAGS = pygame.OPENGL | pygame.DOUBLEBUF | pygame.RESIZABLE
HUD_REFRESH_S = 0.12


def _open_window(title: str) -> moderngl.Context:
    pygame.init()
    for attr, value in (
        (pygame.GL_CONTEXT_MAJOR_VERSION, 3),
        (pygame.GL_CONTEXT_MINOR_VERSION, 3),
        (pygame.GL_CONTEXT_PROFILE_MASK, pygame.GL_CONTEXT_PROFILE_CORE),
        (pygame.GL_DEPTH_SIZE, 24),
        (pygame.GL_DOUBLEBUFFER, 1),
    ):
        pygame.display.gl_set_attribute(attr, value)
    pygame.display.set_mode((WINDOW_WIDTH, WINDOW_HEIGHT), WINDOW_FLAGS)
    pygame.display.set_caption(title)

    try:
        ctx = moderngl.create_context()
    except Exception as e:
        pygame.quit()
        raise RuntimeError("Failed to create ModernGL context (need OpenGL 3.3)") from e
    log.debug("moderngl ctx version_code=%s renderer=%s", ctx.version_code, ctx.info.get("GL_RENDERER"))
    return ctx


def _render_hud(font: pygame.font.Font, lines: list[str]) -> tuple[bytes, int, int]:
    """Text block on a translucent panel, as RGBA rows top first."""
    pad = 6
    rendered = [font.render(line, True, (255, 255, 255)) for line in lines]
    step = font.get_linesize()
    w = max(r.get_width() for r in rendered) + 2 * pad
    h = step * len(rendered) + 2 * pad

    panel = pygame.Surface((w, h), pygame.SRCALPHA)
    panel.fill((0, 0, 0, 130))
    for i, r in enumerate(rendered):
        panel.blit(r, (pad, pad + i * step))
    return pygame.image.tostring(panel, "RGBA", False), w, h


def _hud_lines(world: World, camera, fps: float) -> list[str]:
    s = world.stats()
    x, y, z = (float(v) for v in camera.position)
    cx, cz = chunk_of(camera.position, world.params.stream.chunk)
    return [
        f"voxelworld v{APP_VERSION}",
        f"pos={x:.1f},{y:.1f},{z:.1f} chunk={cx},{cz} fps~{fps:.0f}",
        f"live={s['live']} inflight={s['inflight']} queued={s['queued']}",
        f"evicting={s['evicting']} failed={s['failed']}",
    ]


async def _frame_loop(
    scene_ctx: SceneContext,
    world: World,
    renderer: Renderer,
    *,
    speed: float,
    debug: bool,
) -> None:
    camera = scene_ctx.camera
    controls = PointerLockControls(camera, sensitivity=MOUSE_SENSITIVITY)
    keys = KeyTracker()

    world.update_camera(camera.position)
    scene_ctx.sun.follow(camera, TARGET, SUN_DISTANCE)

    pygame.font.init()
    font = pygame.font.SysFont("Menlo", 16) or pygame.font.Font(None, 16)
    clock = pygame.time.Clock()
    since_hud = HUD_REFRESH_S
    last_cam = camera.position.copy()

    try:
        while True:
            dt = min(clock.tick(FPS_CAP if FPS_CAP and FPS_CAP > 0 else 0) / 1000.0, MAX_DT)

            quit_requested = False
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    quit_requested = True
                elif event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE and not controls.is_locked:
                    quit_requested = True
                elif event.type == pygame.VIDEORESIZE:
                    size = (max(64, event.w), max(64, event.h))
                    pygame.display.set_mode(size, WINDOW_FLAGS)
                    renderer.resize(*size, camera)
                else:
                    controls.handle_event(event)
                    keys.handle_event(event)
            if quit_requested:
                break

            if apply_movement(keys.keys, controls, camera, dt, speed):
                if float(np.abs(camera.position - last_cam).sum()) > 1e-4:
                    last_cam = camera.position.copy()
                    scene_ctx.sun.follow(camera, TARGET, SUN_DISTANCE)
                    world.update_camera(camera.position)

            renderer.begin_frame()
            renderer.draw_sky()
            renderer.set_common_uniforms(camera, scene_ctx.sun, FOG_START, FOG_END)
            renderer.draw_scene(scene_ctx.scene)

            if debug:
                since_hud += dt
                if since_hud >= HUD_REFRESH_S:
                    since_hud = 0.0
                    renderer.hud_update_rgba(*_render_hud(font, _hud_lines(world, camera, clock.get_fps())))
                renderer.draw_hud()

            pygame.display.flip()
            # yield so fetch continuations and timers run between frames
            await asyncio.sleep(0)
    finally:
        keys.dispose()
        controls.dispose()


async def _run(*, params: WorldParams, speed: float, debug: bool) -> None:
    ctx = _open_window(f"voxelworld v{APP_VERSION} (seed={params.fetch.seed})")
    ctx.viewport = (0, 0, WINDOW_WIDTH, WINDOW_HEIGHT)

    scene_ctx = create_scene_context(
        CAMERA_INITIAL_POSITION,
        fov_deg=FOV_DEG,
        near=NEAR,
        far=FAR,
        aspect=WINDOW_WIDTH / WINDOW_HEIGHT,
        pitch_limit=PITCH_LIMIT,
    )
    scene_ctx.camera.look_at_point(TARGET)
    renderer = Renderer(ctx, WINDOW_WIDTH, WINDOW_HEIGHT, scene_ctx.geometry)

    async with httpx.AsyncClient() as client:
        world = World(scene_ctx, params, client, ctx=ctx)
        try:
            await _frame_loop(scene_ctx, world, renderer, speed=speed, debug=debug)
        finally:
            await world.aclose()
            scene_ctx.dispose()
            renderer.release()
            pygame.quit()


def run_app(*, params: WorldParams, speed: float, debug: bool) -> None:
    asyncio.run(_run(params=params, speed=speed, debug=debug))
