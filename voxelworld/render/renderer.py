from __future__ import annotations

import moderngl
import numpy as np

from voxelworld.config import FOG_COLOR, HUD_MARGIN_PX, SKY_ZENITH_COLOR
from voxelworld.render.camera import FlyCamera
from voxelworld.render.scene import BlockGeometry, InstancedMesh, LineBox, Node, Sun
from voxelworld.render.shaders import (
    block_shader_sources,
    hud_shader_sources,
    line_shader_sources,
    sky_shader_sources,
)
from voxelworld.world.mesh_builder import build_box_lines

# two triangles over the unit square, y down
_HUD_CORNERS = np.array([0, 0, 1, 0, 0, 1, 1, 0, 1, 1, 0, 1], dtype=np.float32)


class Renderer:
    """Draws a scene graph: sky, instanced chunk blocks, blended debug hulls, HUD."""

    def __init__(self, ctx: moderngl.Context, width: int, height: int, geometry: BlockGeometry) -> None:
        self.ctx = ctx
        self.width = width
        self.height = height
        self.geometry = geometry
        geometry.upload(ctx)
        version = ctx.version_code

        vert, frag = block_shader_sources(version)
        self.prog = self.ctx.program(vertex_shader=vert, fragment_shader=frag)
        self.prog["u_fog_color"].value = FOG_COLOR

        vert, frag = line_shader_sources(version)
        self.line_prog = self.ctx.program(vertex_shader=vert, fragment_shader=frag)
        corners, edges = build_box_lines(1.0)
        self._hull_vbo = self.ctx.buffer(corners.tobytes())
        self._hull_ibo = self.ctx.buffer(edges.tobytes())
        self._hull_vao = self.ctx.vertex_array(self.line_prog, [(self._hull_vbo, "3f", "in_pos")], self._hull_ibo)

        vert, frag = sky_shader_sources(version)
        self._sky_prog = self.ctx.program(vertex_shader=vert, fragment_shader=frag)
        self._sky_prog["u_horizon"].value = FOG_COLOR
        self._sky_prog["u_zenith"].value = SKY_ZENITH_COLOR
        self._sky_vao = self.ctx.vertex_array(self._sky_prog, [])

        vert, frag = hud_shader_sources(version)
        self._hud_prog = self.ctx.program(vertex_shader=vert, fragment_shader=frag)
        self._hud_vbo = self.ctx.buffer(_HUD_CORNERS.tobytes())
        self._hud_vao = self.ctx.vertex_array(self._hud_prog, [(self._hud_vbo, "2f", "in_corner")])
        self._hud_tex: moderngl.Texture | None = None

        self.ctx.enable(moderngl.DEPTH_TEST)
        self.ctx.disable(moderngl.CULL_FACE)

    def release(self) -> None:
        if self._hud_tex is not None:
            self._hud_tex.release()
            self._hud_tex = None
        owned = (
            self._hud_vao, self._hud_vbo, self._hud_prog,
            self._sky_vao, self._sky_prog,
            self._hull_vao, self._hull_ibo, self._hull_vbo, self.line_prog,
            self.prog,
        )
        for obj in owned:
            obj.release()

    def resize(self, width: int, height: int, camera: FlyCamera) -> None:
        self.width, self.height = int(width), int(height)
        self.ctx.viewport = (0, 0, self.width, self.height)
        camera.aspect = self.width / max(1, self.height)

    def begin_frame(self) -> None:
        self.ctx.clear(*FOG_COLOR, 1.0)

    def draw_sky(self) -> None:
        self.ctx.disable(moderngl.DEPTH_TEST)
        self._sky_vao.render(mode=moderngl.TRIANGLES, vertices=3)
        self.ctx.enable(moderngl.DEPTH_TEST)

    def set_common_uniforms(self, camera: FlyCamera, sun: Sun, fog_start: float, fog_end: float) -> None:
        view = camera.view_matrix().astype(np.float32).tobytes()
        proj = camera.projection_matrix().astype(np.float32).tobytes()
        for prog in (self.prog, self.line_prog):
            prog["u_view"].write(view)
            prog["u_proj"].write(proj)
        eye = camera.eye()
        self.prog["u_cam_pos"].value = (float(eye[0]), float(eye[1]), float(eye[2]))
        self.prog["u_light_dir"].value = tuple(float(v) for v in sun.direction)
        self.prog["u_fog_start"].value = float(fog_start)
        self.prog["u_fog_end"].value = float(fog_end)

    def _mesh_vao(self, mesh: InstancedMesh) -> moderngl.VertexArray:
        if mesh.vao is None:
            if mesh.buffer is None:
                mesh.buffer = self.ctx.buffer(mesh.offsets.tobytes())
            mesh.vao = self.ctx.vertex_array(
                self.prog,
                [
                    (self.geometry.vbo, "3f 3f", "in_pos", "in_norm"),
                    (mesh.buffer, "3f/i", "in_offset"),
                ],
                self.geometry.ibo,
            )
        return mesh.vao

    def draw_scene(self, root: Node) -> None:
        """Draw solid blocks first, then transparent hulls on top of them."""
        hulls: list[tuple[LineBox, np.ndarray]] = []
        for node in root.traverse():
            if not node.visible:
                continue
            if isinstance(node, InstancedMesh) and node.count > 0:
                origin = node.world_position()
                self.prog["u_chunk_origin"].value = (float(origin[0]), float(origin[1]), float(origin[2]))
                self.prog["u_color"].value = tuple(float(c) for c in node.material.color)
                self._mesh_vao(node).render(instances=node.count)
            elif isinstance(node, LineBox):
                hulls.append((node, node.world_position()))

        if not hulls:
            return
        self.ctx.enable(moderngl.BLEND)
        self.ctx.blend_func = (moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA)
        for box, origin in hulls:
            mat = box.material
            alpha = float(mat.opacity) if mat.transparent else 1.0
            self.line_prog["u_chunk_origin"].value = (float(origin[0]), float(origin[1]), float(origin[2]))
            self.line_prog["u_half"].value = float(box.half)
            self.line_prog["u_color"].value = (float(mat.color[0]), float(mat.color[1]), float(mat.color[2]), alpha)
            self._hull_vao.render(mode=moderngl.LINES)
        self.ctx.disable(moderngl.BLEND)

    # --- HUD ---
    def hud_update_rgba(self, rgba_bytes: bytes, w: int, h: int) -> None:
        tex = self._hud_tex
        if tex is not None and tex.size == (w, h):
            tex.write(rgba_bytes)
            return
        if tex is not None:
            tex.release()
        tex = self.ctx.texture((w, h), 4, data=rgba_bytes)
        tex.filter = (moderngl.NEAREST, moderngl.NEAREST)
        tex.repeat_x = tex.repeat_y = False
        self._hud_tex = tex

    def draw_hud(self) -> None:
        """Blit the HUD texture pixel-for-pixel at the top-left corner."""
        tex = self._hud_tex
        if tex is None:
            return
        w, h = tex.size
        self._hud_prog["u_rect"].value = (float(HUD_MARGIN_PX), float(HUD_MARGIN_PX), float(w), float(h))
        self._hud_prog["u_screen"].value = (float(self.width), float(self.height))
        self._hud_prog["u_tex"].value = 0
        tex.use(location=0)

        self.ctx.disable(moderngl.DEPTH_TEST)
        self.ctx.enable(moderngl.BLEND)
        self.ctx.blend_func = (moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA)
        self._hud_vao.render(mode=moderngl.TRIANGLES)
        self.ctx.disable(moderngl.BLEND)
        self.ctx.enable(moderngl.DEPTH_TEST)
