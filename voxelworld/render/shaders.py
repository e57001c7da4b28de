from __future__ import annotations

def _pick_glsl_version(ctx_version_code: int) -> int:
    """Pick a GLSL version compatible with the active OpenGL context.

    - For OpenGL >= 3.3: use GLSL 330
    - For OpenGL >= 3.2: use GLSL 150
    """
    if ctx_version_code >= 330:
        return 330
    return 150

_BLOCK_VERT = """
in vec3 in_pos;
in vec3 in_norm;
in vec3 in_offset;

uniform mat4 u_proj;
uniform mat4 u_view;
uniform vec3 u_chunk_origin;

out vec3 v_world_pos;
out vec3 v_norm;

void main() {
    vec3 p = in_pos + in_offset + u_chunk_origin;
    v_world_pos = p;
    v_norm = in_norm;
    gl_Position = u_proj * u_view * vec4(p, 1.0);
}
"""

_BLOCK_FRAG = """
in vec3 v_world_pos;
in vec3 v_norm;

uniform vec3 u_color;
uniform vec3 u_light_dir;
uniform vec3 u_cam_pos;
uniform float u_fog_start;
uniform float u_fog_end;
uniform vec3 u_fog_color;

out vec4 f_color;

void main() {
    vec3 n = normalize(v_norm);
    vec3 l = normalize(u_light_dir);
    float diff = max(dot(n, l), 0.0);

    float ambient = 0.5;
    vec3 col = u_color * (ambient + 0.6 * diff);

    // Fog on horizontal distance
    float dist = length(v_world_pos.xz - u_cam_pos.xz);
    float fog_amount = smoothstep(u_fog_start, u_fog_end, dist);
    col = mix(col, u_fog_color, fog_amount);

    f_color = vec4(col, 1.0);
}
"""

_LINE_VERT = """
in vec3 in_pos;

uniform mat4 u_proj;
uniform mat4 u_view;
uniform vec3 u_chunk_origin;
uniform float u_half;

void main() {
    gl_Position = u_proj * u_view * vec4(in_pos * u_half + u_chunk_origin, 1.0);
}
"""

_LINE_FRAG = """
uniform vec4 u_color;

out vec4 f_color;

void main() {
    f_color = u_color;
}
"""

# one oversized triangle covers the viewport; no vertex buffer
_SKY_VERT = """
out float v_height;

void main() {
    vec2 p = vec2(float((gl_VertexID << 1) & 2), float(gl_VertexID & 2)) * 2.0 - 1.0;
    v_height = p.y * 0.5 + 0.5;
    gl_Position = vec4(p, 0.0, 1.0);
}
"""

_SKY_FRAG = """
in float v_height;

uniform vec3 u_horizon;
uniform vec3 u_zenith;

out vec4 f_color;

void main() {
    f_color = vec4(mix(u_horizon, u_zenith, smoothstep(0.0, 1.0, v_height)), 1.0);
}
"""

# unit quad placed in pixels: u_rect = (left, top, width, height), y down
_HUD_VERT = """
in vec2 in_corner;

uniform vec4 u_rect;
uniform vec2 u_screen;

out vec2 v_uv;

void main() {
    vec2 px = u_rect.xy + in_corner * u_rect.zw;
    vec2 ndc = vec2(px.x / u_screen.x, 1.0 - px.y / u_screen.y) * 2.0 - 1.0;
    v_uv = in_corner;  // texture rows are uploaded top first
    gl_Position = vec4(ndc, 0.0, 1.0);
}
"""

_HUD_FRAG = """
in vec2 v_uv;

uniform sampler2D u_tex;

out vec4 f_color;

void main() {
    f_color = texture(u_tex, v_uv);
}
"""


def _with_version(ctx_version_code: int, vert: str, frag: str) -> tuple[str, str]:
    prefix = f"#version {_pick_glsl_version(ctx_version_code)}\n"
    return prefix + vert, prefix + frag


def block_shader_sources(ctx_version_code: int) -> tuple[str, str]:
    return _with_version(ctx_version_code, _BLOCK_VERT, _BLOCK_FRAG)


def line_shader_sources(ctx_version_code: int) -> tuple[str, str]:
    """Debug hull lines. Box corners are unit (+-1) and scaled by u_half."""
    return _with_version(ctx_version_code, _LINE_VERT, _LINE_FRAG)


def sky_shader_sources(ctx_version_code: int) -> tuple[str, str]:
    return _with_version(ctx_version_code, _SKY_VERT, _SKY_FRAG)


def hud_shader_sources(ctx_version_code: int) -> tuple[str, str]:
    return _with_version(ctx_version_code, _HUD_VERT, _HUD_FRAG)
