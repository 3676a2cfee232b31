"""Divergence shader - Central difference divergence of the velocity field.

D = ((R.x - L.x) / (2 hx) + (T.y - B.y) / (2 hy)) / dt
hx = texel_size.x * aspect.x, hy = texel_size.y * aspect.y

Neighbours are clamped at the edges.
"""

import numpy as np

from dandyfluid.gl import Fbo, Shader, neighbor


class Divergence(Shader):
    """Compute velocity field divergence."""

    fragment_source = """
uniform sampler2D velocity;
uniform float time_delta;
uniform vec2 texel_size;
uniform vec2 aspect;

varying vec2 texCoord;

void main() {
    vec2 h = texel_size * aspect;
    float left = texture2D(velocity, texCoord - vec2(texel_size.x, 0.0)).x;
    float right = texture2D(velocity, texCoord + vec2(texel_size.x, 0.0)).x;
    float bottom = texture2D(velocity, texCoord - vec2(0.0, texel_size.y)).y;
    float top = texture2D(velocity, texCoord + vec2(0.0, texel_size.y)).y;

    float divergence = (right - left) / (2.0 * h.x) + (top - bottom) / (2.0 * h.y);
    if (time_delta > 0.0) divergence /= time_delta;
    gl_FragColor = vec4(divergence, 0.0, 0.0, 0.0);
}
"""

    def __init__(self, velocity: Fbo | None = None) -> None:
        super().__init__({
            "velocity": velocity,
            "time_delta": 1.0 / 60.0,
            "texel_size": (1.0, 1.0),
            "aspect": (1.0, 1.0),
        })

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        velocity: Fbo = self.uniforms["velocity"]
        texel_size: tuple[float, float] = self.uniforms["texel_size"]
        aspect: tuple[float, float] = self.uniforms["aspect"]
        time_delta: float = self.uniforms["time_delta"]

        hx: float = texel_size[0] * aspect[0]
        hy: float = texel_size[1] * aspect[1]

        left = neighbor(velocity, uv, texel_size, -1, 0)[..., 0]
        right = neighbor(velocity, uv, texel_size, 1, 0)[..., 0]
        bottom = neighbor(velocity, uv, texel_size, 0, -1)[..., 1]
        top = neighbor(velocity, uv, texel_size, 0, 1)[..., 1]

        divergence: np.ndarray = ((right - left) / (2.0 * hx) + (top - bottom) / (2.0 * hy))
        if time_delta > 0.0:
            divergence = divergence / time_delta
        return divergence[..., np.newaxis]
