"""Gradient shader - Subtract the pressure gradient from velocity.

v' = v - dt * ((pR - pL) / (2 hx), (pT - pB) / (2 hy))
"""

import numpy as np

from dandyfluid.gl import Fbo, Shader, neighbor


class Gradient(Shader):
    """Projects velocity onto its divergence-free part."""

    fragment_source = """
uniform sampler2D velocity;
uniform sampler2D pressure;
uniform float time_delta;
uniform vec2 texel_size;
uniform vec2 aspect;

varying vec2 texCoord;

void main() {
    vec2 h = texel_size * aspect;
    float left = texture2D(pressure, texCoord - vec2(texel_size.x, 0.0)).x;
    float right = texture2D(pressure, texCoord + vec2(texel_size.x, 0.0)).x;
    float bottom = texture2D(pressure, texCoord - vec2(0.0, texel_size.y)).x;
    float top = texture2D(pressure, texCoord + vec2(0.0, texel_size.y)).x;

    vec4 result = texture2D(velocity, texCoord);
    result.xy -= time_delta * vec2(right - left, top - bottom) / (2.0 * h);
    gl_FragColor = result;
}
"""

    def __init__(self, velocity: Fbo | None = None, pressure: Fbo | None = None) -> None:
        super().__init__({
            "velocity": velocity,
            "pressure": pressure,
            "time_delta": 1.0 / 60.0,
            "texel_size": (1.0, 1.0),
            "aspect": (1.0, 1.0),
        })

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        velocity: Fbo = self.uniforms["velocity"]
        pressure: Fbo = self.uniforms["pressure"]
        texel_size: tuple[float, float] = self.uniforms["texel_size"]
        aspect: tuple[float, float] = self.uniforms["aspect"]
        time_delta: float = self.uniforms["time_delta"]

        hx: float = texel_size[0] * aspect[0]
        hy: float = texel_size[1] * aspect[1]

        left = neighbor(pressure, uv, texel_size, -1, 0)[..., 0]
        right = neighbor(pressure, uv, texel_size, 1, 0)[..., 0]
        bottom = neighbor(pressure, uv, texel_size, 0, -1)[..., 0]
        top = neighbor(pressure, uv, texel_size, 0, 1)[..., 0]

        out: np.ndarray = velocity.sample(uv)
        out[..., 0] -= time_delta * (right - left) / (2.0 * hx)
        out[..., 1] -= time_delta * (top - bottom) / (2.0 * hy)
        return out
