"""JacobiPressure shader - Iterative Poisson pressure solver."""

import numpy as np

from dandyfluid.gl import Fbo, Shader, neighbor


class JacobiPressure(Shader):
    """One Jacobi iteration of lap(p) = D.

    p' = (pL + pR + pB + pT - h^2 * D) / 4

    h is the grid spacing in simulation space (texel_size.y * aspect.y, equal on
    both axes). Neighbours are clamped at the edges, giving a zero normal
    derivative (Neumann) boundary.
    """

    fragment_source = """
uniform sampler2D pressure;
uniform sampler2D divergence;
uniform vec2 texel_size;
uniform vec2 aspect;

varying vec2 texCoord;

void main() {
    float h = texel_size.y * aspect.y;
    float left = texture2D(pressure, texCoord - vec2(texel_size.x, 0.0)).x;
    float right = texture2D(pressure, texCoord + vec2(texel_size.x, 0.0)).x;
    float bottom = texture2D(pressure, texCoord - vec2(0.0, texel_size.y)).x;
    float top = texture2D(pressure, texCoord + vec2(0.0, texel_size.y)).x;
    float d = texture2D(divergence, texCoord).x;
    gl_FragColor = vec4((left + right + bottom + top - h * h * d) * 0.25, 0.0, 0.0, 0.0);
}
"""

    def __init__(self, pressure: Fbo | None = None, divergence: Fbo | None = None) -> None:
        super().__init__({
            "pressure": pressure,
            "divergence": divergence,
            "texel_size": (1.0, 1.0),
            "aspect": (1.0, 1.0),
        })

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        pressure: Fbo = self.uniforms["pressure"]
        divergence: Fbo = self.uniforms["divergence"]
        texel_size: tuple[float, float] = self.uniforms["texel_size"]
        h: float = texel_size[1] * self.uniforms["aspect"][1]

        left = neighbor(pressure, uv, texel_size, -1, 0)[..., 0]
        right = neighbor(pressure, uv, texel_size, 1, 0)[..., 0]
        bottom = neighbor(pressure, uv, texel_size, 0, -1)[..., 0]
        top = neighbor(pressure, uv, texel_size, 0, 1)[..., 0]
        d: np.ndarray = divergence.sample(uv)[..., 0]

        return ((left + right + bottom + top - h * h * d) * 0.25)[..., np.newaxis]
