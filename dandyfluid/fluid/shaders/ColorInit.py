"""ColorInit shader - Starting dye field."""

import numpy as np

from dandyfluid.gl import Fbo, Shader


class ColorInit(Shader):
    """Fills the color field with a flat seed color (black by default)."""

    fragment_source = """
uniform vec3 seed;

void main() {
    gl_FragColor = vec4(seed, 1.0);
}
"""

    def __init__(self, seed: tuple[float, float, float] = (0.0, 0.0, 0.0)) -> None:
        super().__init__({"seed": seed})

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        seed = np.asarray(self.uniforms["seed"], dtype=np.float32)
        return np.broadcast_to(seed, uv.shape[:2] + seed.shape).copy()
