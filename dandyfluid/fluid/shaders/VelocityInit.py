"""VelocityInit shader - Starting velocity field (at rest)."""

import numpy as np

from dandyfluid.gl import Fbo, Shader


class VelocityInit(Shader):
    """Writes a zero velocity field used to seed and reset velocity advection."""

    fragment_source = """
void main() {
    gl_FragColor = vec4(0.0);
}
"""

    def __init__(self) -> None:
        super().__init__()

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        return np.zeros(uv.shape[:2] + (4,), dtype=np.float32)
