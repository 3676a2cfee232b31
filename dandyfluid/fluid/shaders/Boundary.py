"""Boundary shader - No-slip walls at the edges of the velocity field.

Edge texels take the negated velocity of their inward neighbour, interior
texels are copied. Corners are reflected from the diagonal neighbour.
"""

import numpy as np

from dandyfluid.gl import Fbo, Shader


class Boundary(Shader):

    fragment_source = """
uniform sampler2D velocity;
uniform vec2 texel_size;

varying vec2 texCoord;

void main() {
    // inward offset: +1 on the low edge, -1 on the high edge, 0 inside
    vec2 offset = vec2(0.0);
    if (texel_size.x < 1.0) {
        if (texCoord.x < texel_size.x) offset.x = 1.0;
        else if (texCoord.x > 1.0 - texel_size.x) offset.x = -1.0;
    }
    if (texel_size.y < 1.0) {
        if (texCoord.y < texel_size.y) offset.y = 1.0;
        else if (texCoord.y > 1.0 - texel_size.y) offset.y = -1.0;
    }
    if (offset == vec2(0.0)) {
        gl_FragColor = texture2D(velocity, texCoord);
    } else {
        gl_FragColor = -texture2D(velocity, texCoord + offset * texel_size);
    }
}
"""

    def __init__(self, velocity: Fbo | None = None) -> None:
        super().__init__({"velocity": velocity})

    def target_uniforms(self, target: Fbo) -> dict:
        return {"texel_size": target.texel_size}

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        velocity: Fbo = self.uniforms["velocity"]
        out: np.ndarray = velocity.sample(uv)
        height, width = out.shape[:2]

        # inward offset per texel: +1 on the low edge, -1 on the high edge, 0 inside
        offset_x = np.zeros(width, dtype=np.int64)
        offset_y = np.zeros(height, dtype=np.int64)
        if width > 1:
            offset_x[0], offset_x[-1] = 1, -1
        if height > 1:
            offset_y[0], offset_y[-1] = 1, -1

        jj, ii = np.meshgrid(np.arange(height), np.arange(width), indexing='ij')
        edge: np.ndarray = (offset_x[ii] != 0) | (offset_y[jj] != 0)
        inward: np.ndarray = out[jj + offset_y[jj], ii + offset_x[ii]]
        return np.where(edge[..., np.newaxis], -inward, out)
