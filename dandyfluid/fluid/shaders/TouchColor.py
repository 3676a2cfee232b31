"""TouchColor shader - Paints dye along moving inputs.

Flat:    out = color + s * radius * |(vx, vy, (vx + vy) / 2)|
Masked:  out = color + s * radius * |v| * mask(diff / radius + 0.5).rgb
"""

import numpy as np

from dandyfluid.gl import Fbo, Texture
from dandyfluid.fluid.shaders.TouchShader import TouchShader, KERNEL_SOURCE


class TouchColor(TouchShader):
    """Injects color with the forcing kernel, optionally shaped by a mask texture."""

    fragment_source = KERNEL_SOURCE + """
uniform sampler2D color;
uniform sampler2D mask;
uniform int has_mask;

void main() {
    vec3 result = texture2D(color, texCoord).rgb;
    for (int i = 0; i < MAX_INPUTS; i++) {
        vec4 touch = inputs[i];
        if (touch.z == 0.0 && touch.w == 0.0) continue;
        vec2 diff;
        float strength = kernel(touch, diff);
        vec3 rgb = abs(vec3(touch.z, touch.w, (touch.z + touch.w) * 0.5));
        if (has_mask != 0) {
            rgb = length(touch.zw) * texture2D(mask, diff / radius + 0.5).rgb;
        }
        result += strength * radius * rgb;
    }
    gl_FragColor = vec4(result, 1.0);
}
"""

    def __init__(self, color: Fbo | None = None) -> None:
        super().__init__({"color": color, "mask": None})

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        color: Fbo = self.uniforms["color"]
        mask: Texture | None = self.uniforms["mask"]
        radius: float = self.uniforms["radius"]

        out: np.ndarray = color.sample(uv)[..., :3]
        for strength, diff, v in self.kernels(uv):
            if mask is not None:
                rgb: np.ndarray = np.linalg.norm(v) * mask.sample(diff / radius + 0.5)
                rgb = _as_rgb(rgb)
            else:
                rgb = np.abs(np.array([v[0], v[1], (v[0] + v[1]) * 0.5], dtype=np.float32))
            out = out + strength * radius * rgb
        return out


def _as_rgb(values: np.ndarray) -> np.ndarray:
    channels: int = values.shape[-1]
    if channels >= 3:
        return values[..., :3]
    # single channel masks paint grey
    return np.repeat(values[..., :1], 3, axis=-1)
