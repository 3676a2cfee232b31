"""TouchForce shader - Adds pointer and touch forces to the velocity field.

out = limit(velocity + sum_i s_i * v_i * radius, MAX_SPEED)
"""

import numpy as np

from dandyfluid.gl import Fbo
from dandyfluid.fluid.shaders.TouchShader import TouchShader, KERNEL_SOURCE, limit_speed


class TouchForce(TouchShader):
    """Injects input velocity along each input's direction of motion."""

    fragment_source = KERNEL_SOURCE + """
uniform sampler2D velocity;

void main() {
    vec4 result = texture2D(velocity, texCoord);
    for (int i = 0; i < MAX_INPUTS; i++) {
        vec4 touch = inputs[i];
        if (touch.z == 0.0 && touch.w == 0.0) continue;
        vec2 diff;
        result.xy += kernel(touch, diff) * touch.zw * radius;
    }
    result.xy = limitSpeed(result.xy);
    gl_FragColor = result;
}
"""

    def __init__(self, velocity: Fbo | None = None) -> None:
        super().__init__({"velocity": velocity})

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        velocity: Fbo = self.uniforms["velocity"]
        radius: float = self.uniforms["radius"]

        out: np.ndarray = velocity.sample(uv)
        for strength, _, v in self.kernels(uv):
            out[..., :2] += strength * v * radius
        out[..., :2] = limit_speed(out[..., :2])
        return out
