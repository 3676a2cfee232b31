"""CardForce shader - Card shaped force injection.

The forcing kernel is modulated by the red channel of the card texture,
sampled in the input's local frame:

    uv_card = diff / radius + 0.5
    out     = limit(velocity + sum_i card(uv_card).r * s_i * v_i * radius, MAX_SPEED)
"""

import numpy as np

from dandyfluid.gl import Fbo, Texture
from dandyfluid.fluid.shaders.TouchShader import TouchShader, KERNEL_SOURCE, limit_speed


class CardForce(TouchShader):
    """Injects force in the shape of a card texture."""

    fragment_source = KERNEL_SOURCE + """
uniform sampler2D velocity;
uniform sampler2D card_texture;
uniform int has_card_texture;

void main() {
    vec4 result = texture2D(velocity, texCoord);
    for (int i = 0; i < MAX_INPUTS; i++) {
        vec4 touch = inputs[i];
        if (touch.z == 0.0 && touch.w == 0.0) continue;
        vec2 diff;
        float strength = kernel(touch, diff);
        if (has_card_texture != 0) {
            strength *= texture2D(card_texture, diff / radius + 0.5).r;
        }
        result.xy += strength * touch.zw * radius;
    }
    result.xy = limitSpeed(result.xy);
    gl_FragColor = result;
}
"""

    def __init__(self, velocity: Fbo | None = None, card_texture: Texture | None = None) -> None:
        super().__init__({"velocity": velocity, "card_texture": card_texture})

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        velocity: Fbo = self.uniforms["velocity"]
        card: Texture | None = self.uniforms["card_texture"]
        radius: float = self.uniforms["radius"]

        out: np.ndarray = velocity.sample(uv)
        for strength, diff, v in self.kernels(uv):
            if card is not None:
                strength = strength * card.sample(diff / radius + 0.5)[..., :1]
            out[..., :2] += strength * v * radius
        out[..., :2] = limit_speed(out[..., :2])
        return out
