"""Advect shader - Semi-Lagrangian advection with decay.

Advection formula:  src = uv - dt * velocity(uv) / aspect
                    out = input(fract(src)) * (1 - decay) - bias

Velocity is expressed in aspect-scaled simulation space (x spans [0, aspect.x],
y spans [0, 1]), so dividing by aspect maps it back to texture space. Lookups
wrap around the edges; walls come from the Boundary pass.

8-bit targets round to the nearest 1/255, which would hold any texel with
k * decay < 0.5 (k in 1/255 steps) forever. With decay > 0 the bias is half a
step, so rounding acts as a floor and every lit texel drops by at least one
step per frame:

    k' <= floor(k * (1 - decay)) < k

Float targets use bias 0.
"""

import numpy as np

from dandyfluid.gl import Fbo, Shader, Wrap, Precision

QUANTIZE_BIAS: float = 0.5 / 255.0


def decay_bias(target: Fbo, decay: float) -> float:
    """Offset subtracted after decay so that 8-bit fields keep fading."""
    if decay > 0.0 and target.precision == Precision.UNSIGNED_BYTE:
        return QUANTIZE_BIAS
    return 0.0


class Advect(Shader):
    """Semi-Lagrangian advection of a field along a velocity field."""

    sampler_wrap = {"input_texture": Wrap.REPEAT}

    fragment_source = """
uniform sampler2D velocity;
uniform sampler2D input_texture;
uniform float time_delta;
uniform float decay;
uniform vec2 aspect;
uniform float bias;

varying vec2 texCoord;

void main() {
    vec2 v = texture2D(velocity, texCoord).xy;
    vec2 src = texCoord - time_delta * v / aspect;
    gl_FragColor = texture2D(input_texture, src) * (1.0 - decay) - bias;
}
"""

    def __init__(self, velocity: Fbo | None = None, input_texture: Fbo | None = None, decay: float = 0.0) -> None:
        super().__init__({
            "velocity": velocity,
            "input_texture": input_texture,
            "time_delta": 0.0,
            "decay": decay,
            "aspect": (1.0, 1.0),
        })

    def target_uniforms(self, target: Fbo) -> dict:
        return {"bias": decay_bias(target, self.uniforms["decay"])}

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        velocity: Fbo = self.uniforms["velocity"]
        source: Fbo = self.uniforms["input_texture"]
        time_delta: float = self.uniforms["time_delta"]
        aspect = np.asarray(self.uniforms["aspect"], dtype=np.float32)

        if time_delta == 0.0:
            previous_uv: np.ndarray = uv
        else:
            v: np.ndarray = velocity.sample(uv)[..., :2]
            previous_uv = uv - time_delta * v / aspect

        out: np.ndarray = source.sample(previous_uv, Wrap.REPEAT) * (1.0 - self.uniforms["decay"])
        return out - decay_bias(target, self.uniforms["decay"])
