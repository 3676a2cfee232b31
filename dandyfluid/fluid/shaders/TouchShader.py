"""TouchShader - Shared forcing kernel for pointer, touch and card inputs.

Forcing kernel (per input):
    diff = scaledUV - pos                  scaledUV = uv * aspect
    d    = |diff| / radius
    s    = 1 / max(d^2, 0.01) * clamp(dot(n(diff), n(v)), 0, 1)

n() normalizes and maps zero-length vectors to zero, so an input at rest
contributes nothing. Only the first MAX_INPUTS inputs are packed into the
uniform array; later ones are ignored for that frame.

Input velocities are limited to MAX_INPUT_SPEED (simulation units per frame)
when packed, and the force passes cap the resulting field speed at MAX_SPEED,
so a fling cannot push the solver fields out of range.
"""

from typing import Any, Iterable

import numpy as np

from dandyfluid.gl import Shader, safe_normalize
from dandyfluid.fluid.InputTracker import InputPoint

MAX_INPUTS: int = 10
MAX_INPUT_SPEED: float = 0.25
MAX_SPEED: float = 8.0


def pack_inputs(touches: Iterable[InputPoint]) -> np.ndarray:
    """Pack up to MAX_INPUTS inputs into a (MAX_INPUTS, 4) array of (x, y, vx, vy). Unused slots are zero."""
    packed = np.zeros((MAX_INPUTS, 4), dtype=np.float32)
    for i, touch in enumerate(touches):
        if i >= MAX_INPUTS:
            break
        vx, vy = touch.vx, touch.vy
        speed: float = float(np.hypot(vx, vy))
        if speed > MAX_INPUT_SPEED:
            vx, vy = vx * MAX_INPUT_SPEED / speed, vy * MAX_INPUT_SPEED / speed
        packed[i] = (touch.x, touch.y, vx, vy)
    return packed


def limit_speed(velocity: np.ndarray, limit: float = MAX_SPEED) -> np.ndarray:
    """Scale (..., 2) vectors longer than limit back to that length."""
    speed: np.ndarray = np.linalg.norm(velocity, axis=-1, keepdims=True)
    scale: np.ndarray = np.divide(limit, speed, out=np.ones_like(speed), where=speed > limit)
    return velocity * scale


# shared GLSL: uniforms, safeNormalize() and kernel()
KERNEL_SOURCE: str = """
const int MAX_INPUTS = %d;
const float MAX_SPEED = %.1f;

uniform vec4 inputs[MAX_INPUTS];
uniform float radius;
uniform vec2 aspect;

varying vec2 texCoord;

vec2 safeNormalize(vec2 v) {
    float len = length(v);
    return len > 0.0 ? v / len : vec2(0.0);
}

vec2 limitSpeed(vec2 v) {
    float speed = length(v);
    return speed > MAX_SPEED ? v * (MAX_SPEED / speed) : v;
}

float kernel(vec4 touch, out vec2 diff) {
    diff = texCoord * aspect - touch.xy;
    float d = length(diff) / radius;
    return 1.0 / max(d * d, 0.01) * clamp(dot(safeNormalize(diff), safeNormalize(touch.zw)), 0.0, 1.0);
}
""" % (MAX_INPUTS, MAX_SPEED)


class TouchShader(Shader):
    """Base for passes that evaluate the forcing kernel over a set of inputs."""

    def __init__(self, uniforms: dict[str, Any] | None = None) -> None:
        declared: dict[str, Any] = {
            "inputs": np.zeros((MAX_INPUTS, 4), dtype=np.float32),
            "radius": 0.25,
            "aspect": (1.0, 1.0),
        }
        declared.update(uniforms or {})
        super().__init__(declared)

    def update(self, **uniforms: Any) -> None:
        """Merge-patch uniforms. A 'touches' keyword is packed into the 'inputs' array."""
        touches = uniforms.pop("touches", None)
        if touches is not None:
            uniforms["inputs"] = pack_inputs(touches)
        super().update(**uniforms)

    def kernels(self, uv: np.ndarray) -> list[tuple[np.ndarray, np.ndarray, np.ndarray]]:
        """Evaluate the kernel for every active input slot.

        Returns:
            List of (strength (H, W, 1), diff (H, W, 2), velocity (2,)) per non-zero input
        """
        aspect = np.asarray(self.uniforms["aspect"], dtype=np.float32)
        radius: float = self.uniforms["radius"]
        scaled_uv: np.ndarray = uv * aspect

        result: list[tuple[np.ndarray, np.ndarray, np.ndarray]] = []
        for x, y, vx, vy in np.asarray(self.uniforms["inputs"], dtype=np.float32):
            velocity = np.array([vx, vy], dtype=np.float32)
            if not velocity.any():
                continue
            diff: np.ndarray = scaled_uv - np.array([x, y], dtype=np.float32)
            d2: np.ndarray = np.sum(diff * diff, axis=-1, keepdims=True) / (radius * radius)
            direction: np.ndarray = np.sum(safe_normalize(diff) * safe_normalize(velocity), axis=-1, keepdims=True)
            strength: np.ndarray = 1.0 / np.maximum(d2, 0.01) * np.clip(direction, 0.0, 1.0)
            result.append((strength, diff, velocity))
        return result
