"""Composition shader - Maps a simulation field to displayable color.

Modes:
    NORMAL      rgb clamped to [0, 1]
    LUMINANCE   Rec. 709 luma as grey
    SPECTRAL    luma through an analytic spectral ramp (dark blue to red)
    GRADIENT    luma looked up in a gradient texture, SPECTRAL until one is loaded
    VECTOR      0.5 + 0.5 * rgb, for signed fields
"""

import numpy as np

from dandyfluid.gl import Fbo, Texture, Shader, smoothstep
from dandyfluid.fluid.FluidConfig import ColorMode

LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)


def luminance(rgb: np.ndarray) -> np.ndarray:
    return np.clip(np.sum(rgb * LUMA, axis=-1, keepdims=True), 0.0, 1.0)


def spectral(t: np.ndarray) -> np.ndarray:
    """Map t in [0, 1] to a hue ramp from violet (low) to red (high), fading to black at zero."""
    hue: np.ndarray = (1.0 - t) * 0.75 * 6.0
    r = np.clip(np.abs(hue - 3.0) - 1.0, 0.0, 1.0)
    g = np.clip(2.0 - np.abs(hue - 2.0), 0.0, 1.0)
    b = np.clip(2.0 - np.abs(hue - 4.0), 0.0, 1.0)
    return np.concatenate([r, g, b], axis=-1) * smoothstep(0.0, 0.25, t)


class Composition(Shader):

    fragment_source = "".join(f"const int {mode.name} = {index};\n" for index, mode in enumerate(ColorMode)) + """
const vec3 LUMA = vec3(0.2126, 0.7152, 0.0722);

uniform sampler2D color_buffer;
uniform sampler2D gradient;
uniform int has_gradient;
uniform int mode;

varying vec2 texCoord;

float luminance(vec3 rgb) {
    return clamp(dot(rgb, LUMA), 0.0, 1.0);
}

vec3 spectral(float t) {
    float hue = (1.0 - t) * 0.75 * 6.0;
    vec3 rgb = vec3(abs(hue - 3.0) - 1.0, 2.0 - abs(hue - 2.0), 2.0 - abs(hue - 4.0));
    return clamp(rgb, 0.0, 1.0) * smoothstep(0.0, 0.25, t);
}

void main() {
    vec3 rgb = texture2D(color_buffer, texCoord).rgb;
    vec3 result;
    if (mode == NORMAL) {
        result = clamp(rgb, 0.0, 1.0);
    } else if (mode == LUMINANCE) {
        result = vec3(luminance(rgb));
    } else if (mode == VECTOR) {
        result = clamp(0.5 + 0.5 * rgb, 0.0, 1.0);
    } else if (mode == GRADIENT && has_gradient != 0) {
        result = texture2D(gradient, vec2(luminance(rgb), 0.5)).rgb;
    } else {
        result = spectral(luminance(rgb));
    }
    gl_FragColor = vec4(result, 1.0);
}
"""

    def __init__(self, color_buffer: Fbo | None = None) -> None:
        super().__init__({
            "color_buffer": color_buffer,
            "mode": ColorMode.SPECTRAL,
            "gradient": None,
        })

    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        source: Fbo = self.uniforms["color_buffer"]
        mode: ColorMode = self.uniforms["mode"]
        gradient: Texture | None = self.uniforms["gradient"]

        texels: np.ndarray = source.sample(uv)
        rgb: np.ndarray = texels[..., :3] if texels.shape[-1] >= 3 else \
            np.concatenate([texels, np.zeros(texels.shape[:-1] + (3 - texels.shape[-1],), np.float32)], axis=-1)

        if mode == ColorMode.NORMAL:
            return np.clip(rgb, 0.0, 1.0)
        if mode == ColorMode.LUMINANCE:
            return np.repeat(luminance(rgb), 3, axis=-1)
        if mode == ColorMode.VECTOR:
            return np.clip(0.5 + 0.5 * rgb, 0.0, 1.0)
        if mode == ColorMode.GRADIENT and gradient is not None:
            t: np.ndarray = luminance(rgb)
            lookup = np.concatenate([t, np.full_like(t, 0.5)], axis=-1)
            return gradient.sample(lookup)[..., :3]
        return spectral(luminance(rgb))
