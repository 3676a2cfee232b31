"""Full-screen pass base class.

A Shader owns a fragment program and a uniform map. On host targets rendering
evaluates the program once for every texel centre of the destination,
vectorized over the whole grid, and stores the result in the destination's
format. On GL targets the same program runs as GLSL (see Program).
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from typing import Any

import numpy as np

from dandyfluid.gl.Fbo import Fbo
from dandyfluid.gl.Texture import Texture, Wrap, AllocationError


@lru_cache(maxsize=16)
def quad_coords(width: int, height: int) -> np.ndarray:
    """(H, W, 2) uv coordinates of the texel centres covered by a full-screen quad."""
    u: np.ndarray = (np.arange(width, dtype=np.float32) + 0.5) / width
    v: np.ndarray = (np.arange(height, dtype=np.float32) + 0.5) / height
    uu, vv = np.meshgrid(u, v)
    coords: np.ndarray = np.stack([uu, vv], axis=-1)
    coords.flags.writeable = False
    return coords


def neighbor(texture: Texture, uv: np.ndarray, texel_size: tuple[float, float], di: int, dj: int,
             wrap: Wrap = Wrap.CLAMP_TO_EDGE) -> np.ndarray:
    """Look up texture at uv + (di, dj) * texel_size.

    Uses an exact texel shift when the texture matches the destination grid,
    otherwise falls back to a bilinear lookup.
    """
    height, width = uv.shape[:2]
    if texture.width == width and texture.height == height:
        return texture.fetch_offset(di, dj, wrap)
    offset = np.array([di * texel_size[0], dj * texel_size[1]], dtype=np.float32)
    return texture.sample(uv + offset, wrap)


def safe_normalize(v: np.ndarray) -> np.ndarray:
    """Normalize along the last axis; zero-length vectors stay zero."""
    length: np.ndarray = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.divide(v, length, out=np.zeros_like(v), where=length > 0.0)


def smoothstep(edge0: float, edge1: float, x: np.ndarray) -> np.ndarray:
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def uniform_value(value: Any) -> tuple[str, Any]:
    """Classify a uniform value by the glUniform call that uploads it.

    Returns:
        (kind, payload) where kind is 'sampler', '1i', '1f', '2f', '3f', '4f' or '4fv'

    Raises:
        ValueError: If the value has no GLSL counterpart.
    """
    if isinstance(value, Texture):
        return 'sampler', value
    if isinstance(value, bool):
        return '1i', int(value)
    if isinstance(value, Enum):
        return '1i', list(type(value)).index(value)
    if isinstance(value, (int, float, np.number)):
        return '1f', float(value)

    array: np.ndarray = np.asarray(value, dtype=np.float32)
    if array.ndim == 1 and 2 <= array.shape[0] <= 4:
        return f'{array.shape[0]}f', tuple(float(v) for v in array)
    if array.ndim == 2 and array.shape[1] == 4:
        return '4fv', np.ascontiguousarray(array)
    raise ValueError(f"no GLSL uniform type for {type(value).__name__} with shape {array.shape}")


class Shader(ABC):
    """Full-screen pass with a numpy fragment() and a GLSL fragment_source.

    Host targets run fragment() over the texel grid. GL targets (GpuFbo) run
    the GLSL program, compiled on first use on the thread owning the context.
    Uniform names in fragment_source match the keys of self.uniforms.
    """

    # GLSL body, the shared vertex stage provides varying vec2 texCoord
    fragment_source: str = ''
    # wrap mode per sampler when it differs from the texture's own
    sampler_wrap: dict[str, Wrap] = {}

    def __init__(self, uniforms: dict[str, Any] | None = None, shader_name: str = '') -> None:
        """Initialize with the declared uniforms and their default values."""
        self.allocated: bool = False
        self.shader_name: str = shader_name or self.__class__.__name__
        self.uniforms: dict[str, Any] = dict(uniforms or {})
        self.program: Any = None

    def allocate(self) -> None:
        """Make the pass ready for rendering. Safe to call multiple times."""
        if self.allocated:
            return
        self.allocated = True

    def deallocate(self) -> None:
        """Release the pass, its GL program if one was built, and its references to textures."""
        self.allocated = False
        if self.program is not None:
            self.program.deallocate()
            self.program = None
        for name, value in self.uniforms.items():
            if isinstance(value, Texture):
                self.uniforms[name] = None

    def update(self, **uniforms: Any) -> None:
        """Merge-patch uniform values. Keys given as None keep their current value.

        Raises:
            KeyError: If a uniform is not declared by this pass.
        """
        for name, value in uniforms.items():
            if name not in self.uniforms:
                raise KeyError(f"{self.shader_name}: unknown uniform '{name}'")
            if value is not None:
                self.uniforms[name] = value

    def target_uniforms(self, target: Fbo) -> dict[str, Any]:
        """Extra uniforms that depend on the render target, passed to the GLSL program."""
        return {}

    def render(self, target: Fbo) -> Fbo:
        """Draw a full-screen quad into target.

        Raises:
            ValueError: If a texture uniform is the render target itself.
            AllocationError: If the target or an input texture has been released,
                or the GLSL program does not compile.
        """
        if not self.allocated:
            logging.warning(f"{self.shader_name} shader not allocated.")
            return target
        if not target.allocated:
            raise AllocationError(f"{self.shader_name}: render target not allocated")
        for name, value in self.uniforms.items():
            if value is target:
                raise ValueError(f"{self.shader_name}: uniform '{name}' reads from the render target")
            if isinstance(value, Texture) and not value.allocated:
                raise AllocationError(f"{self.shader_name}: input texture '{name}' not allocated")

        if target.on_gpu:
            self._render_program(target)
            return target

        uv: np.ndarray = quad_coords(target.width, target.height)
        target.write(self.fragment(uv, target))
        return target

    def _render_program(self, target: Fbo) -> None:
        if self.program is None:
            from dandyfluid.gl.Program import Program
            program = Program(self.shader_name, self.fragment_source)
            program.allocate()
            self.program = program
        self.program.draw(target, {**self.uniforms, **self.target_uniforms(target)}, self.sampler_wrap)

    @abstractmethod
    def fragment(self, uv: np.ndarray, target: Fbo) -> np.ndarray:
        """Evaluate the fragment program for all texel centres.

        Args:
            uv: (H, W, 2) texel centre coordinates of the target
            target: Destination, for its size and texel size

        Returns:
            (H, W, C) color values
        """
