"""GLSL program for a full-screen pass.

Compiles a pass's fragment_source against a shared vertex stage, binds the
pass uniforms by name and draws a clip-space quad into a GpuFbo. Host textures
used as inputs (card textures, gradients) are uploaded on first use and again
whenever their version changes. GL calls only, so use it on the render thread.
"""

import logging
from typing import Any

import numpy as np
from OpenGL.GL import *  # type: ignore
from OpenGL.GL import shaders
from OpenGL.error import GLError

from dandyfluid.gl.Image import Image
from dandyfluid.gl.Texture import Texture, Wrap, AllocationError
from dandyfluid.gl.Shader import uniform_value

GLSL_VERSION: str = "#version 120\n"

VERTEX_SOURCE: str = """
varying vec2 texCoord;

void main() {
    texCoord = gl_MultiTexCoord0.xy;
    gl_Position = gl_Vertex;
}
"""


def draw_quad() -> None:
    glBegin(GL_QUADS)
    glTexCoord2f( 0.0,  0.0)
    glVertex2f(  -1.0, -1.0)
    glTexCoord2f( 1.0,  0.0)
    glVertex2f(   1.0, -1.0)
    glTexCoord2f( 1.0,  1.0)
    glVertex2f(   1.0,  1.0)
    glTexCoord2f( 0.0,  1.0)
    glVertex2f(  -1.0,  1.0)
    glEnd()


def upload_pixels(texture: Texture) -> np.ndarray:
    """Host texels in a layout Image can upload: uint8 or float32, 3 or 4 channels.

    One and two channel textures are widened to RGB, single channels as grey,
    so .rgb lookups in GLSL see the same values as the numpy passes.
    """
    data: np.ndarray = texture.data  # type: ignore
    if data.dtype != np.uint8:
        data = data.astype(np.float32)
    channels: int = data.shape[2]
    if channels == 1:
        data = np.repeat(data, 3, axis=2)
    elif channels == 2:
        data = np.concatenate([data, np.zeros(data.shape[:2] + (1,), data.dtype)], axis=2)
    return np.ascontiguousarray(data)


class Program():
    def __init__(self, name: str, fragment_source: str, vertex_source: str = VERTEX_SOURCE) -> None:
        self.name: str = name
        self.fragment_source: str = fragment_source
        self.vertex_source: str = vertex_source
        self.shader_program: Any = None
        self.allocated: bool = False
        self._locations: dict[str, int] = {}
        self._uploads: dict[str, tuple[Image, Texture, int]] = {}

    def allocate(self) -> None:
        """Compile and link the program.

        Raises:
            AllocationError: If a stage fails to compile or the program fails to link.
        """
        if self.allocated:
            return
        try:
            vertex_shader = shaders.compileShader(GLSL_VERSION + self.vertex_source, GL_VERTEX_SHADER)
        except shaders.ShaderCompilationError as e:
            logging.error(f"{self.name} VERTEX SHADER ERROR: {e}")
            raise AllocationError(f"{self.name}: vertex shader does not compile") from e
        try:
            fragment_shader = shaders.compileShader(GLSL_VERSION + self.fragment_source, GL_FRAGMENT_SHADER)
        except shaders.ShaderCompilationError as e:
            logging.error(f"{self.name} FRAGMENT SHADER ERROR: {e}")
            raise AllocationError(f"{self.name}: fragment shader does not compile") from e
        try:
            self.shader_program = shaders.compileProgram(vertex_shader, fragment_shader)
        except RuntimeError as e:
            logging.error(f"{self.name} PROGRAM LINKING ERROR: {e}")
            raise AllocationError(f"{self.name}: program does not link") from e
        finally:
            glDeleteShader(vertex_shader)
            glDeleteShader(fragment_shader)

        self._locations.clear()
        self.allocated = True
        logging.info(f"{self.name}: program compiled")

    def deallocate(self) -> None:
        for image, _, _ in self._uploads.values():
            image.deallocate()
        self._uploads.clear()
        if self.shader_program is not None:
            glDeleteProgram(self.shader_program)
        self.shader_program = None
        self._locations.clear()
        self.allocated = False

    def get_uniform_loc(self, name: str) -> int:
        if name not in self._locations:
            self._locations[name] = glGetUniformLocation(self.shader_program, name)
        return self._locations[name]

    def draw(self, target: Any, uniforms: dict[str, Any], sampler_wrap: dict[str, Wrap]) -> None:
        """Bind uniforms and draw a full-screen quad into target.

        A None uniform is skipped and clears the matching 'has_<name>' flag
        when the program declares one. Uniforms the program does not use are
        ignored.

        Raises:
            ValueError: If a uniform value has no GLSL counterpart.
            AllocationError: If GL reports an error, like a lost context.
        """
        try:
            self._draw(target, uniforms, sampler_wrap)
        except GLError as e:
            raise AllocationError(f"{self.name}: draw failed: {e}") from e

    def _draw(self, target: Any, uniforms: dict[str, Any], sampler_wrap: dict[str, Wrap]) -> None:
        glUseProgram(self.shader_program)
        unit: int = 0
        for name, value in uniforms.items():
            flag: int = self.get_uniform_loc(f"has_{name}")
            if flag != -1:
                glUniform1i(flag, int(value is not None))
            location: int = self.get_uniform_loc(name)
            if value is None or location == -1:
                continue

            kind, payload = uniform_value(value)
            if kind == 'sampler':
                wrap: Wrap = sampler_wrap.get(name, payload.wrap)
                glActiveTexture(GL_TEXTURE0 + unit)
                glBindTexture(GL_TEXTURE_2D, self._texture_id(name, payload))
                gl_wrap = GL_REPEAT if wrap == Wrap.REPEAT else GL_CLAMP_TO_EDGE
                glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_S, gl_wrap)
                glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_T, gl_wrap)
                glUniform1i(location, unit)
                unit += 1
            elif kind == '1i':
                glUniform1i(location, payload)
            elif kind == '1f':
                glUniform1f(location, payload)
            elif kind == '2f':
                glUniform2f(location, *payload)
            elif kind == '3f':
                glUniform3f(location, *payload)
            elif kind == '4f':
                glUniform4f(location, *payload)
            elif kind == '4fv':
                glUniform4fv(location, len(payload), payload)

        target.begin()
        draw_quad()
        target.end()

        for index in reversed(range(unit)):
            glActiveTexture(GL_TEXTURE0 + index)
            glBindTexture(GL_TEXTURE_2D, 0)
        glUseProgram(0)

    def _texture_id(self, name: str, texture: Texture) -> int:
        if texture.on_gpu:
            return texture.tex_id  # type: ignore
        image, source, version = self._uploads.get(name, (None, None, -1))
        if image is None:
            image = Image()
        if source is not texture or version != texture.version:
            image.set_from_image(upload_pixels(texture))
        self._uploads[name] = (image, texture, texture.version)
        return image.tex_id
