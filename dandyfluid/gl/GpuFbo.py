"""Render target backed by a GL texture and framebuffer object.

Passes draw into it with their GLSL programs. read() and data copy the texels
back to the host with glReadPixels, so host-side sampling and saving still
work, at the cost of a pipeline stall. GL calls only, so use it on the render
thread.
"""

import numpy as np
from OpenGL.GL import *  # type: ignore
from OpenGL.constant import Constant
from OpenGL.error import GLError

from dandyfluid.gl.Fbo import Fbo
from dandyfluid.gl.Image import draw_quad
from dandyfluid.gl.Texture import PixelFormat, Precision, Wrap, AllocationError

_INTERNAL_FORMATS: dict[tuple[PixelFormat, Precision], Constant] = {
    (PixelFormat.R, Precision.UNSIGNED_BYTE):       GL_R8,
    (PixelFormat.R, Precision.HALF_FLOAT):          GL_R16F,
    (PixelFormat.R, Precision.FLOAT):               GL_R32F,
    (PixelFormat.RG, Precision.UNSIGNED_BYTE):      GL_RG8,
    (PixelFormat.RG, Precision.HALF_FLOAT):         GL_RG16F,
    (PixelFormat.RG, Precision.FLOAT):              GL_RG32F,
    (PixelFormat.RGB, Precision.UNSIGNED_BYTE):     GL_RGB8,
    (PixelFormat.RGB, Precision.HALF_FLOAT):        GL_RGB16F,
    (PixelFormat.RGB, Precision.FLOAT):             GL_RGB32F,
    (PixelFormat.RGBA, Precision.UNSIGNED_BYTE):    GL_RGBA8,
    (PixelFormat.RGBA, Precision.HALF_FLOAT):       GL_RGBA16F,
    (PixelFormat.RGBA, Precision.FLOAT):            GL_RGBA32F,
}

_PIXEL_FORMATS: dict[PixelFormat, Constant] = {
    PixelFormat.R:      GL_RED,
    PixelFormat.RG:     GL_RG,
    PixelFormat.RGB:    GL_RGB,
    PixelFormat.RGBA:   GL_RGBA,
}


class GpuFbo(Fbo):
    on_gpu: bool = True

    def __init__(self) -> None :
        super(GpuFbo, self).__init__()
        self.tex_id: int = 0
        self.fbo_id: int = 0

    def allocate(self, width: int, height: int, pixel_format: PixelFormat, precision: Precision = Precision.FLOAT,
                 wrap: Wrap = Wrap.CLAMP_TO_EDGE) -> None :
        """Create the texture and its framebuffer, cleared to zero.

        Raises:
            AllocationError: If the size is invalid, GL reports an error or the framebuffer is incomplete.
        """
        if width < 1 or height < 1:
            raise AllocationError(f"GpuFbo: invalid size {width}x{height}")
        self.deallocate()

        tex_id: int = 0
        fbo_id: int = 0
        try:
            tex_id = glGenTextures(1)
            glBindTexture(GL_TEXTURE_2D, tex_id)
            glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MAG_FILTER, GL_LINEAR)
            glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MIN_FILTER, GL_LINEAR)
            gl_wrap = GL_REPEAT if wrap == Wrap.REPEAT else GL_CLAMP_TO_EDGE
            glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_S, gl_wrap)
            glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_T, gl_wrap)
            glTexImage2D(GL_TEXTURE_2D, 0, _INTERNAL_FORMATS[(pixel_format, precision)], width, height, 0,
                         _PIXEL_FORMATS[pixel_format], GL_FLOAT, None)
            glBindTexture(GL_TEXTURE_2D, 0)

            fbo_id = glGenFramebuffers(1)
            glBindFramebuffer(GL_FRAMEBUFFER, fbo_id)
            glFramebufferTexture2D(GL_FRAMEBUFFER, GL_COLOR_ATTACHMENT0, GL_TEXTURE_2D, tex_id, 0)
            status = glCheckFramebufferStatus(GL_FRAMEBUFFER)
            if status == GL_FRAMEBUFFER_COMPLETE:
                glClearColor(0.0, 0.0, 0.0, 0.0)
                glClear(GL_COLOR_BUFFER_BIT)
            glBindFramebuffer(GL_FRAMEBUFFER, 0)
        except GLError as e:
            self._release(tex_id, fbo_id)
            raise AllocationError(f"GpuFbo: failed to allocate {width}x{height} {pixel_format.name} {precision.name}") from e
        if status != GL_FRAMEBUFFER_COMPLETE:
            self._release(tex_id, fbo_id)
            raise AllocationError(f"GpuFbo: framebuffer incomplete for {pixel_format.name} {precision.name} ({status})")

        self.tex_id = tex_id
        self.fbo_id = fbo_id
        self.width = width
        self.height = height
        self.pixel_format = pixel_format
        self.precision = precision
        self.wrap = wrap
        self.version += 1
        self.allocated = True

    def deallocate(self) -> None :
        if not self.allocated: return
        self._release(self.tex_id, self.fbo_id)
        self.tex_id = 0
        self.fbo_id = 0
        self.allocated = False
        self.width = 0
        self.height = 0

    @staticmethod
    def _release(tex_id: int, fbo_id: int) -> None:
        if fbo_id:
            glDeleteFramebuffers(1, [fbo_id])
        if tex_id:
            glDeleteTextures([tex_id])

    def begin(self) -> None:
        """Make this the draw target with a viewport covering the texture."""
        glBindFramebuffer(GL_FRAMEBUFFER, self.fbo_id)
        glPushAttrib(GL_VIEWPORT_BIT)
        glViewport(0, 0, self.width, self.height)

    def end(self) -> None:
        glPopAttrib()
        glBindFramebuffer(GL_FRAMEBUFFER, 0)

    # TEXEL ACCESS
    @property
    def data(self) -> np.ndarray | None:
        """Texels read back in the storage dtype (uint8 or float32), rows bottom first."""
        if not self.allocated:
            return None
        if self.precision == Precision.UNSIGNED_BYTE:
            return self._read_pixels(GL_UNSIGNED_BYTE, np.uint8)
        return self._read_pixels(GL_FLOAT, np.float32)

    def read(self) -> np.ndarray:
        if not self.allocated:
            raise AllocationError("GpuFbo: read from unallocated render target")
        return self._read_pixels(GL_FLOAT, np.float32)

    def _read_pixels(self, data_type: Constant, dtype: type) -> np.ndarray:
        pixels = np.empty((self.height, self.width, self.channels), dtype=dtype)
        glBindFramebuffer(GL_FRAMEBUFFER, self.fbo_id)
        glPixelStorei(GL_PACK_ALIGNMENT, 1)
        glReadPixels(0, 0, self.width, self.height, _PIXEL_FORMATS[self.pixel_format], data_type, pixels)
        glBindFramebuffer(GL_FRAMEBUFFER, 0)
        return pixels

    def _store(self, texels: np.ndarray) -> None:
        if texels.dtype == np.float16:
            texels = texels.astype(np.float32)
        data_type: Constant = GL_UNSIGNED_BYTE if texels.dtype == np.uint8 else GL_FLOAT
        glPixelStorei(GL_UNPACK_ALIGNMENT, 1)
        glBindTexture(GL_TEXTURE_2D, self.tex_id)
        glTexSubImage2D(GL_TEXTURE_2D, 0, 0, 0, self.width, self.height, _PIXEL_FORMATS[self.pixel_format],
                        data_type, np.ascontiguousarray(texels))
        glBindTexture(GL_TEXTURE_2D, 0)
        self.version += 1

    def draw(self, x: float, y: float, w: float, h: float) -> None:
        if not self.allocated: return
        glBindTexture(GL_TEXTURE_2D, self.tex_id)
        draw_quad(x, y, w, h)
        glBindTexture(GL_TEXTURE_2D, 0)
