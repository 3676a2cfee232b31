"""GL texture that presents host-side surfaces in the window."""

import numpy as np
from OpenGL.GL import *  # type: ignore
from OpenGL.constant import Constant

# (dtype, channels) -> (internal format, pixel format, data type)
_FORMATS: dict[tuple[str, int], tuple[Constant, Constant, Constant]] = {
    ('uint8', 1):   (GL_R8,      GL_RED,  GL_UNSIGNED_BYTE),
    ('uint8', 3):   (GL_RGB8,    GL_RGB,  GL_UNSIGNED_BYTE),
    ('uint8', 4):   (GL_RGBA8,   GL_RGBA, GL_UNSIGNED_BYTE),
    ('float32', 1): (GL_R32F,    GL_RED,  GL_FLOAT),
    ('float32', 3): (GL_RGB32F,  GL_RGB,  GL_FLOAT),
    ('float32', 4): (GL_RGBA32F, GL_RGBA, GL_FLOAT),
}


def draw_quad(x: float, y: float, w: float, h: float) -> None:
    # texture rows are stored bottom first, window y points down
    glBegin(GL_QUADS)
    glTexCoord2f(0.0, 1.0); glVertex2f(x, y)
    glTexCoord2f(1.0, 1.0); glVertex2f(x + w, y)
    glTexCoord2f(1.0, 0.0); glVertex2f(x + w, y + h)
    glTexCoord2f(0.0, 0.0); glVertex2f(x, y + h)
    glEnd()


class Image():
    """Texture re-uploaded from a numpy array every frame. GL calls only, so use it on the render thread."""

    def __init__(self) -> None:
        self.allocated: bool = False
        self.width: int = 0
        self.height: int = 0
        self.tex_id: int = 0
        self._format: tuple[Constant, Constant, Constant] | None = None

    def allocate(self, width: int, height: int, gl_format: tuple[Constant, Constant, Constant]) -> None:
        internal_format, pixel_format, data_type = gl_format
        self.tex_id = glGenTextures(1)
        glBindTexture(GL_TEXTURE_2D, self.tex_id)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_S, GL_CLAMP_TO_EDGE)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_T, GL_CLAMP_TO_EDGE)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MAG_FILTER, GL_LINEAR)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MIN_FILTER, GL_LINEAR)
        glTexImage2D(GL_TEXTURE_2D, 0, internal_format, width, height, 0, pixel_format, data_type, None)
        glBindTexture(GL_TEXTURE_2D, 0)

        self.width = width
        self.height = height
        self._format = gl_format
        self.allocated = True

    def deallocate(self) -> None:
        if not self.allocated: return
        glDeleteTextures([self.tex_id])
        self.tex_id = 0
        self._format = None
        self.allocated = False

    def set_from_image(self, image: np.ndarray) -> None:
        """Upload an (H, W, C) array with rows bottom first, reallocating when size or format change.

        Raises:
            ValueError: If the dtype and channel count have no GL equivalent.
        """
        channels: int = 1 if image.ndim == 2 else image.shape[2]
        gl_format = _FORMATS.get((image.dtype.name, channels))
        if gl_format is None:
            raise ValueError(f"Image: unsupported {image.dtype.name} image with {channels} channels")

        height, width = image.shape[:2]
        if gl_format != self._format or (width, height) != (self.width, self.height):
            self.deallocate()
            self.allocate(width, height, gl_format)

        internal_format, pixel_format, data_type = gl_format
        glPixelStorei(GL_UNPACK_ALIGNMENT, 1)
        glBindTexture(GL_TEXTURE_2D, self.tex_id)
        glTexSubImage2D(GL_TEXTURE_2D, 0, 0, 0, width, height, pixel_format, data_type, np.ascontiguousarray(image))
        glBindTexture(GL_TEXTURE_2D, 0)

    def draw(self, x: float, y: float, w: float, h: float) -> None:
        if not self.allocated: return
        glBindTexture(GL_TEXTURE_2D, self.tex_id)
        draw_quad(x, y, w, h)
        glBindTexture(GL_TEXTURE_2D, 0)
