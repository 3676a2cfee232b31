from dandyfluid.gl.Texture import Texture, PixelFormat, Precision, Wrap, AllocationError


class Fbo(Texture):
    """Render target: a texture that passes draw into."""

    def __init__(self) -> None :
        super(Fbo, self).__init__()

    def allocate(self, width: int, height: int, pixel_format: PixelFormat, precision: Precision = Precision.FLOAT,
                 wrap: Wrap = Wrap.CLAMP_TO_EDGE) -> None :
        super(Fbo, self).allocate(width, height, pixel_format, precision, wrap)

    def resize(self, width: int, height: int) -> None:
        """Reallocate at a new size keeping format and precision. Contents are not preserved."""
        if not self.allocated:
            raise AllocationError("Fbo: resize of unallocated render target")
        if width == self.width and height == self.height:
            return
        self.allocate(width, height, self.pixel_format, self.precision, self.wrap)
