# TEXTURE CLASSES
from .Texture import Texture, PixelFormat, Precision, Wrap, AllocationError
from .Fbo import Fbo
from .BufferPool import BufferPool

# PASSES
from .Shader import Shader, quad_coords, neighbor, safe_normalize, smoothstep
