"""Rotating pool of render targets sharing one resolution.

Generalizes two-buffer ping-pong to N buffers. Each call to acquire_next()
hands out the next target in rotation, so with N >= 2 a pass always renders
into a buffer other than the one written by the previous acquisition.
fbo_type picks host (Fbo) or GL framebuffer (GpuFbo) targets.
"""

import logging

from dandyfluid.gl.Fbo import Fbo
from dandyfluid.gl.Texture import PixelFormat, Precision, AllocationError


class BufferPool():
    def __init__(self, width: int, height: int, count: int, pixel_format: PixelFormat,
                 precision: Precision = Precision.FLOAT, name: str = '', fbo_type: type[Fbo] = Fbo) -> None:
        if count < 1:
            raise ValueError(f"BufferPool: count must be at least 1, got {count}")
        self.name: str = name or f"{pixel_format.name}_{precision.name}"
        self.count: int = count
        self.pixel_format: PixelFormat = pixel_format
        self.precision: Precision = precision
        self.width: int = max(1, int(width))
        self.height: int = max(1, int(height))
        self.buffers: list[Fbo] = [fbo_type() for _ in range(count)]
        self._needs_resize: list[bool] = [False] * count
        self._index: int = 0
        self.allocated: bool = False

    def allocate(self) -> None:
        """Create all buffers at the current resolution.

        Raises:
            AllocationError: If any buffer cannot be created.
        """
        for buffer in self.buffers:
            buffer.allocate(self.width, self.height, self.pixel_format, self.precision)
        self._needs_resize = [False] * self.count
        self._index = 0
        self.allocated = True
        logging.info(f"BufferPool {self.name}: allocated {self.count}x {self.width}x{self.height}")

    def deallocate(self) -> None:
        for buffer in self.buffers:
            buffer.deallocate()
        self.allocated = False

    def resize(self, width: int, height: int) -> None:
        """Request a new resolution.

        The new size is reported immediately; each buffer is reallocated the
        next time it is acquired.
        """
        width = max(1, int(width))
        height = max(1, int(height))
        if width == self.width and height == self.height:
            return
        self.width = width
        self.height = height
        self._needs_resize = [True] * self.count

    def acquire_next(self) -> Fbo:
        """Return the next render target in rotation, reallocating it first if a resize is pending.

        Raises:
            AllocationError: If the pool is not allocated or reallocation fails.
        """
        index: int = self._index
        buffer: Fbo = self.buffers[index]
        if not buffer.allocated:
            raise AllocationError(f"BufferPool {self.name}: buffer {index} is not allocated")
        if self._needs_resize[index]:
            buffer.resize(self.width, self.height)
            self._needs_resize[index] = False
        self._index = (index + 1) % self.count
        return buffer

    def pending_resize(self) -> int:
        """Number of buffers still waiting for their deferred reallocation."""
        return sum(self._needs_resize)
