"""Host-side textures for the fluid passes.

Texels live in numpy arrays of shape (height, width, channels). Row 0 is the
bottom row (GL texture convention), so uv (0, 0) is the lower-left corner.
"""

from enum import Enum

import numpy as np


class AllocationError(RuntimeError):
    """Texture or render target storage could not be created."""


class PixelFormat(Enum):
    R =     1
    RG =    2
    RGB =   3
    RGBA =  4

    @property
    def channels(self) -> int:
        return self.value


class Precision(Enum):
    UNSIGNED_BYTE = 'uint8'
    HALF_FLOAT =    'float16'
    FLOAT =         'float32'

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)


class Wrap(Enum):
    CLAMP_TO_EDGE = 0
    REPEAT =        1


def _wrap_index(index: np.ndarray, size: int, wrap: Wrap) -> np.ndarray:
    if wrap == Wrap.REPEAT:
        return np.mod(index, size)
    return np.clip(index, 0, size - 1)


class Texture():
    # host storage; GL backed subclasses set this
    on_gpu: bool = False

    def __init__(self) -> None :
        self.allocated: bool = False
        self.width: int = 0
        self.height: int = 0
        self.pixel_format: PixelFormat = PixelFormat.RGBA
        self.precision: Precision = Precision.FLOAT
        self.wrap: Wrap = Wrap.CLAMP_TO_EDGE
        self._data: np.ndarray | None = None
        self.version: int = 0

    @classmethod
    def from_array(cls, array: np.ndarray, wrap: Wrap = Wrap.CLAMP_TO_EDGE) -> 'Texture':
        """Create a texture from an image array.

        Arrays are expected top-row first (as loaded from image files) and are
        flipped to the bottom-row-first texture layout. uint8 arrays keep 8-bit
        precision, everything else is stored as float32.

        Args:
            array: (H, W) or (H, W, C) array with 1-4 channels
            wrap: Wrap mode used when the texture is sampled
        """
        image: np.ndarray = np.asarray(array)
        if image.ndim == 2:
            image = image[:, :, np.newaxis]
        if image.ndim != 3 or not 1 <= image.shape[2] <= 4:
            raise ValueError(f"Texture.from_array: unsupported image shape {image.shape}")

        precision: Precision = Precision.UNSIGNED_BYTE if image.dtype == np.uint8 else Precision.FLOAT
        texture = cls()
        texture.allocate(image.shape[1], image.shape[0], PixelFormat(image.shape[2]), precision, wrap)
        if precision == Precision.UNSIGNED_BYTE:
            texture._store(image[::-1])
        else:
            texture.write(image[::-1].astype(np.float32))
        return texture

    def allocate(self, width: int, height: int, pixel_format: PixelFormat, precision: Precision = Precision.FLOAT,
                 wrap: Wrap = Wrap.CLAMP_TO_EDGE) -> None :
        """Allocate zeroed texel storage.

        Args:
            width: Texture width in texels
            height: Texture height in texels
            pixel_format: Channel layout
            precision: Storage precision
            wrap: Wrap mode used when the texture is sampled

        Raises:
            AllocationError: If the size is invalid or storage cannot be created.
        """
        if width < 1 or height < 1:
            raise AllocationError(f"{self.__class__.__name__}: invalid size {width}x{height}")
        try:
            data: np.ndarray = np.zeros((height, width, pixel_format.channels), dtype=precision.dtype)
        except (MemoryError, ValueError) as e:
            raise AllocationError(f"{self.__class__.__name__}: failed to allocate {width}x{height} {pixel_format.name} {precision.name}") from e

        self.width = width
        self.height = height
        self.pixel_format = pixel_format
        self.precision = precision
        self.wrap = wrap
        self._data = data
        self.allocated = True

    def deallocate(self) -> None :
        if not self.allocated: return
        self.allocated = False
        self.width = 0
        self.height = 0
        self._data = None

    @property
    def channels(self) -> int:
        return self.pixel_format.channels

    @property
    def texel_size(self) -> tuple[float, float]:
        return (1.0 / self.width, 1.0 / self.height)

    # TEXEL ACCESS
    @property
    def data(self) -> np.ndarray | None:
        """Raw texel storage in the texture's own dtype, rows bottom first."""
        return self._data

    def read(self) -> np.ndarray:
        """Return the texels as float32 in (H, W, C) layout, normalized for 8-bit storage."""
        if self._data is None:
            raise AllocationError(f"{self.__class__.__name__}: read from unallocated texture")
        if self.precision == Precision.UNSIGNED_BYTE:
            return self._data.astype(np.float32) / 255.0
        return self._data.astype(np.float32)

    def write(self, values: np.ndarray) -> None:
        """Store values, converting to the texture's format and precision.

        Extra channels are dropped, missing channels are zero-filled.
        8-bit storage clamps to [0, 1] and rounds to the nearest 1/255.
        """
        if not self.allocated:
            raise AllocationError(f"{self.__class__.__name__}: write to unallocated texture")
        values = np.asarray(values, dtype=np.float32)
        if values.ndim == 2:
            values = values[:, :, np.newaxis]
        if values.shape[:2] != (self.height, self.width):
            raise ValueError(f"{self.__class__.__name__}: expected {self.width}x{self.height}, got {values.shape[1]}x{values.shape[0]}")

        channels: int = self.channels
        if values.shape[2] >= channels:
            values = values[:, :, :channels]
        else:
            values = np.concatenate([values, np.zeros((self.height, self.width, channels - values.shape[2]), np.float32)], axis=2)

        if self.precision == Precision.UNSIGNED_BYTE:
            self._store(np.rint(np.clip(values, 0.0, 1.0) * 255.0).astype(np.uint8))
        else:
            self._store(values.astype(self.precision.dtype))

    def _store(self, texels: np.ndarray) -> None:
        """Replace the texel storage with texels already in the storage dtype."""
        self._data[...] = texels # type: ignore
        self.version += 1

    def clear(self, r: float = 0.0, g: float = 0.0, b: float = 0.0, a: float = 0.0) -> None:
        if not self.allocated:
            return
        color = np.array([r, g, b, a][:self.channels], dtype=np.float32)
        self.write(np.broadcast_to(color, (self.height, self.width, self.channels)))

    # SAMPLING
    def sample(self, uv: np.ndarray, wrap: Wrap | None = None) -> np.ndarray:
        """Bilinear lookup at normalized coordinates.

        Args:
            uv: (..., 2) array of texture coordinates
            wrap: Override for the texture's wrap mode

        Returns:
            (..., C) float32 array
        """
        wrap = self.wrap if wrap is None else wrap
        texels: np.ndarray = self.read()

        x: np.ndarray = uv[..., 0] * self.width - 0.5
        y: np.ndarray = uv[..., 1] * self.height - 0.5
        x0: np.ndarray = np.floor(x)
        y0: np.ndarray = np.floor(y)
        fx: np.ndarray = (x - x0)[..., np.newaxis]
        fy: np.ndarray = (y - y0)[..., np.newaxis]
        x0 = x0.astype(np.int64)
        y0 = y0.astype(np.int64)

        xa = _wrap_index(x0, self.width, wrap)
        xb = _wrap_index(x0 + 1, self.width, wrap)
        ya = _wrap_index(y0, self.height, wrap)
        yb = _wrap_index(y0 + 1, self.height, wrap)

        bottom = texels[ya, xa] * (1.0 - fx) + texels[ya, xb] * fx
        top = texels[yb, xa] * (1.0 - fx) + texels[yb, xb] * fx
        return (bottom * (1.0 - fy) + top * fy).astype(np.float32)

    def fetch_offset(self, di: int, dj: int, wrap: Wrap | None = None) -> np.ndarray:
        """Return the texels shifted so that out[j, i] = texel[j + dj, i + di].

        Equivalent to sampling at uv + (di, dj) * texel_size on the texture's own grid.
        """
        wrap = self.wrap if wrap is None else wrap
        texels: np.ndarray = self.read()
        if wrap == Wrap.REPEAT:
            return np.roll(texels, shift=(-dj, -di), axis=(0, 1))
        pad_y, pad_x = abs(dj), abs(di)
        padded: np.ndarray = np.pad(texels, ((pad_y, pad_y), (pad_x, pad_x), (0, 0)), mode='edge')
        return padded[pad_y + dj: pad_y + dj + self.height, pad_x + di: pad_x + di + self.width]
