"""
Pixel data model for the glyph segmentation engine.

Provides:
- PixelBuffer: immutable gray/RGB/RGBA sample grid
- BoundingBox: x/y/width/height rectangle used for OCR boxes
- Segment: a sub-region of a parent buffer with its own cropped bitmap
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

import numpy as np

from .exceptions import RenderTargetUnavailable

# Rec. 601 luma weights for R, G, B
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


# ============================================================================
# Pixel Buffer
# ============================================================================

@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Immutable grid of 8-bit samples.

    ``samples`` has shape (height, width, channels) with 1 (gray),
    3 (RGB) or 4 (RGBA) channels and is marked read-only. Every transform
    returns a new buffer.
    """
    samples: np.ndarray

    def __post_init__(self):
        samples = self.samples
        if samples.ndim != 3 or samples.shape[2] not in (1, 3, 4):
            raise ValueError(f"Unexpected sample shape: {samples.shape}")
        if samples.dtype != np.uint8:
            raise ValueError(f"Samples must be uint8, got {samples.dtype}")
        samples.setflags(write=False)

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'PixelBuffer':
        """
        Build a buffer from a 2-D gray or 3-D gray/RGB/RGBA array.

        The array is copied so later changes to it never leak in.
        """
        array = np.asarray(array)
        if array.ndim == 2:
            array = array[:, :, np.newaxis]
        if array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)
        return cls(np.ascontiguousarray(array).copy())

    @classmethod
    def blank(cls, width: int, height: int, value: int = 255) -> 'PixelBuffer':
        """Create a single-channel buffer filled with ``value``."""
        return cls(np.full((height, width, 1), value, dtype=np.uint8))

    @property
    def height(self) -> int:
        return self.samples.shape[0]

    @property
    def width(self) -> int:
        return self.samples.shape[1]

    @property
    def channels(self) -> int:
        return self.samples.shape[2]

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    def luma(self) -> np.ndarray:
        """
        Per-pixel luma as a float array of shape (height, width).

        Gray buffers return their samples; colour buffers use
        0.299R + 0.587G + 0.114B (alpha ignored).
        """
        if self.channels == 1:
            return self.samples[:, :, 0].astype(np.float64)
        return self.samples[:, :, :3].astype(np.float64) @ LUMA_WEIGHTS

    def crop(self, x: int, y: int, width: int, height: int) -> 'PixelBuffer':
        """
        Copy out a rectangular region.

        The region is clipped to the buffer. Raises RenderTargetUnavailable
        when nothing of it lies inside the buffer.
        """
        x0 = max(0, int(x))
        y0 = max(0, int(y))
        x1 = min(self.width, int(x) + int(width))
        y1 = min(self.height, int(y) + int(height))

        if x1 <= x0 or y1 <= y0:
            raise RenderTargetUnavailable(
                f"Region ({x}, {y}, {width}, {height}) is outside a "
                f"{self.width}x{self.height} buffer"
            )
        return PixelBuffer(self.samples[y0:y1, x0:x1].copy())

    def resize(self, width: int, height: int) -> 'PixelBuffer':
        """Resample to a new size (area interpolation)."""
        import cv2

        if (width, height) == (self.width, self.height):
            return self
        resized = cv2.resize(
            np.ascontiguousarray(self.samples),
            (width, height),
            interpolation=cv2.INTER_AREA
        )
        if resized.ndim == 2:
            resized = resized[:, :, np.newaxis]
        return PixelBuffer(resized)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return np.array_equal(self.samples, other.samples)


# ============================================================================
# Geometry
# ============================================================================

@dataclass
class BoundingBox:
    """Axis-aligned box given by its top-left corner and size."""
    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_xywh(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    def pixel_region(self) -> Tuple[int, int, int, int]:
        """Integer crop region covering the box (floor origin, ceil size)."""
        return (
            int(math.floor(self.x)),
            int(math.floor(self.y)),
            int(math.ceil(self.width)),
            int(math.ceil(self.height)),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BoundingBox':
        """
        Accepts either ``w``/``h`` or ``width``/``height`` keys.

        Raises ValueError for a non-dict, a missing key or a non-numeric value.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Bounding box must be an object, got {type(data).__name__}")
        try:
            width = data["width"] if "width" in data else data["w"]
            height = data["height"] if "height" in data else data["h"]
            return cls(float(data["x"]), float(data["y"]), float(width), float(height))
        except KeyError as e:
            raise ValueError(f"Bounding box is missing {e}") from e
        except TypeError as e:
            raise ValueError(f"Bounding box values must be numbers: {e}") from e


@dataclass
class Segment:
    """
    A sub-region of a parent buffer.

    x/y/width/height are in the parent's coordinate space, ``pixels`` is the
    region's own bitmap.
    """
    x: int
    y: int
    width: int
    height: int
    pixels: PixelBuffer

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Segment must have a positive size, got {self.width}x{self.height}")
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Segment origin must be non-negative, got ({self.x}, {self.y})")

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def ink_ratio(self) -> float:
        """Fraction of pixels whose luma is below 128."""
        from .images import ink_ratio

        return ink_ratio(self.pixels)

    def to_bbox(self, offset_x: Union[int, float] = 0, offset_y: Union[int, float] = 0) -> BoundingBox:
        return BoundingBox(self.x + offset_x, self.y + offset_y, self.width, self.height)

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}
