"""
I/O utilities for the glyph segmentation engine.

Handles:
- Image loading into PixelBuffers
- OCR candidate files (JSON symbol lists)
- Training data files
- JSON serialization
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Union

import numpy as np

from .ocr_text import OCRSymbol, symbols_from_dicts
from .pixels import PixelBuffer

logger = logging.getLogger(__name__)


# ============================================================================
# Image Loading
# ============================================================================

def load_image(
    image_path: Union[str, Path],
    grayscale: bool = False
) -> PixelBuffer:
    """
    Load an image from file.

    Args:
        image_path: Path to the image file
        grayscale: If True, load as a single-channel buffer

    Returns:
        PixelBuffer in gray, RGB or RGBA channel order

    Raises:
        FileNotFoundError: If image file doesn't exist
        ValueError: If image cannot be decoded
    """
    import cv2

    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    flag = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_UNCHANGED
    img = cv2.imread(str(image_path), flag)

    if img is None:
        raise ValueError(f"Could not decode image: {image_path}")

    # OpenCV decodes colour as BGR(A)
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    if img.dtype != np.uint8:
        # 16-bit PNG/TIFF
        img = (img // 257).astype(np.uint8)

    logger.debug(f"Loaded image: {image_path}, shape: {img.shape}")
    return PixelBuffer.from_array(img)


def save_image(image: PixelBuffer, output_path: Union[str, Path]) -> Path:
    """Write a PixelBuffer to disk (format chosen by extension)."""
    import cv2

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    samples = image.samples
    if image.channels == 3:
        samples = cv2.cvtColor(samples, cv2.COLOR_RGB2BGR)
    elif image.channels == 4:
        samples = cv2.cvtColor(samples, cv2.COLOR_RGBA2BGRA)
    else:
        samples = np.ascontiguousarray(samples[:, :, 0])

    cv2.imwrite(str(output_path), samples)
    logger.debug(f"Saved image: {output_path}")
    return output_path


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy values and dataclasses."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        if hasattr(obj, '__dataclass_fields__'):
            return asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False
) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dict, list, dataclass, etc.)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing
        ensure_ascii: If True, escape non-ASCII characters

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """Load data from a JSON file."""
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, 'r', encoding='utf-8') as f:
        return json.load(f)


# ============================================================================
# Candidates and Training Data
# ============================================================================

def load_symbols(json_path: Union[str, Path]) -> List[OCRSymbol]:
    """
    Load OCR candidates from a JSON file.

    Accepts either a plain list of symbol objects or an object with a
    ``symbols`` (or ``candidates``) list.
    """
    data = load_json(json_path)
    if isinstance(data, dict):
        data = data.get("symbols", data.get("candidates", []))
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of symbols in {json_path}")

    symbols = symbols_from_dicts(data)
    logger.info(f"Loaded {len(symbols)} candidates from {json_path}")
    return symbols


def save_symbols(symbols: List[OCRSymbol], output_path: Union[str, Path]) -> Path:
    return save_json([s.to_dict() for s in symbols], output_path)


def load_training_text(json_path: Union[str, Path]) -> str:
    """Raw serialized training data, for GlyphEngine.import_training_data."""
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"Training data file not found: {json_path}")
    return json_path.read_text(encoding='utf-8')


def save_training_data(serialized: str, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(serialized, encoding='utf-8')
    logger.debug(f"Saved training data: {output_path}")
    return output_path
