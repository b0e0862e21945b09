"""
OCR collaborator interface.

The engine does not recognise text itself; it refines symbol-level guesses
from an external recognizer. This module provides:
- OCRSymbol: one recognised character with its box and confidence (0-100)
- Parsing of symbol dictionaries
- Splitting of word-level results into per-character symbols
- An optional Tesseract adapter producing symbols
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .pixels import BoundingBox, PixelBuffer

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

def _new_id(index: int) -> str:
    return f"ocr_{uuid.uuid4().hex[:8]}_{index}"


@dataclass
class OCRSymbol:
    """A single character guess from the recognizer."""
    char: str
    bbox: BoundingBox
    confidence: float
    id: str = field(default_factory=lambda: _new_id(0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "char": self.char,
            "bbox": self.bbox.to_dict(),
            "confidence": self.confidence,
        }


@dataclass
class WordBox:
    """A word-level recognizer result."""
    text: str
    bbox: BoundingBox
    confidence: float


# ============================================================================
# Parsing
# ============================================================================

def _single_char(text: Optional[str]) -> Optional[str]:
    """The stripped text if it is exactly one character, else None."""
    if not isinstance(text, str):
        return None
    text = text.strip()
    return text if len(text) == 1 else None


def symbols_from_dicts(entries: Iterable[Dict[str, Any]]) -> List[OCRSymbol]:
    """
    Build symbols from ``{bbox, char, confidence}`` dictionaries.

    ``bbox`` may use ``w``/``h`` or ``width``/``height``. Entries whose text
    is not a single non-blank character are skipped. Missing confidences
    count as 0 and missing ids are generated.

    Raises:
        ValueError: If an entry is not an object, lacks a usable ``bbox`` or
            has a non-numeric confidence
    """
    symbols = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Symbol {index}: expected an object, got {type(entry).__name__}")
        char = _single_char(entry.get("char", entry.get("text")))
        if char is None:
            logger.debug(f"Skipping symbol {index}: {entry.get('char')!r} is not a single character")
            continue
        if "bbox" not in entry:
            raise ValueError(f"Symbol {index}: missing 'bbox'")

        try:
            bbox = BoundingBox.from_dict(entry["bbox"])
            confidence = float(entry.get("confidence") or 0)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Symbol {index}: {e}") from e

        symbols.append(OCRSymbol(
            char=char,
            bbox=bbox,
            confidence=confidence,
            id=str(entry.get("id") or _new_id(index)),
        ))
    return symbols


def split_words_into_symbols(words: Iterable[WordBox]) -> List[OCRSymbol]:
    """
    Divide each word box into equal-width character boxes.

    Used when the recognizer only reports words. Every character inherits
    the word's confidence; blank characters keep their slot but produce no
    symbol.
    """
    symbols = []
    for word_index, word in enumerate(words):
        text = (word.text or "").strip()
        if not text:
            continue
        char_width = word.bbox.width / len(text)
        for i, char in enumerate(text):
            if not char.strip():
                continue
            symbols.append(OCRSymbol(
                char=char,
                bbox=BoundingBox(
                    word.bbox.x + i * char_width,
                    word.bbox.y,
                    char_width,
                    word.bbox.height,
                ),
                confidence=word.confidence,
                id=f"{_new_id(word_index)}_{i}",
            ))
    return symbols


# ============================================================================
# Tesseract Adapter
# ============================================================================

class TesseractSymbolEngine:
    """Produces OCRSymbols from Tesseract word output."""

    def __init__(
        self,
        language: str = "eng",
        config: str = "--oem 3 --psm 6"
    ):
        try:
            import pytesseract
            self.pytesseract = pytesseract

            # Test that tesseract is installed
            pytesseract.get_tesseract_version()

        except Exception as e:
            raise ImportError(
                f"Tesseract not available: {e}\n"
                "Install with: pip install pytesseract\n"
                "Also install Tesseract: https://github.com/tesseract-ocr/tesseract"
            )

        self.language = language
        self.config = config

    def recognize_words(self, image: PixelBuffer) -> List[WordBox]:
        """Word boxes with confidences (0-100) from image_to_data."""
        samples = image.samples
        array = samples[:, :, 0] if image.channels == 1 else np.ascontiguousarray(samples[:, :, :3])

        data = self.pytesseract.image_to_data(
            array,
            lang=self.language,
            config=self.config,
            output_type=self.pytesseract.Output.DICT
        )

        words = []
        for i in range(len(data['text'])):
            text = data['text'][i].strip()
            conf = float(data['conf'][i])

            if conf < 0 or not text:  # -1 means no valid confidence
                continue

            words.append(WordBox(
                text=text,
                bbox=BoundingBox(
                    float(data['left'][i]),
                    float(data['top'][i]),
                    float(data['width'][i]),
                    float(data['height'][i]),
                ),
                confidence=conf,
            ))

        logger.debug(f"Tesseract returned {len(words)} words")
        return words

    def recognize(self, image: PixelBuffer) -> List[OCRSymbol]:
        """Per-character symbols for a whole image."""
        symbols = split_words_into_symbols(self.recognize_words(image))
        logger.info(f"Recognized {len(symbols)} characters")
        return symbols
