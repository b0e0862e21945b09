"""
Tests for the OCR collaborator interface.
"""

import pytest
import numpy as np
import sys
import types
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestOCRSymbol:
    """Test OCRSymbol parsing."""

    def test_symbol_to_dict(self):
        from glyphseg.ocr_text import OCRSymbol
        from glyphseg.pixels import BoundingBox

        symbol = OCRSymbol("a", BoundingBox(1, 2, 3, 4), 88.0, id="ocr_x_0")

        assert symbol.to_dict() == {
            "id": "ocr_x_0",
            "char": "a",
            "bbox": {"x": 1, "y": 2, "width": 3, "height": 4},
            "confidence": 88.0,
        }

    def test_symbols_from_dicts(self):
        """Both bbox key styles are accepted."""
        from glyphseg.ocr_text import symbols_from_dicts

        symbols = symbols_from_dicts([
            {"bbox": {"x": 0, "y": 0, "w": 10, "h": 12}, "char": "A", "confidence": 91},
            {"bbox": {"x": 12, "y": 0, "width": 9, "height": 12}, "char": "b", "confidence": 40.5},
        ])

        assert [s.char for s in symbols] == ["A", "b"]
        assert symbols[0].bbox.width == 10
        assert symbols[1].bbox.width == 9
        assert symbols[1].confidence == 40.5

    def test_multi_char_and_blank_skipped(self):
        """Only entries holding exactly one non-space character survive."""
        from glyphseg.ocr_text import symbols_from_dicts

        box = {"x": 0, "y": 0, "w": 5, "h": 5}
        symbols = symbols_from_dicts([
            {"bbox": box, "char": "ab", "confidence": 90},
            {"bbox": box, "char": " ", "confidence": 90},
            {"bbox": box, "char": "", "confidence": 90},
            {"bbox": box, "text": " z ", "confidence": 90},
        ])

        assert [s.char for s in symbols] == ["z"]

    def test_ids_generated_and_kept(self):
        from glyphseg.ocr_text import symbols_from_dicts

        box = {"x": 0, "y": 0, "w": 5, "h": 5}
        symbols = symbols_from_dicts([
            {"bbox": box, "char": "a", "confidence": 90, "id": "keep-me"},
            {"bbox": box, "char": "b"},
        ])

        assert symbols[0].id == "keep-me"
        assert symbols[1].id.startswith("ocr_")
        assert symbols[1].confidence == 0.0

    @pytest.mark.parametrize("entry, message", [
        ({"char": "A", "confidence": 50}, "missing 'bbox'"),
        ({"char": "A", "bbox": {"x": 0, "y": 0, "h": 5}}, "missing"),
        ({"char": "A", "bbox": [0, 0, 5, 5]}, "must be an object"),
        ({"char": "A", "bbox": {"x": None, "y": 0, "w": 5, "h": 5}}, "numbers"),
        ({"char": "A", "bbox": {"x": 0, "y": 0, "w": 5, "h": 5}, "confidence": "high"}, "Symbol 1"),
        ("A", "expected an object"),
    ])
    def test_malformed_entry_raises_value_error(self, entry, message):
        """Bad entries fail with the entry index instead of a KeyError."""
        from glyphseg.ocr_text import symbols_from_dicts

        good = {"bbox": {"x": 0, "y": 0, "w": 5, "h": 5}, "char": "a"}

        with pytest.raises(ValueError, match="Symbol 1") as excinfo:
            symbols_from_dicts([good, entry])

        assert message in str(excinfo.value)

    def test_non_string_char_skipped(self):
        from glyphseg.ocr_text import symbols_from_dicts

        symbols = symbols_from_dicts([{"bbox": {"x": 0, "y": 0, "w": 5, "h": 5}, "char": 7}])

        assert symbols == []


class TestWordSplitting:
    """Test splitting word boxes into character boxes."""

    def test_equal_widths(self):
        from glyphseg.ocr_text import WordBox, split_words_into_symbols
        from glyphseg.pixels import BoundingBox

        symbols = split_words_into_symbols([WordBox("abc", BoundingBox(10, 5, 30, 12), 77.0)])

        assert [s.char for s in symbols] == ["a", "b", "c"]
        assert [s.bbox.x for s in symbols] == [10, 20, 30]
        assert all(s.bbox.width == 10 and s.bbox.height == 12 for s in symbols)
        assert all(s.confidence == 77.0 for s in symbols)
        assert len({s.id for s in symbols}) == 3

    def test_inner_space_keeps_slot(self):
        from glyphseg.ocr_text import WordBox, split_words_into_symbols
        from glyphseg.pixels import BoundingBox

        symbols = split_words_into_symbols([WordBox("a b", BoundingBox(0, 0, 30, 10), 50.0)])

        assert [(s.char, s.bbox.x) for s in symbols] == [("a", 0), ("b", 20)]

    def test_empty_word_skipped(self):
        from glyphseg.ocr_text import WordBox, split_words_into_symbols
        from glyphseg.pixels import BoundingBox

        assert split_words_into_symbols([WordBox("  ", BoundingBox(0, 0, 10, 10), 50.0)]) == []


class TestTesseractSymbolEngine:
    """Test the Tesseract adapter."""

    @pytest.fixture
    def fake_pytesseract(self, monkeypatch):
        """Stand-in module returning canned image_to_data output."""
        module = types.ModuleType("pytesseract")
        module.Output = types.SimpleNamespace(DICT="dict")
        module.get_tesseract_version = lambda: "5.0.0"
        module.calls = []

        def image_to_data(image, lang=None, config=None, output_type=None):
            module.calls.append((image.shape, lang, config))
            return {
                "text": ["", "Hi", "x", "  "],
                "conf": [-1, 93.5, 12, 50],
                "left": [0, 4, 30, 40],
                "top": [0, 2, 2, 2],
                "width": [100, 20, 8, 5],
                "height": [50, 10, 10, 10],
            }

        module.image_to_data = image_to_data
        monkeypatch.setitem(sys.modules, "pytesseract", module)
        return module

    def test_recognize_words(self, fake_pytesseract):
        from glyphseg.ocr_text import TesseractSymbolEngine
        from glyphseg.pixels import PixelBuffer

        engine = TesseractSymbolEngine()
        words = engine.recognize_words(PixelBuffer.blank(100, 50))

        assert [w.text for w in words] == ["Hi", "x"]
        assert words[0].confidence == 93.5
        assert fake_pytesseract.calls[0] == ((50, 100), "eng", "--oem 3 --psm 6")

    def test_recognize_splits_words(self, fake_pytesseract):
        from glyphseg.ocr_text import TesseractSymbolEngine
        from glyphseg.pixels import PixelBuffer

        image = PixelBuffer.from_array(np.full((50, 100, 3), 255, dtype=np.uint8))
        symbols = TesseractSymbolEngine().recognize(image)

        assert [(s.char, s.bbox.x) for s in symbols] == [("H", 4), ("i", 14), ("x", 30)]
        assert fake_pytesseract.calls[0][0] == (50, 100, 3)

    def test_missing_tesseract_raises_import_error(self, monkeypatch):
        from glyphseg.ocr_text import TesseractSymbolEngine

        module = types.ModuleType("pytesseract")

        def no_binary():
            raise OSError("tesseract is not installed")

        module.get_tesseract_version = no_binary
        monkeypatch.setitem(sys.modules, "pytesseract", module)

        with pytest.raises(ImportError):
            TesseractSymbolEngine()

    def test_real_tesseract(self):
        """Recognize a rendered word with the installed Tesseract, if any."""
        import cv2
        from glyphseg.ocr_text import TesseractSymbolEngine
        from glyphseg.pixels import PixelBuffer

        img = np.ones((100, 400), dtype=np.uint8) * 255
        cv2.putText(img, "Hello", (20, 60), cv2.FONT_HERSHEY_SIMPLEX, 1.5, 0, 2)

        try:
            engine = TesseractSymbolEngine()
        except ImportError:
            pytest.skip("Tesseract not available")

        symbols = engine.recognize(PixelBuffer.from_array(img))

        assert all(len(s.char) == 1 for s in symbols)
        assert all(0 <= s.confidence <= 100 for s in symbols)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
