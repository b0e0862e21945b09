#!/usr/bin/env python
"""
Generate a synthetic glyph sheet for trying out the glyph segmentation engine.

This script creates:
- A page image with rows of printed characters
- A candidates JSON in the recognizer format ({bbox, char, confidence}),
  with loose boxes and a few deliberately wrong low-confidence guesses
- A training JSON exported from a handful of labelled crops

Usage:
    python examples/generate_samples.py
    glyphseg --input examples/sample_pages/glyph_sheet.png \\
             --candidates examples/sample_pages/glyph_sheet.json \\
             --training examples/sample_pages/training.json \\
             --output refined.json
"""

import json
import random
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

ROWS = [
    "OOCCOOCCOO",
    "IILLIILLII",
    "EEFFEEFFEE",
]
CELL_W, CELL_H = 40, 56
MARGIN = 30

# Characters a confused recognizer might report instead
CONFUSIONS = {"O": "Q", "C": "G", "I": "l", "L": "I", "E": "F", "F": "E"}


def create_glyph_sheet():
    """Render ROWS on a white page; return the image and one box per glyph."""
    import cv2

    height = MARGIN * 2 + CELL_H * len(ROWS)
    width = MARGIN * 2 + CELL_W * max(len(r) for r in ROWS)
    img = np.ones((height, width, 3), dtype=np.uint8) * 255

    glyphs = []
    for row_index, row in enumerate(ROWS):
        for col_index, char in enumerate(row):
            (text_w, text_h), baseline = cv2.getTextSize(char, cv2.FONT_HERSHEY_SIMPLEX, 1.2, 2)
            x = MARGIN + col_index * CELL_W + (CELL_W - text_w) // 2
            y = MARGIN + row_index * CELL_H + (CELL_H + text_h) // 2
            # Anti-aliased strokes; a pure two-level glyph has no ink below its Otsu level
            cv2.putText(img, char, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 1.2, (0, 0, 0), 2, cv2.LINE_AA)
            glyphs.append((char, (x, y - text_h, text_w, text_h + baseline)))

    return img, glyphs


def create_candidates(glyphs, seed: int = 0) -> list:
    """Loosen every box and corrupt roughly one guess in six."""
    rng = random.Random(seed)
    candidates = []
    for index, (char, (x, y, w, h)) in enumerate(glyphs):
        pad = rng.randint(2, 6)
        guess, confidence = char, rng.uniform(70, 98)
        if rng.random() < 0.17:
            guess, confidence = CONFUSIONS.get(char, char), rng.uniform(15, 45)
        candidates.append({
            "id": f"sample_{index}",
            "bbox": {"x": x - pad, "y": y - pad, "w": w + 2 * pad, "h": h + 2 * pad},
            "char": guess,
            "confidence": round(confidence, 1),
            "expected": char,
        })
    return candidates


def create_training_data(image, glyphs) -> str:
    """Export features of the first glyph of each character."""
    from glyphseg.engine import GlyphEngine
    from glyphseg.pixels import PixelBuffer

    buffer = PixelBuffer.from_array(image[:, :, ::-1])
    engine = GlyphEngine()
    seen = set()
    for char, (x, y, w, h) in glyphs:
        if char in seen:
            continue
        seen.add(char)
        engine.add_training_sample(buffer.crop(x, y, w, h), char)
    return engine.export_training_data()


def main():
    import cv2

    samples_dir = Path(__file__).parent / "sample_pages"
    samples_dir.mkdir(exist_ok=True)

    img, glyphs = create_glyph_sheet()

    img_path = samples_dir / "glyph_sheet.png"
    cv2.imwrite(str(img_path), img)
    print(f"Created: {img_path}")

    candidates = create_candidates(glyphs)
    candidates_path = samples_dir / "glyph_sheet.json"
    with open(candidates_path, 'w') as f:
        json.dump(candidates, f, indent=2)
    wrong = sum(1 for c in candidates if c["char"] != c["expected"])
    print(f"Created: {candidates_path} ({len(candidates)} candidates, {wrong} wrong guesses)")

    training_path = samples_dir / "training.json"
    training_path.write_text(create_training_data(img, glyphs), encoding='utf-8')
    print(f"Created: {training_path}")

    print("\nSample generation complete!")


if __name__ == "__main__":
    main()
