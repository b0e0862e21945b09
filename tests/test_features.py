"""
Tests for glyph feature extraction.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestFeatureFamilies:
    """Test the individual feature families."""

    @pytest.fixture
    def glyph(self):
        """A 6x6 ink block centred in a 10x10 crop."""
        from glyphseg.pixels import PixelBuffer

        img = np.full((10, 10), 255, dtype=np.uint8)
        img[2:8, 2:8] = 0
        return PixelBuffer.from_array(img)

    def test_hog_length(self):
        from glyphseg.features import hog_like
        from glyphseg.pixels import PixelBuffer

        buffer = PixelBuffer.blank(20, 9)

        # ceil(20/8) * ceil(9/8) cells of 9 bins
        assert len(hog_like(buffer, cell_size=8, bins=9)) == 3 * 2 * 9

    def test_hog_uniform_is_zero(self):
        from glyphseg.features import hog_like
        from glyphseg.pixels import PixelBuffer

        assert not hog_like(PixelBuffer.blank(16, 16)).any()

    def test_hog_vertical_edge(self):
        """A dark-to-light step along x puts all weight in the 0-degree bin."""
        from glyphseg.features import hog_like
        from glyphseg.pixels import PixelBuffer

        img = np.zeros((8, 8), dtype=np.uint8)
        img[:, 4:] = 255

        histogram = hog_like(PixelBuffer.from_array(img), cell_size=8, bins=9)

        # floor((0 + 180) / 40) = 4
        assert histogram[4] == pytest.approx(1.0)
        assert histogram.sum() == pytest.approx(1.0)

    def test_hog_cells_normalized(self):
        from glyphseg.features import hog_like
        from glyphseg.pixels import PixelBuffer

        img = np.random.default_rng(0).integers(0, 256, (24, 24)).astype(np.uint8)
        cells = hog_like(PixelBuffer.from_array(img)).reshape(-1, 9)

        np.testing.assert_allclose(cells.sum(axis=1), 1.0)

    def test_projection_features(self, glyph):
        from glyphseg.features import projection_features

        features = projection_features(glyph)

        assert len(features) == 20
        assert features.max() == 1.0
        np.testing.assert_array_equal(features[:2], [0, 0])
        np.testing.assert_array_equal(features[2:8], 1.0)

    def test_projection_features_blank(self):
        from glyphseg.features import projection_features
        from glyphseg.pixels import PixelBuffer

        features = projection_features(PixelBuffer.blank(4, 3))

        np.testing.assert_array_equal(features, np.zeros(7))

    def test_contour_features(self, glyph):
        from glyphseg.features import contour_features

        boundary, aspect, ratio, rel_width, rel_height = contour_features(glyph)

        # Ring of the 6x6 block: 36 - 16 pixels
        assert boundary == pytest.approx(0.20)
        assert aspect == pytest.approx(1.0)
        assert ratio == pytest.approx(0.36)
        assert rel_width == pytest.approx(0.6)
        assert rel_height == pytest.approx(0.6)

    def test_contour_features_blank(self):
        from glyphseg.features import contour_features
        from glyphseg.pixels import PixelBuffer

        np.testing.assert_array_equal(
            contour_features(PixelBuffer.blank(5, 5)),
            [0.0, 1.0, 0.0, 0.0, 0.0]
        )


class TestFeatureExtractor:
    """Test the combined extractor."""

    def test_default_arity(self):
        from glyphseg.features import FeatureExtractor

        # 16 cells * 9 bins + 32 rows + 32 columns + 5 contour values
        assert FeatureExtractor().arity == 144 + 64 + 5

    def test_fixed_arity_across_sizes(self):
        """Crops of any size give vectors of the same length."""
        from glyphseg.features import FeatureExtractor
        from glyphseg.pixels import PixelBuffer

        extractor = FeatureExtractor()
        rng = np.random.default_rng(2)

        for width, height in [(7, 10), (50, 40), (32, 32), (1, 1)]:
            crop = PixelBuffer.from_array(rng.integers(0, 256, (height, width)))
            assert len(extractor.extract(crop)) == extractor.arity

    def test_deterministic(self):
        from glyphseg.features import FeatureExtractor
        from glyphseg.pixels import PixelBuffer

        crop = PixelBuffer.from_array(np.random.default_rng(5).integers(0, 256, (20, 14)))
        extractor = FeatureExtractor()

        np.testing.assert_array_equal(extractor.extract(crop), extractor.extract(crop))

    def test_color_matches_gray(self):
        from glyphseg.features import all_features
        from glyphseg.pixels import PixelBuffer

        # Levels away from the ink threshold, where colour luma may differ in the last bit
        gray = np.random.default_rng(4).choice([0, 40, 90, 170, 220, 255], (32, 32)).astype(np.uint8)
        rgb = np.repeat(gray[:, :, np.newaxis], 3, axis=2)

        np.testing.assert_allclose(
            all_features(PixelBuffer.from_array(gray)),
            all_features(PixelBuffer.from_array(rgb))
        )

    def test_native_size(self):
        """Without a sample size the vector depends on the crop size."""
        from glyphseg.config import FeatureConfig
        from glyphseg.features import FeatureExtractor
        from glyphseg.pixels import PixelBuffer

        extractor = FeatureExtractor(FeatureConfig(sample_size=None))
        vector = extractor.extract(PixelBuffer.blank(8, 8))

        assert extractor.arity is None
        assert len(vector) == 9 + 16 + 5

    def test_extract_batch(self):
        from glyphseg.features import FeatureExtractor
        from glyphseg.pixels import PixelBuffer

        extractor = FeatureExtractor()

        batch = extractor.extract_batch([PixelBuffer.blank(5, 5), PixelBuffer.blank(9, 3)])

        assert batch.shape == (2, extractor.arity)
        assert extractor.extract_batch([]).shape == (0, extractor.arity)

    def test_empty_buffer_rejected(self):
        from glyphseg.exceptions import EmptyInput
        from glyphseg.features import FeatureExtractor
        from glyphseg.pixels import PixelBuffer

        with pytest.raises(EmptyInput):
            FeatureExtractor().extract(PixelBuffer.from_array(np.zeros((0, 4), dtype=np.uint8)))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
