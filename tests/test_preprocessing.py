"""
Tests for the pixel model and binarization.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestPixelBuffer:
    """Test the PixelBuffer data model."""

    def test_from_gray_array(self):
        """2-D arrays become single-channel buffers."""
        from glyphseg.pixels import PixelBuffer

        buffer = PixelBuffer.from_array(np.zeros((4, 6), dtype=np.uint8))

        assert buffer.shape == (4, 6)
        assert buffer.channels == 1
        assert buffer.samples.size == buffer.width * buffer.height * buffer.channels

    def test_samples_are_read_only(self):
        """Buffers cannot be mutated in place."""
        from glyphseg.pixels import PixelBuffer

        source = np.full((3, 3, 3), 200, dtype=np.uint8)
        buffer = PixelBuffer.from_array(source)

        with pytest.raises(ValueError):
            buffer.samples[0, 0, 0] = 0

        # Changes to the source array do not leak in
        source[0, 0, 0] = 0
        assert buffer.samples[0, 0, 0] == 200

    def test_rejects_bad_channel_count(self):
        from glyphseg.pixels import PixelBuffer

        with pytest.raises(ValueError):
            PixelBuffer(np.zeros((2, 2, 2), dtype=np.uint8))

    def test_luma_weights(self):
        """Colour luma uses 0.299R + 0.587G + 0.114B."""
        from glyphseg.pixels import PixelBuffer

        rgb = np.zeros((1, 3, 3), dtype=np.uint8)
        rgb[0, 0] = [255, 0, 0]
        rgb[0, 1] = [0, 255, 0]
        rgb[0, 2] = [0, 0, 255]
        luma = PixelBuffer.from_array(rgb).luma()

        np.testing.assert_allclose(luma[0], [0.299 * 255, 0.587 * 255, 0.114 * 255])

    def test_rgba_alpha_ignored(self):
        from glyphseg.pixels import PixelBuffer

        rgba = np.zeros((2, 2, 4), dtype=np.uint8)
        rgba[..., :3] = 100
        rgba[0, 0, 3] = 0
        rgba[1, 1, 3] = 255

        np.testing.assert_allclose(PixelBuffer.from_array(rgba).luma(), 100.0)

    def test_crop_clips_to_buffer(self):
        from glyphseg.pixels import PixelBuffer

        buffer = PixelBuffer.blank(10, 8)
        crop = buffer.crop(-3, 5, 6, 10)

        assert crop.shape == (3, 3)

    def test_crop_outside_raises(self):
        from glyphseg.exceptions import RenderTargetUnavailable
        from glyphseg.pixels import PixelBuffer

        buffer = PixelBuffer.blank(10, 8)

        with pytest.raises(RenderTargetUnavailable):
            buffer.crop(20, 20, 5, 5)
        with pytest.raises(RenderTargetUnavailable):
            buffer.crop(2, 2, 0, 5)

    def test_resize(self):
        from glyphseg.pixels import PixelBuffer

        buffer = PixelBuffer.from_array(np.random.default_rng(0).integers(0, 255, (13, 7)))
        resized = buffer.resize(32, 32)

        assert resized.shape == (32, 32)
        assert resized.channels == 1

    def test_equality(self):
        from glyphseg.pixels import PixelBuffer

        assert PixelBuffer.blank(3, 3) == PixelBuffer.blank(3, 3)
        assert PixelBuffer.blank(3, 3) != PixelBuffer.blank(3, 3, value=0)


class TestGeometry:
    """Test BoundingBox and Segment."""

    def test_bbox_from_dict_short_keys(self):
        from glyphseg.pixels import BoundingBox

        box = BoundingBox.from_dict({"x": 1, "y": 2, "w": 3, "h": 4})

        assert box.to_xywh() == (1.0, 2.0, 3.0, 4.0)
        assert box.x2 == 4.0
        assert box.y2 == 6.0
        assert box.area == 12.0

    def test_bbox_from_dict_long_keys(self):
        from glyphseg.pixels import BoundingBox

        box = BoundingBox.from_dict({"x": 0, "y": 0, "width": 5, "height": 6})

        assert box.to_dict() == {"x": 0.0, "y": 0.0, "width": 5.0, "height": 6.0}

    def test_pixel_region_floor_ceil(self):
        from glyphseg.pixels import BoundingBox

        assert BoundingBox(1.5, 2.2, 3.1, 4.0).pixel_region() == (1, 2, 4, 4)

    def test_segment_requires_positive_size(self):
        from glyphseg.pixels import PixelBuffer, Segment

        with pytest.raises(ValueError):
            Segment(0, 0, 0, 4, PixelBuffer.blank(1, 4))

    def test_segment_ink_ratio(self):
        from glyphseg.pixels import PixelBuffer, Segment

        bitmap = np.full((4, 4), 255, dtype=np.uint8)
        bitmap[:2, :2] = 0
        segment = Segment(3, 4, 4, 4, PixelBuffer.from_array(bitmap))

        assert segment.ink_ratio == pytest.approx(0.25)
        assert segment.to_bbox(10, 20).to_xywh() == (13, 24, 4, 4)


class TestBinarization:
    """Test fixed and Otsu binarization."""

    @pytest.fixture
    def bimodal_image(self):
        """Dark peak around 50, light peak around 200."""
        rng = np.random.default_rng(7)
        dark = rng.normal(50, 6, 400)
        light = rng.normal(200, 6, 600)
        values = np.clip(np.concatenate([dark, light]), 0, 255)
        rng.shuffle(values)
        return values.reshape(25, 40).astype(np.uint8)

    def test_binarize_two_levels(self, bimodal_image):
        """Output holds only 0 and 255 in a single channel."""
        from glyphseg.images import binarize
        from glyphseg.pixels import PixelBuffer

        result = binarize(PixelBuffer.from_array(bimodal_image))

        assert result.channels == 1
        assert set(np.unique(result.samples)) <= {0, 255}

    def test_binarize_threshold_is_strict(self):
        """Luma strictly below the threshold is ink."""
        from glyphseg.images import binarize
        from glyphseg.pixels import PixelBuffer

        image = PixelBuffer.from_array(np.array([[127, 128, 129]], dtype=np.uint8))
        result = binarize(image, 128)

        np.testing.assert_array_equal(result.samples[0, :, 0], [0, 255, 255])

    def test_binarize_color_matches_gray(self):
        """A gray-valued RGB image binarizes like its gray version."""
        from glyphseg.images import binarize
        from glyphseg.pixels import PixelBuffer

        gray = np.random.default_rng(1).choice([0, 60, 127, 129, 200, 255], (10, 10)).astype(np.uint8)
        rgb = np.repeat(gray[:, :, np.newaxis], 3, axis=2)

        assert binarize(PixelBuffer.from_array(gray)) == binarize(PixelBuffer.from_array(rgb))

    def test_otsu_level_between_peaks(self, bimodal_image):
        """Otsu on a bimodal histogram lands between the two peaks."""
        from glyphseg.images import compute_otsu_level
        from glyphseg.pixels import PixelBuffer

        level = compute_otsu_level(PixelBuffer.from_array(bimodal_image))

        assert 50 < level < 200

    def test_otsu_separates_peaks(self, bimodal_image):
        """Ink is everything strictly below the level, all from the dark peak."""
        from glyphseg.images import compute_otsu_level, foreground_mask, otsu_threshold
        from glyphseg.pixels import PixelBuffer

        buffer = PixelBuffer.from_array(bimodal_image)
        level = compute_otsu_level(buffer)
        mask = foreground_mask(otsu_threshold(buffer))

        np.testing.assert_array_equal(mask, bimodal_image < level)
        assert not (mask & (bimodal_image >= 125)).any()
        # Only the top bin of the dark peak is lost to the paper side
        assert 380 <= mask.sum() < 400

    def test_otsu_two_level_image(self):
        """On a clean two-level image the level bin is the ink and becomes paper."""
        from glyphseg.images import compute_otsu_level, ink_ratio, otsu_threshold
        from glyphseg.pixels import PixelBuffer

        image = np.full((30, 30), 255, dtype=np.uint8)
        image[5:25, 9:21] = 0
        buffer = PixelBuffer.from_array(image)

        # Every split between the peaks ties; the lowest one wins
        assert compute_otsu_level(buffer) == 0
        assert ink_ratio(otsu_threshold(buffer)) == 0.0

    def test_otsu_soft_edges_keep_core(self):
        """A dark halo tone takes the level bin, leaving the glyph core as ink."""
        from glyphseg.images import compute_otsu_level, foreground_mask, otsu_threshold
        from glyphseg.pixels import PixelBuffer

        image = np.full((30, 30), 255, dtype=np.uint8)
        image[4:26, 8:22] = 30
        image[5:25, 9:21] = 0
        buffer = PixelBuffer.from_array(image)

        assert compute_otsu_level(buffer) == 30
        np.testing.assert_array_equal(foreground_mask(otsu_threshold(buffer)), image == 0)

    def test_otsu_single_class_defaults(self):
        """A uniform image falls back to the default threshold."""
        from glyphseg.images import DEFAULT_THRESHOLD, compute_otsu_level, ink_ratio, otsu_threshold
        from glyphseg.pixels import PixelBuffer

        white = PixelBuffer.blank(8, 8)

        assert compute_otsu_level(white) == DEFAULT_THRESHOLD
        assert ink_ratio(otsu_threshold(white)) == 0.0

    def test_ink_ratio(self):
        from glyphseg.images import ink_ratio
        from glyphseg.pixels import PixelBuffer

        image = np.full((4, 5), 255, dtype=np.uint8)
        image[0, :] = 0

        assert ink_ratio(PixelBuffer.from_array(image)) == pytest.approx(0.2)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
