"""Tests for nadir compositing and the preview sweep."""
import os
from unittest.mock import patch

import pytest
from PIL import Image

from conftest import make_logo, make_photo
from sequence_manager.errors import CompositeError
from sequence_manager.nadir import composite, composite_file, preview_fractions, preview_sweep
from sequence_manager import nadir


class TestComposite:
    """Tests for the single-image composite."""

    def test_dimensions_unchanged_and_band_painted(self):
        base = Image.new("RGB", (100, 80), (0, 0, 255))
        logo = Image.new("RGBA", (10, 10), (255, 0, 0, 255))

        output = composite(base, logo, 0.25)

        assert output.size == (100, 80)
        # Band is round(80 * 0.25) = 20 rows.
        assert output.getpixel((50, 79)) == (255, 0, 0)
        assert output.getpixel((0, 60)) == (255, 0, 0)
        assert output.getpixel((99, 60)) == (255, 0, 0)
        assert output.getpixel((50, 59)) == (0, 0, 255)
        assert output.getpixel((50, 0)) == (0, 0, 255)

    def test_base_is_not_modified(self):
        base = Image.new("RGB", (20, 20), (0, 0, 255))
        composite(base, Image.new("RGBA", (5, 5), (255, 0, 0, 255)), 0.5)
        assert base.getpixel((10, 19)) == (0, 0, 255)

    def test_transparent_logo_keeps_base(self):
        base = Image.new("RGB", (20, 20), (0, 255, 0))
        output = composite(base, Image.new("RGBA", (5, 5), (255, 0, 0, 0)), 0.5)
        assert output.getpixel((10, 19)) == (0, 255, 0)

    def test_band_height_rounds_half_up(self):
        base = Image.new("RGB", (10, 10), (0, 0, 0))
        output = composite(base, Image.new("RGBA", (1, 1), (255, 255, 255, 255)), 0.25)
        # 10 * 0.25 = 2.5 rows, rounded up to 3.
        assert output.getpixel((5, 7)) == (255, 255, 255)
        assert output.getpixel((5, 6)) == (0, 0, 0)

    def test_frame_size_sets_band_geometry(self):
        base = Image.new("RGB", (100, 80), (0, 0, 255))
        logo = Image.new("RGBA", (10, 10), (255, 0, 0, 255))

        output = composite(base, logo, 0.5, frame_size=(50, 40))

        assert output.size == (100, 80)
        # Band is 50 wide and round(40 * 0.5) = 20 rows, ending on row 39.
        assert output.getpixel((25, 30)) == (255, 0, 0)
        assert output.getpixel((25, 19)) == (0, 0, 255)
        assert output.getpixel((75, 30)) == (0, 0, 255)
        assert output.getpixel((25, 79)) == (0, 0, 255)

    @pytest.mark.parametrize("fraction", [0, -0.1, 1.5])
    def test_fraction_out_of_range(self, fraction):
        with pytest.raises(CompositeError):
            composite(Image.new("RGB", (10, 10)), Image.new("RGBA", (2, 2)), fraction)

    def test_fraction_too_small_for_image(self):
        with pytest.raises(CompositeError, match="no room"):
            composite(Image.new("RGB", (10, 10)), Image.new("RGBA", (2, 2)), 0.01)

    def test_composite_file_writes_jpeg(self, tmp_path):
        src = make_photo(tmp_path / "src.jpg", size=(60, 40))
        logo = Image.new("RGBA", (6, 2), (255, 255, 255, 255))
        size = composite_file(src, logo, 0.5, str(tmp_path / "out" / "dest.jpg"))
        assert size == (60, 40)
        with Image.open(tmp_path / "out" / "dest.jpg") as img:
            assert img.format == "JPEG"
            assert img.size == (60, 40)


class TestPreviewSweep:
    """Tests for the preview sweep."""

    def test_fractions_cover_inclusive_range(self):
        fractions = preview_fractions(10, 25)
        assert len(fractions) == 16
        assert fractions[0] == 0.1
        assert fractions[-1] == 0.25

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            preview_fractions(30, 20)

    def test_sixteen_variants(self, tmp_path):
        logo = make_logo(tmp_path / "logo.png")
        image = make_photo(tmp_path / "frame.jpg", size=(80, 60))
        out_dir = tmp_path / "scratch"

        result = preview_sweep(logo, image, 80, 60, str(out_dir), max_workers=3)

        assert sorted(result["items"], key=float) == [str(p / 100) for p in range(10, 26)]
        assert os.path.isfile(result["logo_file"])
        for path in result["items"].values():
            with Image.open(path) as img:
                assert img.size == (80, 60)
        assert len(os.listdir(out_dir)) == 17

    def test_keeps_native_size_without_dimensions(self, tmp_path):
        logo = make_logo(tmp_path / "logo.png")
        image = make_photo(tmp_path / "frame.jpg", size=(50, 20))
        result = preview_sweep(logo, image, None, None, str(tmp_path / "scratch"), min_percent=20, max_percent=20)
        with Image.open(result["items"]["0.2"]) as img:
            assert img.size == (50, 20)

    def test_failure_leaves_nothing_behind(self, tmp_path):
        logo = make_logo(tmp_path / "logo.png")
        image = make_photo(tmp_path / "frame.jpg", size=(80, 60))
        out_dir = tmp_path / "scratch"
        real_composite = nadir.composite

        def flaky(base, logo_img, fraction, **kwargs):
            if fraction == 0.15:
                raise CompositeError("boom")
            return real_composite(base, logo_img, fraction, **kwargs)

        with patch.object(nadir, "composite", side_effect=flaky):
            with pytest.raises(CompositeError, match="0.15"):
                preview_sweep(logo, image, None, None, str(out_dir), max_workers=2)

        assert os.listdir(out_dir) == []

    def test_dimensions_do_not_resize_image(self, tmp_path):
        logo = make_logo(tmp_path / "logo.png")
        image = make_photo(tmp_path / "frame.jpg", size=(80, 60))
        result = preview_sweep(
            logo, image, 40, 30, str(tmp_path / "scratch"), min_percent=20, max_percent=20
        )
        with Image.open(result["items"]["0.2"]) as img:
            assert img.size == (80, 60)
            # Band is 40 wide and round(30 * 0.2) = 6 rows above row 30.
            assert img.getpixel((20, 27)) == (255, 0, 0)
            assert img.getpixel((60, 27)) != (255, 0, 0)

    def test_partial_write_removed_on_failure(self, tmp_path):
        logo = make_logo(tmp_path / "logo.png")
        image = make_photo(tmp_path / "frame.jpg", size=(80, 60))
        out_dir = tmp_path / "scratch"
        real_save = nadir.save_image
        calls = []

        def truncating(img, path, quality=95):
            calls.append(path)
            if len(calls) == 3:
                with open(path, "wb") as handle:
                    handle.write(b"partial")
                raise CompositeError("disk full", path)
            return real_save(img, path, quality)

        # Call 1 writes the prepared logo, call 3 is the second variant.
        with patch.object(nadir, "save_image", side_effect=truncating):
            with pytest.raises(CompositeError, match="disk full"):
                preview_sweep(logo, image, None, None, str(out_dir), max_workers=1)

        assert os.listdir(out_dir) == []

    def test_unreadable_logo(self, tmp_path):
        bad = tmp_path / "logo.png"
        bad.write_bytes(b"not an image")
        image = make_photo(tmp_path / "frame.jpg")
        with pytest.raises(CompositeError):
            preview_sweep(str(bad), image, None, None, str(tmp_path / "scratch"))
