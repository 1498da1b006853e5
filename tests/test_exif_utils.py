"""Tests for EXIF reading and geotag writing."""
from datetime import datetime, timezone

import pytest

from conftest import T0, make_photo
from sequence_manager.exif_utils import decimal_to_dms, embed_geotag, extract_camera_model, extract_capture_metadata


def test_decimal_to_dms():
    assert decimal_to_dms(-7.25) == ((7, 1), (15, 1), (0, 10000))


def test_capture_time_from_date_time_original(tmp_path):
    path = make_photo(tmp_path / "a.jpg", taken=datetime(2020, 2, 3, 4, 5, 6, tzinfo=timezone.utc))
    metadata = extract_capture_metadata(path)
    assert metadata["captured_at"] == datetime(2020, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
    assert "latitude" not in metadata


def test_embed_geotag_round_trip_with_southern_hemisphere(tmp_path):
    path = make_photo(tmp_path / "a.jpg", taken=T0)
    embed_geotag(path, -33.8688, 151.2093, -12.5, T0, heading=271.5)
    metadata = extract_capture_metadata(path)
    assert metadata["latitude"] == pytest.approx(-33.8688, abs=1e-6)
    assert metadata["longitude"] == pytest.approx(151.2093, abs=1e-6)
    assert metadata["altitude"] == pytest.approx(-12.5)
    assert metadata["captured_at"] == T0
    assert extract_camera_model(path) == "Test Cam"


def test_png_has_no_exif(tmp_path):
    path = make_photo(tmp_path / "a.png")
    assert extract_camera_model(path) is None
    assert "captured_at" in extract_capture_metadata(path)
