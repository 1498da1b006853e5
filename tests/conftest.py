"""Shared fixtures: small Pillow-made photos, logos and tracks."""
from datetime import datetime, timezone
import os

import piexif
import pytest
from PIL import Image

from sequence_manager.config import AppConfig
from sequence_manager.exif_utils import build_gps_ifd
from sequence_manager.models import TrackPoint

T0 = datetime(2021, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_photo(
    path,
    size=(64, 48),
    color=(40, 90, 160),
    taken: datetime | None = None,
    gps: tuple[float, float, float] | None = None,
):
    """Write a JPEG (or PNG) with an optional DateTimeOriginal and GPS block."""
    img = Image.new("RGB", size, color)
    path = str(path)
    if path.lower().endswith(".png"):
        img.save(path)
        return path
    exif = {"0th": {piexif.ImageIFD.Model: b"Test Cam"}, "Exif": {}, "GPS": {}, "1st": {}, "thumbnail": None}
    if taken is not None:
        exif["Exif"][piexif.ExifIFD.DateTimeOriginal] = taken.strftime("%Y:%m:%d %H:%M:%S").encode("ascii")
    if gps is not None:
        exif["GPS"] = build_gps_ifd(gps[0], gps[1], gps[2], taken or T0)
    img.save(path, "JPEG", quality=90, exif=piexif.dump(exif))
    return path


def make_logo(path, size=(40, 10), color=(255, 0, 0, 255)):
    Image.new("RGBA", size, color).save(str(path))
    return str(path)


@pytest.fixture
def two_point_track():
    return [
        TrackPoint(T0, 46.0, 7.0, 500.0),
        TrackPoint(datetime(2021, 5, 1, 12, 0, 10, tzinfo=timezone.utc), 46.001, 7.001, 510.0),
    ]


@pytest.fixture
def photo_dir(tmp_path):
    """Three JPEGs without GPS, five seconds apart."""
    folder = tmp_path / "photos"
    folder.mkdir()
    for index in range(3):
        make_photo(folder / f"img_{index}.jpg", taken=T0.replace(second=index * 5))
    return str(folder)


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(output_dir=str(tmp_path / "out"), max_workers=2)


@pytest.fixture
def gpx_file(tmp_path):
    path = tmp_path / "track.gpx"
    path.write_text(
        """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="46.0" lon="7.0"><ele>500</ele><time>2021-05-01T12:00:00Z</time></trkpt>
    <trkpt lat="46.001" lon="7.001"><ele>510</ele><time>2021-05-01T12:00:10Z</time></trkpt>
  </trkseg></trk>
</gpx>
""",
        encoding="utf-8",
    )
    return str(path)


def list_files(folder):
    return sorted(name for name in os.listdir(folder))
