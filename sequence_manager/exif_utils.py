"""EXIF metadata helpers: capture time and GPS in, geotags out."""
from datetime import datetime, timedelta, timezone
import os
from typing import Any

import piexif

from .common import decode_exif_text, parse_exif_date, parse_exif_datetime, prune_none

EXIF_TAGS_BY_NAME = {
    ifd_name: {tag_info["name"]: tag_id for tag_id, tag_info in piexif.TAGS[ifd_name].items()}
    for ifd_name in piexif.TAGS
}

EMPTY_EXIF: dict[str, Any] = {"0th": {}, "Exif": {}, "GPS": {}, "1st": {}, "Interop": {}, "thumbnail": None}


def load_exif(img_path: str) -> dict[str, Any]:
    """Load the EXIF dict of an image, or an empty structure when absent."""
    try:
        return piexif.load(img_path)
    except (piexif.InvalidImageDataError, ValueError, OSError, KeyError):
        return {key: ({} if key != "thumbnail" else None) for key in EMPTY_EXIF}


def exif_tag_value(exif_dict: dict[str, dict[int, Any]], ifd_name: str, tag_name: str) -> Any:
    """Return an EXIF tag value by name."""
    tag_id = EXIF_TAGS_BY_NAME.get(ifd_name, {}).get(tag_name)
    if tag_id is None:
        return None
    return (exif_dict.get(ifd_name) or {}).get(tag_id)


def rational_to_float(value: Any) -> float | None:
    """Convert a rational or numeric EXIF value to float."""
    if isinstance(value, tuple) and len(value) == 2:
        numerator, denominator = value
        if denominator == 0:
            return None
        return numerator / denominator
    if isinstance(value, (int, float)):
        return float(value)
    return None


def gps_to_degrees(value: Any, ref: Any) -> float | None:
    """Convert EXIF GPS coordinates to signed degrees."""
    if not value or not ref:
        return None
    try:
        degrees = rational_to_float(value[0])
        minutes = rational_to_float(value[1])
        seconds = rational_to_float(value[2])
    except (IndexError, TypeError):
        return None
    if degrees is None or minutes is None or seconds is None:
        return None
    coord = degrees + minutes / 60.0 + seconds / 3600.0
    ref_text = decode_exif_text(ref)
    if ref_text and ref_text.upper() in ("S", "W"):
        coord *= -1.0
    return coord


def gps_datetime_utc(gps_date: Any, gps_time: Any) -> datetime | None:
    """Build a UTC datetime from GPS date/time EXIF tags."""
    date_code = parse_exif_date(gps_date)
    if not date_code or not isinstance(gps_time, (list, tuple)) or len(gps_time) != 3:
        return None
    hours = rational_to_float(gps_time[0])
    minutes = rational_to_float(gps_time[1])
    seconds = rational_to_float(gps_time[2])
    if hours is None or minutes is None or seconds is None:
        return None
    try:
        base = datetime.strptime(date_code, "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return base + timedelta(hours=hours, minutes=minutes, seconds=seconds)


def extract_capture_metadata(img_path: str) -> dict[str, Any]:
    """Return capture time and native GPS of an image.

    Capture time prefers the GPS date/time stamp, then DateTimeOriginal,
    then the file modification time. GPS keys are omitted when absent.
    """
    exif_dict = load_exif(img_path)
    altitude = rational_to_float(exif_tag_value(exif_dict, "GPS", "GPSAltitude"))
    altitude_ref = exif_tag_value(exif_dict, "GPS", "GPSAltitudeRef")
    if isinstance(altitude_ref, (bytes, tuple)):
        altitude_ref = altitude_ref[0] if altitude_ref else None
    if altitude is not None and altitude_ref == 1:
        altitude = -altitude
    captured_at = gps_datetime_utc(
        exif_tag_value(exif_dict, "GPS", "GPSDateStamp"),
        exif_tag_value(exif_dict, "GPS", "GPSTimeStamp"),
    ) or parse_exif_datetime(
        exif_tag_value(exif_dict, "Exif", "DateTimeOriginal")
        or exif_tag_value(exif_dict, "Exif", "DateTimeDigitized")
        or exif_tag_value(exif_dict, "0th", "DateTime")
    )
    if captured_at is None:
        captured_at = datetime.fromtimestamp(os.path.getmtime(img_path), tz=timezone.utc)
    derived = {
        "captured_at": captured_at,
        "latitude": gps_to_degrees(
            exif_tag_value(exif_dict, "GPS", "GPSLatitude"),
            exif_tag_value(exif_dict, "GPS", "GPSLatitudeRef"),
        ),
        "longitude": gps_to_degrees(
            exif_tag_value(exif_dict, "GPS", "GPSLongitude"),
            exif_tag_value(exif_dict, "GPS", "GPSLongitudeRef"),
        ),
        "altitude": altitude,
    }
    return prune_none(derived)


def extract_camera_model(img_path: str) -> str | None:
    """Return the camera model from EXIF metadata."""
    try:
        exif_dict = piexif.load(img_path)
    except (piexif.InvalidImageDataError, ValueError, OSError):
        return None
    return decode_exif_text(exif_tag_value(exif_dict, "0th", "Model"))


def decimal_to_dms(decimal_degrees: float) -> tuple[tuple[int, int], tuple[int, int], tuple[int, int]]:
    """Convert decimal degrees to EXIF (deg, min, sec*10000) rationals."""
    decimal_degrees = abs(decimal_degrees)
    degrees = int(decimal_degrees)
    minutes_float = (decimal_degrees - degrees) * 60
    minutes = int(minutes_float)
    seconds = (minutes_float - minutes) * 60
    return ((degrees, 1), (minutes, 1), (int(round(seconds * 10000)), 10000))


def build_gps_ifd(
    latitude: float,
    longitude: float,
    altitude: float,
    captured_at: datetime,
    heading: float | None = None,
) -> dict[int, Any]:
    """Build a GPS IFD for a position, capture time and optional heading."""
    utc = captured_at.astimezone(timezone.utc)
    gps_ifd: dict[int, Any] = {
        piexif.GPSIFD.GPSVersionID: (2, 3, 0, 0),
        piexif.GPSIFD.GPSLatitudeRef: b"N" if latitude >= 0 else b"S",
        piexif.GPSIFD.GPSLatitude: decimal_to_dms(latitude),
        piexif.GPSIFD.GPSLongitudeRef: b"E" if longitude >= 0 else b"W",
        piexif.GPSIFD.GPSLongitude: decimal_to_dms(longitude),
        piexif.GPSIFD.GPSAltitudeRef: 0 if altitude >= 0 else 1,
        piexif.GPSIFD.GPSAltitude: (int(round(abs(altitude) * 100)), 100),
        piexif.GPSIFD.GPSDateStamp: utc.strftime("%Y:%m:%d").encode("ascii"),
        piexif.GPSIFD.GPSTimeStamp: (
            (utc.hour, 1),
            (utc.minute, 1),
            (int(round((utc.second + utc.microsecond / 1e6) * 1000)), 1000),
        ),
    }
    if heading is not None:
        gps_ifd[piexif.GPSIFD.GPSImgDirectionRef] = b"T"
        gps_ifd[piexif.GPSIFD.GPSImgDirection] = (int(round(heading * 100)), 100)
    return gps_ifd


def embed_geotag(
    jpeg_path: str,
    latitude: float,
    longitude: float,
    altitude: float,
    captured_at: datetime,
    heading: float | None = None,
) -> None:
    """Write GPS position and capture time into a JPEG's EXIF, in place."""
    exif_dict = load_exif(jpeg_path)
    exif_dict["GPS"] = build_gps_ifd(latitude, longitude, altitude, captured_at, heading)
    exif_ifd = exif_dict.get("Exif") or {}
    exif_ifd[piexif.ExifIFD.DateTimeOriginal] = captured_at.astimezone(timezone.utc).strftime(
        "%Y:%m:%d %H:%M:%S"
    ).encode("ascii")
    exif_dict["Exif"] = exif_ifd
    # Thumbnails copied from a source that was resized or composited are stale.
    exif_dict["thumbnail"] = None
    exif_dict["1st"] = {}
    piexif.insert(piexif.dump(exif_dict), jpeg_path)
