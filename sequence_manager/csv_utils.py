"""CSV parsing helpers for GPS tracks."""
import csv
from datetime import datetime
from typing import TextIO

from .common import normalize_header_name, parse_float, parse_iso_datetime, seconds_to_utc, sniff_csv_dialect
from .constants import TRACK_CSV_FIELD_ALIASES
from .errors import TrackParseError
from .models import TrackPoint


def build_track_csv_column_map(fieldnames: list[str]) -> dict[str, str]:
    """Map canonical track fields to CSV header names."""
    normalized = {normalize_header_name(name): name for name in fieldnames if name}
    mapping: dict[str, str] = {}
    for key, aliases in TRACK_CSV_FIELD_ALIASES.items():
        for alias in aliases:
            alias_key = normalize_header_name(alias)
            if alias_key in normalized:
                mapping[key] = normalized[alias_key]
                break
    return mapping


def parse_track_time(raw: str, epoch: str, line: int) -> datetime:
    """Parse a track time cell: epoch seconds or ISO-8601 text."""
    seconds = parse_float(raw)
    if seconds is not None:
        return seconds_to_utc(seconds, epoch)
    try:
        return parse_iso_datetime(raw)
    except ValueError as exc:
        raise TrackParseError(f"Line {line}: invalid time '{raw}'.") from exc


def load_track_csv(path: str, epoch: str = "unix") -> list[TrackPoint]:
    """Load a CSV track into time-sorted points."""
    if epoch not in ("gps", "unix"):
        raise ValueError("epoch must be 'gps' or 'unix'.")
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as handle:
            points = _read_track_rows(handle, epoch)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise TrackParseError(f"Could not read track {path}: {exc}") from exc
    points.sort(key=lambda point: point.timestamp)
    return points


def _read_track_rows(handle: TextIO, epoch: str) -> list[TrackPoint]:
    sample = handle.read(2048)
    handle.seek(0)
    dialect = sniff_csv_dialect(sample)
    reader = csv.DictReader(handle, dialect=dialect)
    if not reader.fieldnames:
        raise TrackParseError("Track CSV is missing headers.")
    column_map = build_track_csv_column_map(list(reader.fieldnames))
    missing = [key for key in ("time", "latitude", "longitude") if key not in column_map]
    if missing:
        raise TrackParseError(f"Track CSV is missing column(s): {', '.join(missing)}.")
    points: list[TrackPoint] = []
    for line, row in enumerate(reader, start=2):
        raw_time = (row.get(column_map["time"]) or "").strip()
        latitude = parse_float(row.get(column_map["latitude"]))
        longitude = parse_float(row.get(column_map["longitude"]))
        if not raw_time or latitude is None or longitude is None:
            raise TrackParseError(f"Line {line}: time, latitude and longitude are required.")
        raw_elevation = (row.get(column_map["elevation"]) or "").strip() if "elevation" in column_map else ""
        elevation = parse_float(raw_elevation)
        if raw_elevation and elevation is None:
            raise TrackParseError(f"Line {line}: invalid elevation '{raw_elevation}'.")
        points.append(
            TrackPoint(
                timestamp=parse_track_time(raw_time, epoch, line),
                latitude=latitude,
                longitude=longitude,
                elevation=elevation if elevation is not None else 0.0,
            )
        )
    return points
