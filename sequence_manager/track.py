"""GPS track loading, time-based correlation and GPX export."""
from bisect import bisect_left
from datetime import datetime
import logging
import math
import os
from typing import Iterable
import xml.etree.ElementTree as ET

from .common import parse_iso_datetime, to_iso
from .csv_utils import load_track_csv
from .errors import EmptyTrackError, TrackParseError
from .models import Position, TrackPoint

logger = logging.getLogger(__name__)

# Parsing matches local names, so GPX 1.0 and 1.1 both load; export is 1.1.
GPX_11 = "http://www.topografix.com/GPX/1/1"

EARTH_RADIUS_M = 6371008.8


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str | None:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or "").strip() or None
    return None


def _parse_waypoint(element: ET.Element, index: int) -> TrackPoint:
    try:
        latitude = float(element.attrib["lat"])
        longitude = float(element.attrib["lon"])
    except KeyError as exc:
        raise TrackParseError(f"Point {index} is missing its {exc.args[0]} attribute.") from exc
    except ValueError as exc:
        raise TrackParseError(f"Point {index} has an invalid coordinate.") from exc
    raw_time = _child_text(element, "time")
    if raw_time is None:
        raise TrackParseError(f"Point {index} has no time.")
    try:
        timestamp = parse_iso_datetime(raw_time)
    except ValueError as exc:
        raise TrackParseError(f"Point {index} has an invalid time '{raw_time}'.") from exc
    raw_elevation = _child_text(element, "ele")
    try:
        elevation = float(raw_elevation) if raw_elevation is not None else 0.0
    except ValueError as exc:
        raise TrackParseError(f"Point {index} has an invalid elevation '{raw_elevation}'.") from exc
    return TrackPoint(timestamp=timestamp, latitude=latitude, longitude=longitude, elevation=elevation)


def parse_gpx(data: str | bytes) -> list[TrackPoint]:
    """Parse a GPX document into time-sorted track points.

    Track points are used when present, otherwise route points, otherwise
    waypoints. Any malformed point rejects the whole document.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise TrackParseError(f"Invalid GPX document: {exc}") from exc
    if _local_name(root.tag) != "gpx":
        raise TrackParseError("Document is not GPX.")
    elements: list[ET.Element] = []
    for kind in ("trkpt", "rtept", "wpt"):
        elements = [element for element in root.iter() if _local_name(element.tag) == kind]
        if elements:
            break
    points = [_parse_waypoint(element, index) for index, element in enumerate(elements, start=1)]
    points.sort(key=lambda point: point.timestamp)
    return points


def load_track(path: str, epoch: str = "unix") -> list[TrackPoint]:
    """Load a GPX or CSV track file into time-sorted points."""
    if not os.path.isfile(path):
        raise TrackParseError(f"Track file not found: {path}")
    if path.lower().endswith(".csv"):
        points = load_track_csv(path, epoch)
    else:
        try:
            with open(path, "rb") as handle:
                points = parse_gpx(handle.read())
        except OSError as exc:
            raise TrackParseError(f"Could not read track {path}: {exc}") from exc
    logger.info("Loaded %d track point(s) from %s", len(points), path)
    return points


def correlate(track: list[TrackPoint], target: datetime) -> Position:
    """Interpolate a position for target within a time-sorted track.

    Targets outside the track's time range are clamped to the nearest end.
    """
    if not track:
        raise EmptyTrackError("The GPS track has no points.")
    first, last = track[0], track[-1]
    if target <= first.timestamp:
        return _position(first)
    if target >= last.timestamp:
        return _position(last)

    idx = bisect_left([point.timestamp for point in track], target)
    after = track[idx]
    if after.timestamp == target:
        return _position(after)
    before = track[idx - 1]
    span = (after.timestamp - before.timestamp).total_seconds()
    if span == 0:
        return _position(before)
    t = (target - before.timestamp).total_seconds() / span
    return {
        "latitude": before.latitude + t * (after.latitude - before.latitude),
        "longitude": before.longitude + t * (after.longitude - before.longitude),
        "elevation": before.elevation + t * (after.elevation - before.elevation),
    }


def _position(point: TrackPoint) -> Position:
    return {"latitude": point.latitude, "longitude": point.longitude, "elevation": point.elevation}


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dphi = p2 - p1
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2.0) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2.0) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2 (degrees, 0..360)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dl = math.radians(lon2 - lon1)
    y = math.sin(dl) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dl)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def build_gpx(points: Iterable[TrackPoint], name: str) -> str:
    """Serialize ordered points as a single-segment GPX 1.1 track."""
    ET.register_namespace("", GPX_11)
    root = ET.Element(f"{{{GPX_11}}}gpx", {"version": "1.1", "creator": "sequence-manager"})
    track = ET.SubElement(root, f"{{{GPX_11}}}trk")
    ET.SubElement(track, f"{{{GPX_11}}}name").text = name
    segment = ET.SubElement(track, f"{{{GPX_11}}}trkseg")
    for point in points:
        trkpt = ET.SubElement(
            segment,
            f"{{{GPX_11}}}trkpt",
            {"lat": f"{point.latitude:.8f}", "lon": f"{point.longitude:.8f}"},
        )
        ET.SubElement(trkpt, f"{{{GPX_11}}}ele").text = f"{point.elevation:.3f}"
        ET.SubElement(trkpt, f"{{{GPX_11}}}time").text = to_iso(point.timestamp)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)
