"""Sequence building: capture points in, a finished Result out."""
from datetime import timedelta
import logging
import os
import shutil
import threading
import uuid
from typing import Any

from PIL import Image

from .common import ensure_dirs, parse_iso_datetime, remove_path, run_fail_fast, to_iso, utc_now_iso
from .constants import JPEG_EXTENSIONS, JPEG_QUALITY, MAX_WORKERS
from .errors import CompositeError, IngestError, MissingGeotagError
from .exif_utils import embed_geotag
from .models import CapturePoint, Photo, Position, Result, SequenceConfig, Session, Summary, TrackPoint
from .nadir import composite_file, open_image, save_image
from .track import correlate, haversine_m, initial_bearing_deg

logger = logging.getLogger(__name__)


def frame_id(index: int) -> str:
    """Return the photo id for a 1-based position in the sequence."""
    return f"{index:06d}"


def resolve_positions(
    points: list[CapturePoint],
    track: list[TrackPoint] | None,
    time_offset_seconds: float = 0.0,
) -> list[Position]:
    """Resolve a position for every point, from the track or native GPS.

    Any point without a usable position rejects the whole list.
    """
    offset = timedelta(seconds=time_offset_seconds)
    positions: list[Position] = []
    for point in points:
        if track is not None:
            captured_at = parse_iso_datetime(point["captured_at"]) + offset
            positions.append(correlate(track, captured_at))
            continue
        latitude = point.get("native_latitude")
        longitude = point.get("native_longitude")
        if latitude is None or longitude is None:
            raise MissingGeotagError(point["file_path"])
        altitude = point.get("native_altitude")
        positions.append(
            {
                "latitude": latitude,
                "longitude": longitude,
                "elevation": altitude if altitude is not None else 0.0,
            }
        )
    return positions


def compute_headings(positions: list[Position]) -> list[float | None]:
    """Bearing from each position to the next; the last repeats the previous."""
    if len(positions) < 2:
        return [None] * len(positions)
    headings: list[float | None] = []
    for current, following in zip(positions, positions[1:]):
        headings.append(
            initial_bearing_deg(
                current["latitude"], current["longitude"], following["latitude"], following["longitude"]
            )
        )
    headings.append(headings[-1])
    return headings


def write_photo(
    src: str,
    dest: str,
    logo: Image.Image | None,
    height_fraction: float | None,
    quality: int = JPEG_QUALITY,
) -> None:
    """Write one output photo: composited, re-encoded, or copied as is."""
    if logo is not None and height_fraction is not None:
        composite_file(src, logo, height_fraction, dest, quality)
    elif src.lower().endswith(JPEG_EXTENSIONS):
        ensure_dirs(os.path.dirname(dest))
        shutil.copy2(src, dest)
    else:
        save_image(open_image(src), dest, quality)


def build_sequence(
    points: list[CapturePoint],
    config: SequenceConfig,
    *,
    output_dir: str,
    track: list[TrackPoint] | None = None,
    logo: Image.Image | None = None,
    session: Session | None = None,
    max_workers: int = MAX_WORKERS,
    cancel_event: threading.Event | None = None,
    quality: int = JPEG_QUALITY,
) -> Result:
    """Geotag, optionally stamp, and write every photo of a sequence.

    Positions are resolved for all points before any file is written. The
    Result lists photos in ingestion order and records the written paths.
    If any photo fails or the build is cancelled, every output file it
    started is removed.
    """
    if not points:
        raise IngestError("There are no images to build a sequence from.")
    positions = resolve_positions(points, track, config.time_offset_seconds)
    headings = compute_headings(positions)
    offset = timedelta(seconds=config.time_offset_seconds)
    height_fraction = config.nadir.height_fraction if config.nadir and logo is not None else None
    prefix = os.path.basename(os.path.normpath(output_dir))
    ensure_dirs(output_dir)

    tasks: list[dict[str, Any]] = []
    for index, (point, position, heading) in enumerate(zip(points, positions, headings), start=1):
        photo_id = frame_id(index)
        tasks.append(
            {
                "point": point,
                "position": position,
                "heading": heading,
                "id": photo_id,
                "dest": os.path.join(output_dir, f"{prefix}_{photo_id}.jpg"),
                "captured_at": parse_iso_datetime(point["captured_at"]) + offset,
            }
        )

    written: list[str] = []

    def render(task: dict[str, Any]) -> Photo:
        point = task["point"]
        position = task["position"]
        written.append(task["dest"])
        write_photo(point["file_path"], task["dest"], logo, height_fraction, quality)
        try:
            embed_geotag(
                task["dest"],
                position["latitude"],
                position["longitude"],
                position["elevation"],
                task["captured_at"],
                task["heading"],
            )
        except (ValueError, OSError) as exc:
            raise CompositeError(f"Could not write geotag: {exc}", task["dest"]) from exc
        return {
            "id": task["id"],
            "file_path": task["dest"],
            "original_name": point["original_name"],
            "latitude": position["latitude"],
            "longitude": position["longitude"],
            "altitude": position["elevation"],
            "heading": task["heading"],
            "captured_at": to_iso(task["captured_at"]),
        }

    try:
        photos = run_fail_fast(render, tasks, max_workers, cancel_event)
    except BaseException:
        for path in written:
            remove_path(path)
        raise
    external_id = session.get("key") if session else config.destination.external_sequence_id
    result: Result = {
        "sequence": {
            "id": str(uuid.uuid4()),
            "name": config.name,
            "camera": config.camera,
            "created": utc_now_iso(),
            "uploader_sequence_name": os.path.abspath(output_dir),
            "destination": {"type": config.destination.type, "external_sequence_id": external_id},
            "nadir_height_fraction": height_fraction,
            "time_offset_seconds": config.time_offset_seconds,
            "track_source": config.track_path if track is not None else None,
        },
        "photo": {photo["id"]: photo for photo in photos},
    }
    logger.info("Built sequence %s with %d photo(s)", config.name, len(photos))
    return result


def track_points_from_result(result: Result) -> list[TrackPoint]:
    """Photo positions of a Result as track points, in sequence order."""
    return [
        TrackPoint(
            timestamp=parse_iso_datetime(photo["captured_at"]),
            latitude=photo["latitude"],
            longitude=photo["longitude"],
            elevation=photo["altitude"],
        )
        for photo in result["photo"].values()
    ]


def summarize(result: Result) -> Summary:
    """Build the display summary of a Result."""
    sequence = result["sequence"]
    photos = list(result["photo"].values())
    distance = 0.0
    for current, following in zip(photos, photos[1:]):
        distance += haversine_m(
            current["latitude"], current["longitude"], following["latitude"], following["longitude"]
        )
    return {
        "id": sequence["id"],
        "name": sequence["name"],
        "camera": sequence["camera"],
        "created": sequence["created"],
        "photo_count": len(photos),
        "first_captured_at": photos[0]["captured_at"] if photos else None,
        "last_captured_at": photos[-1]["captured_at"] if photos else None,
        "distance_m": round(distance, 1),
        "path": sequence["uploader_sequence_name"],
        "destination": dict(sequence["destination"]),
        "destination_status": None,
    }
