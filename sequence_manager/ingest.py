"""Capture ingestion: photo directories and videos into capture points."""
from datetime import datetime, timedelta, timezone
import json
import logging
import os
import re
import shutil
import subprocess

from PIL import Image, UnidentifiedImageError

from .common import ensure_dirs, parse_iso_datetime, to_iso
from .constants import FRAMES_PER_SECOND
from .errors import IngestError
from .exif_utils import extract_capture_metadata
from .io_utils import is_image_path, list_directory_files
from .models import CapturePoint, IngestResult

logger = logging.getLogger(__name__)

ISO6709_PATTERN = re.compile(r"^([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)?/?$")


def read_image_size(path: str) -> tuple[int, int]:
    """Return (width, height) after verifying the file decodes as an image."""
    with Image.open(path) as img:
        size = img.size
        img.verify()
    return size


def build_capture_point(path: str) -> CapturePoint:
    """Read one image's size, capture time and native GPS."""
    width, height = read_image_size(path)
    metadata = extract_capture_metadata(path)
    return {
        "file_path": os.path.abspath(path),
        "original_name": os.path.basename(path),
        "width": width,
        "height": height,
        "captured_at": to_iso(metadata["captured_at"]),
        "native_latitude": metadata.get("latitude"),
        "native_longitude": metadata.get("longitude"),
        "native_altitude": metadata.get("altitude"),
    }


def ingest_directory(path: str, *, skip_corrupted: bool = False) -> IngestResult:
    """Ingest the still images directly under a directory.

    Every file must be a JPEG or PNG and at least two are required.
    Unreadable images fail the ingest unless skip_corrupted is set, in
    which case they are reported in removed_files.
    """
    if not os.path.isdir(path):
        raise IngestError(f"Input folder not found: {path}")
    files = list_directory_files(path)
    if any(not is_image_path(file) for file in files):
        raise IngestError("The images should be jpeg, jpg or png.")
    if len(files) < 2:
        raise IngestError("More than one image is required to create a sequence.")

    points: list[CapturePoint] = []
    removed: list[str] = []
    for file in files:
        try:
            points.append(build_capture_point(file))
        except (OSError, UnidentifiedImageError, SyntaxError) as exc:
            if not skip_corrupted:
                raise IngestError(f"Unreadable image {file}: {exc}") from exc
            logger.warning("Skipping unreadable image %s: %s", file, exc)
            removed.append(os.path.basename(file))
    if len(points) < 2:
        raise IngestError("More than one readable image is required to create a sequence.")
    points.sort(key=lambda point: (parse_iso_datetime(point["captured_at"]), point["file_path"]))
    logger.info("Ingested %d image(s) from %s", len(points), path)
    return {"points": points, "removed_files": removed}


def parse_iso6709(location: str) -> tuple[float, float, float | None] | None:
    """Parse an ISO 6709 string such as +50.8019+012.9069+311.398/."""
    match = ISO6709_PATTERN.match(location.strip()) if location else None
    if not match:
        return None
    altitude = float(match.group(3)) if match.group(3) else None
    return float(match.group(1)), float(match.group(2)), altitude


def _tool(name: str) -> str:
    return f"{name}.exe" if os.name == "nt" else name


def probe_video(video_path: str) -> dict:
    """Return ffprobe's format/stream description of a video."""
    cmd = [
        _tool("ffprobe"), "-v", "quiet",
        "-print_format", "json",
        "-show_format", "-show_streams",
        os.path.normpath(video_path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as exc:
        raise IngestError(f"Could not run ffprobe: {exc}") from exc
    if result.returncode != 0:
        raise IngestError(f"Unreadable video {video_path}: {result.stderr.strip() or 'ffprobe failed'}")
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise IngestError(f"Unexpected ffprobe output for {video_path}.") from exc


def video_start_time(probe: dict, fallback_path: str) -> datetime:
    """Start of recording from container/stream creation_time, else file mtime."""
    candidates = [probe.get("format", {}).get("tags", {})]
    candidates.extend(stream.get("tags", {}) for stream in probe.get("streams", []))
    for tags in candidates:
        raw = tags.get("creation_time")
        if raw:
            try:
                return parse_iso_datetime(raw)
            except ValueError:
                continue
    return datetime.fromtimestamp(os.path.getmtime(fallback_path), tz=timezone.utc)


def ingest_video(
    video_path: str,
    output_dir: str,
    *,
    frames_per_second: float = FRAMES_PER_SECOND,
) -> IngestResult:
    """Extract JPEG frames from a video at a fixed rate into output_dir.

    Frame i is stamped start + i / fps. A QuickTime ISO 6709 location, when
    present, becomes every frame's native position.
    """
    if not os.path.isfile(video_path):
        raise IngestError(f"Video not found: {video_path}")
    if frames_per_second <= 0:
        raise IngestError("Frames per second must be greater than zero.")
    probe = probe_video(video_path)
    start = video_start_time(probe, video_path)
    location = parse_iso6709(probe.get("format", {}).get("tags", {}).get("com.apple.quicktime.location.ISO6709", ""))

    ensure_dirs(output_dir)
    cmd = [
        _tool("ffmpeg"), "-v", "error", "-y",
        "-i", os.path.normpath(video_path),
        "-vf", f"fps={frames_per_second}",
        "-q:v", "2",
        os.path.join(output_dir, "frame_%06d.jpg"),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except (FileNotFoundError, OSError) as exc:
        raise IngestError(f"Could not run ffmpeg: {exc}") from exc
    if result.returncode != 0:
        shutil.rmtree(output_dir, ignore_errors=True)
        raise IngestError(f"Frame extraction failed for {video_path}: {result.stderr.strip()}")

    frames = [file for file in list_directory_files(output_dir) if is_image_path(file)]
    if not frames:
        raise IngestError(f"No frames could be extracted from {video_path}.")

    points: list[CapturePoint] = []
    for index, frame in enumerate(frames):
        try:
            width, height = read_image_size(frame)
        except (OSError, UnidentifiedImageError, SyntaxError) as exc:
            raise IngestError(f"Unreadable frame {frame}: {exc}") from exc
        points.append(
            {
                "file_path": os.path.abspath(frame),
                "original_name": os.path.basename(frame),
                "width": width,
                "height": height,
                "captured_at": to_iso(start + timedelta(seconds=index / frames_per_second)),
                "native_latitude": location[0] if location else None,
                "native_longitude": location[1] if location else None,
                "native_altitude": location[2] if location else None,
            }
        )
    logger.info("Extracted %d frame(s) from %s", len(points), video_path)
    return {"points": points, "removed_files": []}
