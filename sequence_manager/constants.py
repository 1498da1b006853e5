"""Shared constants for the sequence manager."""
import os
import sys

MAX_WORKERS = 4
FRAMES_PER_SECOND = 1.0
JPEG_QUALITY = 95

# Nadir preview sweep, in percent of the frame height (inclusive bounds).
PREVIEW_MIN_PERCENT = 10
PREVIEW_MAX_PERCENT = 25


def default_output_root() -> str:
    """Return default output directory (exe folder when frozen)."""
    if getattr(sys, "frozen", False):
        return os.path.join(os.path.dirname(sys.executable), "sequences_output")
    return os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, "sequences_output"))


# Default output root (repo root or exe folder).
OUT_PARENT = default_output_root()

MANIFEST_FILE = "manifest.json"
TOKENS_FILE = "tokens.json"
SEQUENCES_DIR = "sequences"
SCRATCH_DIR = "tmp"
POINTS_FILE = "points.json"
ORIGINALS_DIR = "originals"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")
JPEG_EXTENSIONS = (".jpg", ".jpeg")

DEFAULT_CAMERAS = [
    "GoPro Max",
    "GoPro Fusion",
    "Insta360 One X",
    "Ricoh Theta",
    "Other",
]

DESTINATION_TYPES = ("local", "mapillary")

MAPILLARY_API_URL = "https://a.mapillary.com/v3"
MAPILLARY_CLIENT_ID = ""
HTTP_TIMEOUT = 15.0

TRACK_CSV_FIELD_ALIASES = {
    "time": ("timestamp", "time", "datetime", "gps_time", "gpstime", "gps_seconds[s]", "gps_seconds"),
    "latitude": ("latitude[deg]", "latitude", "lat"),
    "longitude": ("longitude[deg]", "longitude", "lon", "lng"),
    "elevation": ("altitude_ellipsoidal[m]", "elevation", "ele", "altitude", "altitude_m", "alt", "height"),
}
