"""Typed structures used across the sequence manager."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NamedTuple, TypedDict

from .constants import DESTINATION_TYPES


class TrackPoint(NamedTuple):
    timestamp: datetime
    latitude: float
    longitude: float
    elevation: float


class Position(TypedDict):
    latitude: float
    longitude: float
    elevation: float


class CapturePoint(TypedDict):
    file_path: str
    original_name: str
    width: int
    height: int
    captured_at: str
    native_latitude: float | None
    native_longitude: float | None
    native_altitude: float | None


class IngestResult(TypedDict):
    points: list[CapturePoint]
    removed_files: list[str]


class Photo(TypedDict):
    id: str
    file_path: str
    original_name: str
    latitude: float
    longitude: float
    altitude: float
    heading: float | None
    captured_at: str


class Destination(TypedDict):
    type: str
    external_sequence_id: str | None


class SequenceMetadata(TypedDict):
    id: str
    name: str
    camera: str
    created: str
    uploader_sequence_name: str
    destination: Destination
    nadir_height_fraction: float | None
    time_offset_seconds: float
    track_source: str | None


class Result(TypedDict):
    sequence: SequenceMetadata
    photo: dict[str, Photo]


Manifest = dict[str, Result]


class Summary(TypedDict):
    id: str
    name: str
    camera: str
    created: str
    photo_count: int
    first_captured_at: str | None
    last_captured_at: str | None
    distance_m: float
    path: str
    destination: Destination
    destination_status: str | None


class Session(TypedDict, total=False):
    key: str
    url: str
    fields: dict[str, Any]


class PreviewResult(TypedDict):
    logo_file: str
    items: dict[str, str]


@dataclass(frozen=True)
class NadirStep:
    logo_file_path: str
    height_fraction: float


@dataclass(frozen=True)
class DestinationConfig:
    type: str = "local"
    external_sequence_id: str | None = None


@dataclass(frozen=True)
class SequenceConfig:
    """Configuration of one sequence build, consumed once by the builder."""

    name: str
    camera: str
    destination: DestinationConfig = DestinationConfig()
    nadir: NadirStep | None = None
    time_offset_seconds: float = 0.0
    track_path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SequenceConfig":
        """Build a config from a plain mapping; raise ValueError on bad input."""
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError("Sequence name cannot be empty.")
        camera = str(data.get("camera") or "").strip()
        if not camera:
            raise ValueError("Camera cannot be empty.")

        raw_destination = data.get("destination") or {}
        if isinstance(raw_destination, str):
            raw_destination = {"type": raw_destination}
        destination_type = str(raw_destination.get("type") or "local").lower()
        if destination_type not in DESTINATION_TYPES:
            raise ValueError(f"Unknown destination '{destination_type}'.")
        destination = DestinationConfig(
            type=destination_type,
            external_sequence_id=raw_destination.get("external_sequence_id") or None,
        )

        nadir = None
        raw_nadir = data.get("nadir")
        if raw_nadir and raw_nadir.get("logo_file_path"):
            try:
                fraction = float(raw_nadir.get("height_fraction", 0))
            except (TypeError, ValueError) as exc:
                raise ValueError("Nadir height fraction must be a number.") from exc
            if not 0 < fraction <= 1:
                raise ValueError("Nadir height fraction must be in (0, 1].")
            nadir = NadirStep(logo_file_path=str(raw_nadir["logo_file_path"]), height_fraction=fraction)

        try:
            offset = float(data.get("time_offset_seconds") or 0.0)
        except (TypeError, ValueError) as exc:
            raise ValueError("Time offset must be a number of seconds.") from exc

        return cls(
            name=name,
            camera=camera,
            destination=destination,
            nadir=nadir,
            time_offset_seconds=offset,
            track_path=data.get("track_path") or None,
        )
