"""Command surface: each command returns a result or an error payload."""
from functools import wraps
import logging
import os
import threading
from typing import Any, Callable

from .common import ensure_dirs, normalize_token, remove_path, to_iso
from .config import AppConfig
from .constants import ORIGINALS_DIR, POINTS_FILE
from .destination import MapillaryClient
from .errors import BuildCancelledError, IngestError, SequenceManagerError
from .exif_utils import extract_camera_model
from .ingest import ingest_directory, ingest_video
from .io_utils import read_json, write_json, write_text_atomic
from .manifest import ManifestStore, clear_scratch, reset_sequence, sidecar_track_path
from .models import CapturePoint, SequenceConfig
from .nadir import open_image, preview_sweep
from .processing import build_sequence, summarize, track_points_from_result
from .tokens import TokenStore
from .track import build_gpx, load_track

logger = logging.getLogger(__name__)

INGEST_MODES = ("images", "video")


def command(fn: Callable[..., Any]) -> Callable[..., dict[str, Any]]:
    """Wrap a command so it returns {"ok", "data"} or {"ok", "error", "kind"}."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return {"ok": True, "data": fn(*args, **kwargs)}
        except (SequenceManagerError, ValueError, OSError) as exc:
            logger.error("%s failed: %s", fn.__name__, exc)
            return {"ok": False, "error": str(exc), "kind": type(exc).__name__}

    return wrapper


def coerce_sequence_config(value: SequenceConfig | dict[str, Any]) -> SequenceConfig:
    """Accept a SequenceConfig or its plain-mapping form."""
    if isinstance(value, SequenceConfig):
        return value
    return SequenceConfig.from_dict(value)


class SequenceService:
    def __init__(
        self,
        config: AppConfig,
        *,
        store: ManifestStore | None = None,
        tokens: TokenStore | None = None,
        client: MapillaryClient | None = None,
    ):
        self.config = config
        self.store = store or ManifestStore(config.manifest_path)
        self.tokens = tokens or TokenStore(config.tokens_path)
        self.client = client or MapillaryClient(config.mapillary.base_url, config.mapillary.client_id)
        self.cancel_event = threading.Event()

    def sequence_dir(self, name: str) -> str:
        return self.config.sequence_dir(normalize_token(name, "Sequence name"))

    def points_path(self, name: str) -> str:
        return os.path.join(self.sequence_dir(name), POINTS_FILE)

    def discard_cancelled(self, name: str) -> None:
        """Drop what a cancelled build left behind once its sequence was reset."""
        if not os.path.exists(self.points_path(name)):
            remove_path(self.sequence_dir(name))

    @command
    def load_config(self) -> dict[str, Any]:
        return {
            "cameras": list(self.config.cameras),
            "nadirs": [path for path in self.config.nadirs if os.path.isfile(path)],
            "integrations": {"mapillary": {"base_url": self.config.mapillary.base_url}},
            "preview": {
                "min_percent": self.config.preview.min_percent,
                "max_percent": self.config.preview.max_percent,
            },
            "basepath": self.config.output_dir,
            "tokens": self.tokens.keys(),
        }

    @command
    def set_token(self, key: str, token: str) -> dict[str, str]:
        key = normalize_token(key, "Token key").lower()
        if not token.strip():
            raise ValueError("Token cannot be empty.")
        self.tokens.set(key, token.strip())
        return {"key": key}

    @command
    def load_track(self, path: str, epoch: str = "unix") -> list[dict[str, Any]]:
        return [
            {
                "timestamp": to_iso(point.timestamp),
                "latitude": point.latitude,
                "longitude": point.longitude,
                "elevation": point.elevation,
            }
            for point in load_track(path, epoch)
        ]

    @command
    def ingest(
        self,
        source_path: str,
        sequence_name: str,
        mode: str,
        skip_corrupted: bool = False,
    ) -> dict[str, Any]:
        if mode not in INGEST_MODES:
            raise ValueError(f"Mode must be one of: {', '.join(INGEST_MODES)}.")
        sequence_dir = self.sequence_dir(sequence_name)
        if os.path.abspath(sequence_dir) in self.store.committed_dirs():
            raise IngestError(f"A committed sequence already uses the name '{sequence_name}'.")
        remove_path(sequence_dir)
        ensure_dirs(sequence_dir)
        try:
            if mode == "video":
                ingested = ingest_video(
                    source_path,
                    os.path.join(sequence_dir, ORIGINALS_DIR),
                    frames_per_second=self.config.frames_per_second,
                )
            else:
                ingested = ingest_directory(source_path, skip_corrupted=skip_corrupted)
            write_json(self.points_path(sequence_name), ingested["points"])
        except BaseException:
            remove_path(sequence_dir)
            raise
        return {
            "sequence_dir": sequence_dir,
            "points": ingested["points"],
            "removed_files": ingested["removed_files"],
            "camera": extract_camera_model(ingested["points"][0]["file_path"]),
        }

    @command
    def preview_nadir(
        self,
        logo_path: str,
        image_path: str,
        width: int | None = None,
        height: int | None = None,
    ) -> dict[str, Any]:
        return dict(
            preview_sweep(
                logo_path,
                image_path,
                width,
                height,
                self.config.scratch_dir,
                min_percent=self.config.preview.min_percent,
                max_percent=self.config.preview.max_percent,
                max_workers=self.config.max_workers,
            )
        )

    @command
    def commit_sequence(self, sequence_config: SequenceConfig | dict[str, Any]) -> dict[str, Any]:
        config = coerce_sequence_config(sequence_config)
        sequence_dir = self.sequence_dir(config.name)
        points: list[CapturePoint] | None = read_json(self.points_path(config.name))
        if not points:
            raise IngestError(f"No ingested images for '{config.name}'. Run ingest first.")

        track = load_track(config.track_path) if config.track_path else None
        logo = open_image(config.nadir.logo_file_path) if config.nadir else None
        session = None
        if config.destination.type == "mapillary" and not config.destination.external_sequence_id:
            session = self.client.resolve_session(self.tokens.get("mapillary"))

        self.cancel_event.clear()
        try:
            result = build_sequence(
                points,
                config,
                output_dir=sequence_dir,
                track=track,
                logo=logo,
                session=session,
                max_workers=self.config.max_workers,
                cancel_event=self.cancel_event,
                quality=self.config.jpeg_quality,
            )
            if self.cancel_event.is_set():
                for photo in result["photo"].values():
                    remove_path(photo["file_path"])
                raise BuildCancelledError(f"Build of '{config.name}' was cancelled.")
        except (SequenceManagerError, OSError) as exc:
            if not self.cancel_event.is_set():
                raise
            self.discard_cancelled(config.name)
            if isinstance(exc, BuildCancelledError):
                raise
            raise BuildCancelledError(f"Build of '{config.name}' was cancelled.") from exc
        write_text_atomic(
            sidecar_track_path(sequence_dir),
            build_gpx(track_points_from_result(result), config.name),
        )
        self.store.put(result)
        remove_path(self.points_path(config.name))
        clear_scratch(self.config.scratch_dir)
        return dict(summarize(result))

    @command
    def list_sequences(self) -> list[dict[str, Any]]:
        return [dict(summary) for summary in self.store.list(self.client, self.tokens.get("mapillary"))]

    @command
    def remove_sequence(self, sequence_id: str) -> dict[str, bool]:
        return {"removed": self.store.remove(sequence_id)}

    @command
    def reset_sequence(self, sequence_config: SequenceConfig | dict[str, Any] | str) -> dict[str, list[str]]:
        """Stop a running build of the sequence, then discard its uncommitted files."""
        self.cancel_event.set()
        name = sequence_config if isinstance(sequence_config, str) else coerce_sequence_config(sequence_config).name
        removed = reset_sequence(self.sequence_dir(name), self.config.scratch_dir, self.store)
        return {"removed": removed}

    @command
    def link_sequence(self, sequence_id: str, external_sequence_id: str) -> dict[str, Any]:
        if not external_sequence_id.strip():
            raise ValueError("External sequence id cannot be empty.")
        try:
            result = self.store.link(sequence_id, external_sequence_id.strip())
        except KeyError:
            raise ValueError(f"Unknown sequence id '{sequence_id}'.") from None
        return dict(summarize(result))

    @command
    def shutdown(self, sequence_config: SequenceConfig | dict[str, Any] | str | None = None) -> dict[str, list[str]]:
        """Stop a running build, discard the in-progress sequence and scratch files."""
        self.cancel_event.set()
        removed: list[str] = []
        if sequence_config:
            name = sequence_config if isinstance(sequence_config, str) else coerce_sequence_config(sequence_config).name
            removed = reset_sequence(self.sequence_dir(name), self.config.scratch_dir, self.store)
        elif clear_scratch(self.config.scratch_dir):
            removed.append(self.config.scratch_dir)
        return {"removed": removed}
