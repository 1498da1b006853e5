"""Durable store of committed sequences."""
import json
import logging
import os
import threading
from typing import Any, Protocol

from .common import parse_iso_datetime, remove_path
from .errors import ExternalServiceError, ManifestIOError
from .io_utils import read_json, write_json
from .models import Manifest, Photo, Result, Summary
from .processing import summarize

logger = logging.getLogger(__name__)


class StatusChecker(Protocol):
    def check_sequence_status(
        self, credential: str | None, external_sequence_id: str, photos: list[Photo]
    ) -> dict[str, Any]: ...


def sidecar_track_path(sequence_dir: str) -> str:
    """Path of the GPX export written beside a sequence directory."""
    return f"{os.path.normpath(sequence_dir)}.gpx"


class ManifestStore:
    """Single owner of the manifest file.

    All access goes through one lock, so a put or remove is never seen
    half-applied. Filesystem cleanup and service calls run outside it.
    """

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self._lock = threading.Lock()

    def _load(self) -> Manifest:
        try:
            data = read_json(self.path, default={})
        except (OSError, json.JSONDecodeError) as exc:
            raise ManifestIOError(f"Could not read manifest {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ManifestIOError(f"Manifest {self.path} is not a JSON object.")
        return data

    def _save(self, manifest: Manifest) -> None:
        try:
            write_json(self.path, manifest)
        except (OSError, TypeError, ValueError) as exc:
            raise ManifestIOError(f"Could not write manifest {self.path}: {exc}") from exc

    def get(self, sequence_id: str) -> Result | None:
        with self._lock:
            return self._load().get(sequence_id)

    def all(self) -> Manifest:
        with self._lock:
            return self._load()

    def put(self, result: Result) -> None:
        """Insert or replace a Result keyed by its sequence id."""
        sequence_id = result["sequence"]["id"]
        with self._lock:
            manifest = self._load()
            manifest[sequence_id] = result
            self._save(manifest)
        logger.info("Committed sequence %s (%s)", result["sequence"]["name"], sequence_id)

    def link(self, sequence_id: str, external_sequence_id: str) -> Result:
        """Attach a destination sequence key; a later link replaces an earlier one."""
        with self._lock:
            manifest = self._load()
            if sequence_id not in manifest:
                raise KeyError(sequence_id)
            result = manifest[sequence_id]
            result["sequence"]["destination"]["external_sequence_id"] = external_sequence_id
            self._save(manifest)
        return result

    def remove(self, sequence_id: str) -> bool:
        """Drop an entry, then its asset directory and track export."""
        with self._lock:
            manifest = self._load()
            result = manifest.pop(sequence_id, None)
            if result is None:
                return False
            self._save(manifest)
        sequence_dir = result["sequence"]["uploader_sequence_name"]
        remove_path(sequence_dir)
        remove_path(sidecar_track_path(sequence_dir))
        logger.info("Removed sequence %s", sequence_id)
        return True

    def committed_dirs(self) -> set[str]:
        """Absolute asset directories of every committed sequence."""
        return {
            os.path.abspath(result["sequence"]["uploader_sequence_name"]) for result in self.all().values()
        }

    def prune(self) -> list[str]:
        """Drop entries whose asset directory no longer exists; return their ids."""
        with self._lock:
            manifest = self._load()
            stale = [
                sequence_id
                for sequence_id, result in manifest.items()
                if not os.path.isdir(result["sequence"]["uploader_sequence_name"])
            ]
            if not stale:
                return []
            pruned = {sequence_id: manifest.pop(sequence_id) for sequence_id in stale}
            self._save(manifest)
        for sequence_id, result in pruned.items():
            remove_path(sidecar_track_path(result["sequence"]["uploader_sequence_name"]))
            logger.warning("Pruned sequence %s: asset directory is gone", sequence_id)
        return stale

    def list(self, checker: StatusChecker | None = None, credential: str | None = None) -> list[Summary]:
        """Summaries of live entries, newest first, recomputed on every call."""
        self.prune()
        results = sorted(
            self.all().values(),
            key=lambda result: parse_iso_datetime(result["sequence"]["created"]),
            reverse=True,
        )
        summaries: list[Summary] = []
        for result in results:
            summary = summarize(result)
            external_id = result["sequence"]["destination"].get("external_sequence_id")
            if checker is not None and external_id:
                try:
                    status = checker.check_sequence_status(credential, external_id, list(result["photo"].values()))
                    summary["destination_status"] = "linked" if status.get("linked") else "pending"
                except ExternalServiceError as exc:
                    logger.warning("Status check failed for %s: %s", result["sequence"]["id"], exc)
                    summary["destination_status"] = f"Error: {exc}"
            summaries.append(summary)
        return summaries


def clear_scratch(scratch_dir: str) -> bool:
    """Delete the scratch area (preview composites, prepared logos)."""
    return remove_path(scratch_dir)


def reset_sequence(sequence_dir: str, scratch_dir: str, store: ManifestStore) -> list[str]:
    """Discard an uncommitted sequence's assets and the scratch area.

    The manifest is not touched, and a directory owned by a committed
    sequence is left in place. Returns the paths that were deleted.
    """
    removed: list[str] = []
    target = os.path.abspath(sequence_dir)
    if target in store.committed_dirs():
        logger.warning("Not resetting %s: it belongs to a committed sequence", target)
    elif remove_path(target):
        removed.append(target)
    if clear_scratch(scratch_dir):
        removed.append(os.path.abspath(scratch_dir))
    return removed
