"""
Application configuration.

Loaded from an optional YAML file; every key has a default in constants.

Example YAML structure:
    output_dir: ./sequences_output
    max_workers: 4
    frames_per_second: 1.0
    jpeg_quality: 95
    preview:
      min_percent: 10
      max_percent: 25
    cameras: [GoPro Max, Other]
    nadirs: [logos/nadir.png]
    integrations:
      mapillary:
        base_url: https://a.mapillary.com/v3
        client_id: abc123
    tokens_path: tokens.json
"""
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    DEFAULT_CAMERAS,
    FRAMES_PER_SECOND,
    JPEG_QUALITY,
    MANIFEST_FILE,
    MAPILLARY_API_URL,
    MAPILLARY_CLIENT_ID,
    MAX_WORKERS,
    OUT_PARENT,
    PREVIEW_MAX_PERCENT,
    PREVIEW_MIN_PERCENT,
    SCRATCH_DIR,
    SEQUENCES_DIR,
    TOKENS_FILE,
)

logger = logging.getLogger(__name__)


@dataclass
class PreviewSettings:
    min_percent: int = PREVIEW_MIN_PERCENT
    max_percent: int = PREVIEW_MAX_PERCENT


@dataclass
class MapillarySettings:
    base_url: str = MAPILLARY_API_URL
    client_id: str = MAPILLARY_CLIENT_ID


@dataclass
class AppConfig:
    """
    Runtime configuration of the sequence manager.

    Attributes:
        output_dir: root holding the manifest, sequence folders and scratch area
        max_workers: size of the worker pool for per-photo and per-variant work
        frames_per_second: sampling rate for video ingestion
        jpeg_quality: quality of written JPEG photos
        preview: nadir preview sweep bounds, in percent of frame height
        cameras: camera names offered for a sequence
        nadirs: default nadir logo files
        mapillary: Mapillary API settings
        tokens_path: JSON file holding service tokens
    """
    output_dir: str = OUT_PARENT
    max_workers: int = MAX_WORKERS
    frames_per_second: float = FRAMES_PER_SECOND
    jpeg_quality: int = JPEG_QUALITY
    preview: PreviewSettings = field(default_factory=PreviewSettings)
    cameras: list[str] = field(default_factory=lambda: list(DEFAULT_CAMERAS))
    nadirs: list[str] = field(default_factory=list)
    mapillary: MapillarySettings = field(default_factory=MapillarySettings)
    tokens_path: str | None = None

    def __post_init__(self) -> None:
        if self.max_workers <= 0:
            raise ValueError("max_workers must be greater than zero.")
        if self.frames_per_second <= 0:
            raise ValueError("frames_per_second must be greater than zero.")
        if not 0 < self.preview.min_percent <= self.preview.max_percent <= 100:
            raise ValueError("preview bounds must satisfy 0 < min_percent <= max_percent <= 100.")
        self.output_dir = os.path.abspath(self.output_dir)
        if not self.tokens_path:
            self.tokens_path = os.path.join(self.output_dir, TOKENS_FILE)

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.output_dir, MANIFEST_FILE)

    @property
    def sequences_root(self) -> str:
        return os.path.join(self.output_dir, SEQUENCES_DIR)

    @property
    def scratch_dir(self) -> str:
        return os.path.join(self.output_dir, SCRATCH_DIR)

    def sequence_dir(self, name: str) -> str:
        return os.path.join(self.sequences_root, name)

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: str | None = None) -> "AppConfig":
        """Build a config from a mapping; relative paths resolve against base_dir."""

        def resolve(path: str | None) -> str | None:
            if not path:
                return None
            if base_dir and not os.path.isabs(path):
                return str(Path(base_dir) / path)
            return path

        preview_data = data.get("preview") or {}
        mapillary_data = (data.get("integrations") or {}).get("mapillary") or {}
        return cls(
            output_dir=resolve(data.get("output_dir")) or OUT_PARENT,
            max_workers=int(data.get("max_workers", MAX_WORKERS)),
            frames_per_second=float(data.get("frames_per_second", FRAMES_PER_SECOND)),
            jpeg_quality=int(data.get("jpeg_quality", JPEG_QUALITY)),
            preview=PreviewSettings(
                min_percent=int(preview_data.get("min_percent", PREVIEW_MIN_PERCENT)),
                max_percent=int(preview_data.get("max_percent", PREVIEW_MAX_PERCENT)),
            ),
            cameras=[str(camera) for camera in data.get("cameras") or DEFAULT_CAMERAS],
            nadirs=[resolve(str(path)) for path in data.get("nadirs") or []],
            mapillary=MapillarySettings(
                base_url=mapillary_data.get("base_url", MAPILLARY_API_URL),
                client_id=str(mapillary_data.get("client_id", MAPILLARY_CLIENT_ID)),
            ),
            tokens_path=resolve(data.get("tokens_path")),
        )

    @classmethod
    def from_yaml(cls, config_path: str, **overrides: Any) -> "AppConfig":
        """Load configuration from a YAML file; keyword overrides win over file values."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping.")
        data.update({key: value for key, value in overrides.items() if value is not None})
        logger.info("Loading configuration from %s", config_path)
        return cls.from_dict(data, base_dir=str(path.parent.resolve()))

