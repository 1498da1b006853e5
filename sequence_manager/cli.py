"""CLI entrypoint for the sequence manager."""
from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

import yaml

from .common import setup_logging
from .config import AppConfig
from .constants import DESTINATION_TYPES
from .service import INGEST_MODES, SequenceService

CONFIG_ENV = "SEQUENCE_MANAGER_CONFIG"


def load_app_config(config_path: str | None, output_dir: str | None) -> AppConfig:
    """Resolve configuration from --config, the environment, or defaults."""
    path = config_path or os.environ.get(CONFIG_ENV)
    overrides = {"output_dir": os.path.abspath(output_dir) if output_dir else None}
    if path:
        return AppConfig.from_yaml(path, **overrides)
    return AppConfig.from_dict({key: value for key, value in overrides.items() if value is not None})


def load_sequence_file(path: str) -> dict[str, Any]:
    """Read a sequence configuration mapping from a YAML or JSON file."""
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Sequence file {path} must contain a mapping.")
    return data


def sequence_config_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Build the sequence configuration mapping from flags or --from-file."""
    data: dict[str, Any] = load_sequence_file(args.from_file) if args.from_file else {}
    overrides = {
        "name": args.name,
        "camera": getattr(args, "camera", None),
        "time_offset_seconds": getattr(args, "time_offset", None),
        "track_path": getattr(args, "track", None),
    }
    data.update({key: value for key, value in overrides.items() if value is not None})
    destination = getattr(args, "destination", None)
    if destination:
        data["destination"] = {"type": destination, "external_sequence_id": getattr(args, "external_id", None)}
    logo = getattr(args, "nadir_logo", None)
    if logo:
        data["nadir"] = {"logo_file_path": logo, "height_fraction": args.nadir_fraction}
    return data


def emit(payload: dict[str, Any]) -> int:
    """Print a command payload; errors go to stderr with exit status 1."""
    if not payload["ok"]:
        print(payload["error"], file=sys.stderr)
        return 1
    print(json.dumps(payload["data"], ensure_ascii=False, indent=2))
    return 0


def run_ingest(service: SequenceService, args: argparse.Namespace) -> int:
    mode = args.mode or ("images" if os.path.isdir(args.source) else "video")
    print(f"Ingesting {args.source} as '{args.name}' ({mode})...", file=sys.stderr)
    payload = service.ingest(os.path.abspath(args.source), args.name, mode, skip_corrupted=args.skip_corrupted)
    if payload["ok"] and payload["data"]["removed_files"]:
        print(f"Skipped {len(payload['data']['removed_files'])} unreadable file(s).", file=sys.stderr)
    return emit(payload)


def run_commit(service: SequenceService, args: argparse.Namespace) -> int:
    try:
        data = sequence_config_from_args(args)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"Building sequence '{data.get('name')}'...", file=sys.stderr)
    return emit(service.commit_sequence(data))


def run_reset(service: SequenceService, args: argparse.Namespace) -> int:
    try:
        data = sequence_config_from_args(args)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(exc, file=sys.stderr)
        return 1
    if not data.get("name"):
        print("A sequence name is required.", file=sys.stderr)
        return 1
    return emit(service.reset_sequence(str(data["name"])))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build geotagged image sequences from videos or photo folders.")
    parser.add_argument("--config", help=f"YAML configuration file (or ${CONFIG_ENV}).")
    parser.add_argument("--output-dir", help="Root for the manifest, sequences and scratch files.")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR (default: $LOG_LEVEL or INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("config", help="Show cameras, nadir logos, integrations and stored token keys.")

    token = sub.add_parser("token", help="Store a destination service token.")
    token.add_argument("key", help="Service key, e.g. mapillary.")
    token.add_argument("token")

    track = sub.add_parser("track", help="Parse a GPX or CSV track and print its points.")
    track.add_argument("path")
    track.add_argument("--epoch", choices=("gps", "unix"), default="unix", help="Epoch of numeric CSV times.")

    ingest = sub.add_parser("ingest", help="Ingest a video or a folder of photos.")
    ingest.add_argument("source")
    ingest.add_argument("--name", required=True, help="Sequence name.")
    ingest.add_argument("--mode", choices=INGEST_MODES, help="Defaults to images for folders, video otherwise.")
    ingest.add_argument("--skip-corrupted", action="store_true", help="Drop unreadable images instead of failing.")

    preview = sub.add_parser("preview-nadir", help="Render the nadir logo preview sweep.")
    preview.add_argument("logo")
    preview.add_argument("image")
    preview.add_argument("--width", type=int)
    preview.add_argument("--height", type=int)

    for name, help_text in (("commit", "Build and commit an ingested sequence."), ("reset", "Discard an uncommitted sequence.")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--name", help="Sequence name.")
        cmd.add_argument("--from-file", help="YAML/JSON sequence configuration.")
        if name == "commit":
            cmd.add_argument("--camera")
            cmd.add_argument("--destination", choices=DESTINATION_TYPES)
            cmd.add_argument("--external-id", help="Existing destination sequence key.")
            cmd.add_argument("--nadir-logo")
            cmd.add_argument("--nadir-fraction", type=float, default=0.15)
            cmd.add_argument("--time-offset", type=float, help="Seconds added to capture times.")
            cmd.add_argument("--track", help="GPX or CSV track to geotag from.")

    sub.add_parser("list", help="List committed sequences, newest first.")

    remove = sub.add_parser("remove", help="Delete a committed sequence and its files.")
    remove.add_argument("id")

    link = sub.add_parser("link", help="Attach a destination sequence key to a committed sequence.")
    link.add_argument("id")
    link.add_argument("external_id")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint for the sequence manager."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        config = load_app_config(args.config, args.output_dir)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        return 1
    service = SequenceService(config)

    if args.command == "config":
        return emit(service.load_config())
    if args.command == "token":
        return emit(service.set_token(args.key, args.token))
    if args.command == "track":
        return emit(service.load_track(os.path.abspath(args.path), args.epoch))
    if args.command == "ingest":
        return run_ingest(service, args)
    if args.command == "preview-nadir":
        return emit(service.preview_nadir(args.logo, args.image, args.width, args.height))
    if args.command == "commit":
        return run_commit(service, args)
    if args.command == "reset":
        return run_reset(service, args)
    if args.command == "list":
        return emit(service.list_sequences())
    if args.command == "remove":
        return emit(service.remove_sequence(args.id))
    if args.command == "link":
        return emit(service.link_sequence(args.id, args.external_id))
    return 1
