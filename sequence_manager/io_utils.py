"""Filesystem IO helpers."""
import json
import os
import tempfile
from typing import Any

from .common import ensure_dirs
from .constants import IMAGE_EXTENSIONS


def list_directory_files(folder: str) -> list[str]:
    """Return the regular, non-hidden files directly under a folder, sorted."""
    files: list[str] = []
    for name in sorted(os.listdir(folder)):
        if name.startswith("."):
            continue
        path = os.path.join(folder, name)
        if os.path.isfile(path):
            files.append(path)
    return files


def is_image_path(path: str) -> bool:
    """Return True for a supported raster file extension."""
    return path.lower().endswith(IMAGE_EXTENSIONS)


def write_text_atomic(path: str, text: str) -> None:
    """Write text to a temp file beside path, then swap it into place."""
    directory = os.path.dirname(os.path.abspath(path))
    ensure_dirs(directory)
    fd, tmp_path = tempfile.mkstemp(prefix=".", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def write_json(path: str, payload: Any) -> None:
    """Write JSON payload with UTF-8 encoding and pretty formatting, atomically."""
    write_text_atomic(path, json.dumps(payload, ensure_ascii=False, indent=2))


def read_json(path: str, default: Any = None) -> Any:
    """Read a JSON document, returning default when the file does not exist."""
    if not os.path.exists(path):
        return default
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)
