"""Common helpers shared across modules."""
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
import csv
import logging
import math
import os
import re
import shutil
import sys
import threading
from typing import Any, Callable, Iterable, TypeVar

from .errors import BuildCancelledError

GPS_EPOCH = datetime(1980, 1, 6, tzinfo=timezone.utc)
UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once; level from arg, then LOG_LEVEL, then INFO."""
    root = logging.getLogger()
    if getattr(root, "_sequence_manager_configured", False):
        return
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root._sequence_manager_configured = True  # type: ignore[attr-defined]


def normalize_token(value: str, label: str) -> str:
    """Return a cleaned token suitable for IDs; raise ValueError on empty."""
    cleaned = re.sub(r"[^A-Za-z0-9_-]", "", value.strip())
    if not cleaned:
        raise ValueError(f"{label} cannot be empty.")
    return cleaned


def normalize_header_name(value: str) -> str:
    """Normalize a CSV header name for matching."""
    return re.sub(r"[^a-z0-9]+", "", value.strip().lower())


def prune_none(value: Any) -> Any:
    """Recursively remove None values and empty containers."""
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for key, sub in value.items():
            sub = prune_none(sub)
            if sub is None:
                continue
            if isinstance(sub, dict) and not sub:
                continue
            out[key] = sub
        return out
    return value


def parse_float(value: Any) -> float | None:
    """Parse a float from a value, returning None on failure."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text.replace(",", "."))
    except ValueError:
        return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def seconds_to_utc(seconds: float, epoch: str) -> datetime:
    """Convert epoch seconds (gps/unix) to an aware UTC datetime."""
    base = GPS_EPOCH if epoch == "gps" else UNIX_EPOCH
    return base + timedelta(seconds=seconds)


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return to_iso(datetime.now(timezone.utc))


def decode_exif_text(value: Any) -> str | None:
    """Decode EXIF bytes/strings into clean text."""
    if value is None:
        return None
    if isinstance(value, bytes):
        text = value.decode(errors="ignore")
    elif isinstance(value, str):
        text = value
    else:
        return None
    text = re.sub(r"[\x00-\x1f\x7f]", "", text).strip()
    return text or None


def parse_exif_date(value: Any) -> str | None:
    """Parse an EXIF date string into YYYYMMDD."""
    text = decode_exif_text(value)
    if not text:
        return None
    for fmt in ("%Y:%m:%d", "%Y-%m-%d", "%Y%m%d"):
        try:
            return datetime.strptime(text, fmt).strftime("%Y%m%d")
        except ValueError:
            continue
    return None


def parse_exif_datetime(value: Any) -> datetime | None:
    """Parse an EXIF datetime string; naive values are taken as UTC."""
    text = decode_exif_text(value)
    if not text:
        return None
    try:
        return parse_iso_datetime(text)
    except ValueError:
        pass
    cleaned = text.replace("T", " ")
    for fmt in ("%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def ensure_dirs(*paths: str) -> None:
    """Create directories if they do not exist."""
    for path in paths:
        if path:
            os.makedirs(path, exist_ok=True)


def remove_path(path: str) -> bool:
    """Delete a file or directory tree if present; return True if removed."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
        return True
    if os.path.lexists(path):
        os.remove(path)
        return True
    return False


def sniff_csv_dialect(sample: str) -> csv.Dialect:
    """Return a CSV dialect for the given sample string."""
    try:
        return csv.Sniffer().sniff(sample, delimiters=",\t;")
    except csv.Error:
        return csv.excel_tab if "\t" in sample else csv.excel


class _Skipped(Exception):
    """Unit not started because another unit already failed."""


def run_fail_fast(
    fn: Callable[[T], R],
    items: Iterable[T],
    max_workers: int,
    cancel_event: threading.Event | None = None,
) -> list[R]:
    """Run fn over items on a bounded pool; results keep input order.

    The first failure stops every unit that has not started yet and is
    re-raised once in-flight units have finished.
    """
    work = list(items)
    if not work:
        return []
    stop = threading.Event()
    errors: list[BaseException] = []
    errors_lock = threading.Lock()
    results: list[Any] = [None] * len(work)

    def unit(index: int, item: T) -> tuple[int, R]:
        if stop.is_set():
            raise _Skipped()
        if cancel_event is not None and cancel_event.is_set():
            raise BuildCancelledError("Build cancelled.")
        try:
            return index, fn(item)
        except BaseException as exc:
            with errors_lock:
                errors.append(exc)
            stop.set()
            raise

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(work))))
    try:
        futures = [executor.submit(unit, index, item) for index, item in enumerate(work)]
        for future in as_completed(futures):
            index, value = future.result()
            results[index] = value
    except BaseException:
        stop.set()
        executor.shutdown(wait=True, cancel_futures=True)
        if errors:
            raise errors[0]
        raise
    executor.shutdown(wait=True)
    return results
