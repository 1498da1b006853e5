"""Nadir logo compositing and the preview sweep."""
import logging
import os
import uuid

from PIL import Image, UnidentifiedImageError

from .common import ensure_dirs, remove_path, round_half_up, run_fail_fast
from .constants import JPEG_QUALITY, MAX_WORKERS, PREVIEW_MAX_PERCENT, PREVIEW_MIN_PERCENT
from .errors import CompositeError
from .models import PreviewResult

logger = logging.getLogger(__name__)


def composite(
    base: Image.Image,
    logo: Image.Image,
    height_fraction: float,
    frame_size: tuple[int, int] | None = None,
) -> Image.Image:
    """Return a copy of base with logo stretched across its bottom band.

    The logo is forced to the frame width and to round(height * fraction)
    rows, then pasted with its bottom edge on the frame's bottom row.
    frame_size defaults to the size of base.
    """
    if not 0 < height_fraction <= 1:
        raise CompositeError(f"Height fraction must be in (0, 1], got {height_fraction}.")
    width, height = frame_size or base.size
    logo_height = round_half_up(height * height_fraction)
    if width < 1 or logo_height < 1:
        raise CompositeError(f"Height fraction {height_fraction} leaves no room for the logo.")
    scaled = logo.convert("RGBA").resize((width, logo_height), Image.Resampling.LANCZOS)
    output = base.convert("RGBA") if base.mode in ("RGBA", "LA", "P") else base.convert("RGB")
    output.paste(scaled, (0, height - logo_height), scaled)
    return output


def open_image(path: str) -> Image.Image:
    """Load an image fully into memory or raise CompositeError."""
    try:
        with Image.open(path) as img:
            img.load()
            return img.copy()
    except (OSError, UnidentifiedImageError) as exc:
        raise CompositeError(f"Could not read image: {exc}", path) from exc


def save_image(image: Image.Image, path: str, quality: int = JPEG_QUALITY) -> None:
    """Write an image; JPEG targets are flattened to RGB."""
    ensure_dirs(os.path.dirname(path))
    try:
        if path.lower().endswith((".jpg", ".jpeg")):
            image.convert("RGB").save(path, "JPEG", quality=quality)
        else:
            image.save(path)
    except (OSError, ValueError) as exc:
        raise CompositeError(f"Could not write image: {exc}", path) from exc


def prepare_logo(logo_path: str, scratch_dir: str) -> str:
    """Copy the logo into the scratch area as an RGBA PNG; return its path."""
    logo = open_image(logo_path).convert("RGBA")
    target = os.path.join(scratch_dir, f"{uuid.uuid4()}.png")
    save_image(logo, target)
    return target


def preview_fractions(min_percent: int = PREVIEW_MIN_PERCENT, max_percent: int = PREVIEW_MAX_PERCENT) -> list[float]:
    """Return the sweep's height fractions, one per whole percent."""
    if not 0 < min_percent <= max_percent <= 100:
        raise ValueError("Preview bounds must satisfy 0 < min <= max <= 100.")
    return [percent / 100 for percent in range(min_percent, max_percent + 1)]


def preview_sweep(
    logo_path: str,
    image_path: str,
    width: int | None,
    height: int | None,
    output_dir: str,
    *,
    min_percent: int = PREVIEW_MIN_PERCENT,
    max_percent: int = PREVIEW_MAX_PERCENT,
    max_workers: int = MAX_WORKERS,
) -> PreviewResult:
    """Render one candidate composite per height fraction.

    Returns the prepared logo path and a mapping of fraction label to
    output path. width and height, when given, set the band geometry; the
    image itself is composited at its own size. The first failing variant
    aborts the sweep: variants not yet started are skipped and every file
    the sweep wrote, partial ones included, is deleted.
    """
    fractions = preview_fractions(min_percent, max_percent)
    ensure_dirs(output_dir)
    logo_file = prepare_logo(logo_path, output_dir)
    logo = open_image(logo_file)
    base = open_image(image_path)
    frame_size = (width, height) if width and height else None

    written: list[str] = []

    def render(fraction: float) -> tuple[str, str]:
        output_file = os.path.join(output_dir, f"{uuid.uuid4()}.png")
        written.append(output_file)
        try:
            save_image(composite(base, logo, fraction, frame_size=frame_size), output_file)
        except CompositeError as exc:
            raise CompositeError(f"Preview at {fraction} failed: {exc}") from exc
        return str(fraction), output_file

    try:
        pairs = run_fail_fast(render, fractions, max_workers)
    except BaseException:
        for path in written:
            remove_path(path)
        remove_path(logo_file)
        raise
    logger.info("Rendered %d nadir preview(s) for %s", len(pairs), image_path)
    return {"logo_file": logo_file, "items": dict(pairs)}


def composite_file(
    src: str,
    logo: Image.Image,
    height_fraction: float,
    dest: str,
    quality: int = JPEG_QUALITY,
) -> tuple[int, int]:
    """Composite the logo onto one photo at its own size; return (w, h)."""
    base = open_image(src)
    try:
        output = composite(base, logo, height_fraction)
    except CompositeError as exc:
        raise CompositeError(str(exc), src) from exc
    save_image(output, dest, quality)
    return output.size
