from __future__ import annotations

import hashlib
import io
from pathlib import Path
from typing import Optional, Tuple

import requests
from PIL import Image, ImageTk, UnidentifiedImageError

from forms import validate_image_url
from logger import get_logger
from settings import get_settings

log = get_logger(__name__)


def covers_dir() -> Path:
    path = get_settings().covers_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


def _safe_name(identifier: str) -> str:
    return hashlib.sha1(identifier.encode("utf-8")).hexdigest()


def cached_cover_path(image_url: str, max_edge: Optional[int]) -> Path:
    suffix = str(max_edge) if max_edge else "orig"
    return covers_dir() / f"{_safe_name(f'{image_url}:{suffix}')}.png"


def fetch_and_cache_cover(
    image_url: Optional[str],
    *,
    max_edge: Optional[int] = None,
    timeout: float = 15,
) -> Optional[Path]:
    """Download a cover preview (if the URL is usable) into the cache directory."""
    ok, _ = validate_image_url(image_url)
    if not image_url or not ok:
        return None

    target_path = cached_cover_path(image_url, max_edge)
    if target_path.exists():
        return target_path

    try:
        response = requests.get(image_url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as error:
        log.info("Cover preview unavailable for %s: %s", image_url, error)
        return None

    try:
        image = Image.open(io.BytesIO(response.content))
        if max_edge:
            image.thumbnail((max_edge, max_edge), Image.LANCZOS)
        image.save(target_path, format="PNG")
    except (UnidentifiedImageError, OSError) as error:
        log.info("Cover at %s is not a readable image: %s", image_url, error)
        return None

    return target_path


def load_thumbnail(path: Path, size: Tuple[int, int]) -> Optional[ImageTk.PhotoImage]:
    """Return a resized PhotoImage for Tkinter."""
    if not path.exists():
        return None
    try:
        image = Image.open(path)
    except (UnidentifiedImageError, OSError):
        return None
    image.thumbnail(size, Image.LANCZOS)
    return ImageTk.PhotoImage(image)
