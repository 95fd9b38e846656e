"""Media asset downloading, validation and aspect-ratio fitting."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional, Tuple

import requests
from filetype import guess
from PIL import Image

from .config import BROWSER_HEADERS
from .utils import slugify

logger = logging.getLogger("shotpipe")

MAX_IMAGE_BYTES = 20 * 1024 * 1024
MIN_IMAGE_BYTES = 512
ALLOWED_IMAGE_TYPES = {"png", "jpg", "gif", "webp", "bmp", "tiff"}
MIN_ASPECT = 4 / 5
MAX_ASPECT = 1.91
PAD_COLOR = (0, 0, 0)


class MediaError(Exception):
    """Raised when a media asset cannot be fetched or decoded."""


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def padded_size(width: int, height: int) -> Tuple[int, int]:
    """Smallest canvas holding the image whose ratio is within range."""
    ratio = width / height
    if ratio < MIN_ASPECT:
        return int(round(height * MIN_ASPECT)), height
    if ratio > MAX_ASPECT:
        return width, int(round(width / MAX_ASPECT))
    return width, height


def fit_aspect_ratio(image: Image.Image) -> Image.Image:
    """Letterbox ``image`` so Instagram accepts its aspect ratio."""
    image = image.convert("RGB")
    target = padded_size(*image.size)
    if target == image.size:
        return image
    canvas = Image.new("RGB", target, PAD_COLOR)
    offset = ((target[0] - image.width) // 2, (target[1] - image.height) // 2)
    canvas.paste(image, offset)
    return canvas


def download_asset(
    media_url: str,
    output_dir: Path,
    name: str,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> Path:
    """Fetch ``media_url``, fit it for publishing and save it as JPEG."""
    session = session or requests.Session()
    try:
        resp = session.get(media_url, headers=BROWSER_HEADERS, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise MediaError(f"Failed to fetch image {media_url}: {exc}") from exc

    data = resp.content
    if len(data) < MIN_IMAGE_BYTES:
        raise MediaError(f"Response too small for {media_url}")
    if len(data) > MAX_IMAGE_BYTES:
        raise MediaError(f"Image larger than {MAX_IMAGE_BYTES} bytes: {media_url}")

    extension = detect_image_format(data)
    if not extension or extension not in ALLOWED_IMAGE_TYPES:
        raise MediaError(
            f"Unsupported image type for {media_url} "
            f"(Content-Type={resp.headers.get('Content-Type', '')})"
        )

    try:
        with Image.open(io.BytesIO(data)) as raw_image:
            fitted = fit_aspect_ratio(raw_image)
    except OSError as exc:
        raise MediaError(f"Could not decode image {media_url}: {exc}") from exc

    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_dir / f"{slugify(name, fallback='screenshot')[:80]}.jpg"
    fitted.save(destination, format="JPEG", quality=95)
    logger.info("Saved processed image to %s", destination)
    return destination
