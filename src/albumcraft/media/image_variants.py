"""JPEG derivatives rendered next to every uploaded photo."""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

THUMBNAIL_VARIANT = "thumb"
MEDIUM_VARIANT = "medium"


class ImageVariantError(RuntimeError):
    """Raised when a payload cannot be decoded as an image."""


@dataclass(slots=True)
class VariantSettings:
    thumbnail_size: int = 300
    thumbnail_quality: int = 80
    medium_long_edge: int = 2048
    medium_quality: int = 85


def render_variants(payload: bytes, settings: VariantSettings | None = None) -> dict[str, bytes]:
    """Return JPEG bytes of the thumbnail and medium variants of ``payload``.

    - Auto-orient using EXIF orientation
    - Thumbnail: centered square crop of ``thumbnail_size`` pixels
    - Medium: resize to ``medium_long_edge`` (only shrink)
    - Strip metadata (save without EXIF)
    """
    cfg = settings or VariantSettings()
    try:
        with Image.open(io.BytesIO(payload)) as source:
            image = ImageOps.exif_transpose(source)
            if image.mode != "RGB":
                image = image.convert("RGB")

            thumb = ImageOps.fit(
                image,
                (cfg.thumbnail_size, cfg.thumbnail_size),
                method=Image.Resampling.BILINEAR,
                centering=(0.5, 0.5),
            )
            medium = image.copy()
            medium.thumbnail((cfg.medium_long_edge, cfg.medium_long_edge), Image.Resampling.LANCZOS)

            return {
                THUMBNAIL_VARIANT: _encode_jpeg(thumb, cfg.thumbnail_quality),
                MEDIUM_VARIANT: _encode_jpeg(medium, cfg.medium_quality),
            }
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageVariantError(f"cannot render image variants: {exc}") from exc


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=int(quality), optimize=True, progressive=True)
    return buffer.getvalue()


__all__ = [
    "ImageVariantError",
    "MEDIUM_VARIANT",
    "THUMBNAIL_VARIANT",
    "VariantSettings",
    "render_variants",
]
