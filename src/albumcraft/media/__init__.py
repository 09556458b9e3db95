"""Image processing for uploaded photos."""

from .image_variants import ImageVariantError, VariantSettings, render_variants

__all__ = ["ImageVariantError", "VariantSettings", "render_variants"]
