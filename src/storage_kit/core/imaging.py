"""
Image Processing Helpers

Image detection and JPEG rendition encoding shared by every backend.
"""

import io
from typing import BinaryIO, Tuple

from PIL import Image, ImageOps

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tif", ".tiff"})

IMAGES_FOLDER = "Images"
OTHERS_FOLDER = "Others"

RENDITION_CONTENT_TYPE = "image/jpeg"
RENDITION_EXTENSION = ".jpg"


def is_image_extension(extension: str) -> bool:
    """True for known image extensions. Accepts ".jpg" or "jpg", any case."""
    if not extension or not extension.strip():
        return False
    extension = extension.strip().lower()
    if not extension.startswith("."):
        extension = "." + extension
    return extension in IMAGE_EXTENSIONS


def get_file_type_folder(extension: str) -> str:
    return IMAGES_FOLDER if is_image_extension(extension) else OTHERS_FOLDER


def clamp_quality(quality: int) -> int:
    return max(1, min(100, int(quality)))


def load_image(source: BinaryIO) -> Image.Image:
    """Decode an image once into memory, applying EXIF orientation.

    The returned image is fully loaded and independent of ``source``.
    """
    source.seek(0)
    with Image.open(source) as opened:
        image = ImageOps.exif_transpose(opened)
        image.load()
    return image


def fit_within(size: Tuple[int, int], max_width: int, max_height: int) -> Tuple[int, int]:
    """Target size that fits the box, preserving aspect ratio and never upscaling."""
    if max_width <= 0 or max_height <= 0:
        raise ValueError(f"Invalid bounding box: {max_width}x{max_height}")

    width, height = size
    if width <= max_width and height <= max_height:
        return width, height

    scale = min(max_width / width, max_height / height)
    return max(1, min(max_width, round(width * scale))), max(1, min(max_height, round(height * scale)))


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def create_resized_jpeg(image: Image.Image, max_width: int, max_height: int, quality: int) -> bytes:
    """Resize a decoded image to fit the box and encode it as JPEG.

    The source image is left untouched so it can be reused for further
    renditions. The quality is clamped into 1..100.
    """
    target = fit_within(image.size, max_width, max_height)

    rendition = image.copy()
    if target != rendition.size:
        rendition = rendition.resize(target, Image.Resampling.LANCZOS)
    rendition = _to_rgb(rendition)

    output = io.BytesIO()
    rendition.save(output, format="JPEG", quality=clamp_quality(quality), optimize=True)
    return output.getvalue()
