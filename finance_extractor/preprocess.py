# finance_extractor/preprocess.py
import io
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterator

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from .config import MAX_IMAGE_WIDTH
from .errors import ImageProcessingError

logger = logging.getLogger(__name__)


def optimize_image(raw_bytes: bytes, max_width: int = MAX_IMAGE_WIDTH) -> Image.Image:
    """
    Resize to at most `max_width` (never upscaled, aspect preserved),
    stretch the contrast and sharpen. Raises ImageProcessingError.
    """
    try:
        img = Image.open(io.BytesIO(raw_bytes))
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")

        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, height), Image.Resampling.LANCZOS)

        img = ImageOps.autocontrast(img)
        return img.filter(ImageFilter.SHARPEN)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageProcessingError(f"Could not preprocess image: {e}") from e


@contextmanager
def optimized_image_file(raw_bytes: bytes, max_width: int = MAX_IMAGE_WIDTH) -> Iterator[str]:
    """
    Write the optimized image to a temp file and yield its path.
    The file is removed when the block exits, whether or not it raised.
    """
    img = optimize_image(raw_bytes, max_width=max_width)
    fd, path = tempfile.mkstemp(prefix="optimized_", suffix=".png")
    try:
        with os.fdopen(fd, "wb") as fh:
            img.save(fh, format="PNG")
    except OSError as e:
        _remove_quietly(path)
        raise ImageProcessingError(f"Could not write optimized image: {e}") from e

    try:
        yield path
    finally:
        _remove_quietly(path)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not clean up optimized image %s: %s", path, e)
