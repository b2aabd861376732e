"""
Signature processing utilities.
- Data URL decoding (canvas exports)
- Background removal
- Resizing for PDF embedding
"""

import base64
import binascii
import io
import logging
import re

from PIL import Image, ImageChops, UnidentifiedImageError

from errors import ImageDecodeError, InvalidInputError

logger = logging.getLogger(__name__)

# Pixels brighter than this on all of R, G and B are treated as background
BACKGROUND_THRESHOLD = 240

DEFAULT_MAX_WIDTH = 300

DATA_URL_PATTERN = re.compile(r'^data:image/\w+;base64,')

# Modes Pillow can write straight to PNG
PNG_MODES = ('1', 'L', 'LA', 'P', 'RGB', 'RGBA')

ALLOWED_FORMATS = ('PNG', 'JPEG')


def _open_image(image_data: bytes) -> Image.Image:
    """Decode image bytes, raising ImageDecodeError on anything unreadable."""
    try:
        img = Image.open(io.BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode signature image: {e}") from e
    return img


def _to_png(img: Image.Image) -> bytes:
    output = io.BytesIO()
    img.save(output, format='PNG', optimize=True)
    return output.getvalue()


def decode_data_url(data_url: str) -> bytes:
    """
    Convert a canvas data URL (data:image/png;base64,...) to raw bytes.
    """
    match = DATA_URL_PATTERN.match(data_url)
    if not match:
        raise InvalidInputError("Signature data must be a base64 image data URL")

    try:
        # Line-wrapped base64 is accepted
        payload = re.sub(r'\s+', '', data_url[match.end():])
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"Signature data is not valid base64: {e}") from e


def remove_background(image_data: bytes, threshold: int = BACKGROUND_THRESHOLD) -> bytes:
    """
    Simple background removal using a global brightness threshold.
    Works well for signatures photographed on white paper.

    Every pixel whose R, G and B all exceed the threshold becomes fully
    transparent. Everything else, alpha included, is left as it was. Note that
    white areas enclosed by the strokes are cleared as well.
    """
    img = _open_image(image_data).convert('RGBA')

    r, g, b, alpha = img.split()

    # 255 where the channel is above threshold, 0 elsewhere
    bright = [band.point(lambda v: 255 if v > threshold else 0) for band in (r, g, b)]
    background = ImageChops.multiply(ImageChops.multiply(bright[0], bright[1]), bright[2])

    transparent = Image.new('L', img.size, 0)
    img.putalpha(Image.composite(transparent, alpha, background))

    return _to_png(img)


def optimize_for_pdf(image_data: bytes, max_width: int = DEFAULT_MAX_WIDTH) -> bytes:
    """Shrink the image to at most max_width pixels wide. Never upscales."""
    if max_width <= 0:
        raise InvalidInputError(f"max_width must be positive, got {max_width}")

    img = _open_image(image_data)
    if img.mode not in PNG_MODES:
        img = img.convert('RGBA')

    width, height = img.size
    if width > max_width:
        new_height = max(1, round(height * max_width / width))
        img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)
        logger.debug("Resized signature from %dx%d to %dx%d", width, height, max_width, new_height)

    return _to_png(img)


def process_signature(image_data: bytes, remove_bg: bool = True, max_width: int = DEFAULT_MAX_WIDTH) -> bytes:
    """
    Prepare a signature for embedding:
    1. Remove background (uploaded photos only)
    2. Resize to fit max_width

    Canvas drawings are already transparent, so callers pass remove_bg=False.

    Returns: PNG bytes
    """
    if remove_bg:
        image_data = remove_background(image_data)

    return optimize_for_pdf(image_data, max_width)


def validate_image(image_data: bytes) -> tuple[bool, str]:
    """
    Validate that the uploaded file is a usable signature image.
    Returns: (is_valid, error_message)
    """
    try:
        img = Image.open(io.BytesIO(image_data))
        img.verify()

        # Re-open after verify (verify leaves the image unusable)
        img = Image.open(io.BytesIO(image_data))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        return False, f"Invalid image file: {e}"

    if img.format not in ALLOWED_FORMATS:
        return False, f"Unsupported format: {img.format}. Use PNG or JPEG."

    width, height = img.size
    if width < 20 or height < 10:
        return False, "Image too small. Minimum size is 20x10 pixels."
    if width > 4000 or height > 4000:
        return False, "Image too large. Maximum size is 4000x4000 pixels."

    return True, ""
