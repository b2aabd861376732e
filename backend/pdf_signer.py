"""
PDF signing utilities.
Overlay a signature image onto every requested area of a PDF.

Areas are given in the pixel space of the browser preview (top-left origin,
y pointing down). PDF pages use a bottom-left origin with y pointing up.
"""

import io
import logging
import math
from dataclasses import dataclass
from typing import NamedTuple, Optional

from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PyPdfError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from errors import ImageDecodeError, InvalidInputError, PageIndexError, PdfDecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureArea:
    """A rectangle on a 1-indexed page where the signature is drawn."""
    page: int
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_dict(cls, record: dict) -> 'SignatureArea':
        if not isinstance(record, dict):
            raise InvalidInputError(f"Signature area must be an object, got {type(record).__name__}")

        try:
            page = record['page']
            x, y = _number(record['x'], 'x'), _number(record['y'], 'y')
            width, height = _number(record['width'], 'width'), _number(record['height'], 'height')
        except KeyError as e:
            raise InvalidInputError(f"Signature area is missing {e}") from e

        if isinstance(page, bool) or not isinstance(page, (int, float)) or int(page) != page or page < 1:
            raise InvalidInputError(f"Signature area page must be a positive integer, got {page!r}")
        if x < 0 or y < 0:
            raise InvalidInputError("Signature area position cannot be negative")
        if width <= 0 or height <= 0:
            raise InvalidInputError("Signature area width and height must be positive")

        return cls(page=int(page), x=x, y=y, width=width, height=height)

    def to_dict(self) -> dict:
        return {
            'page': self.page,
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height
        }


class Placement(NamedTuple):
    """Where an image lands on a page, in PDF points."""
    page: int
    x: float
    y: float
    width: float
    height: float


def _number(value, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidInputError(f"Signature area {name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Signature area {name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidInputError(f"Signature area {name} must be finite")
    return number


def parse_areas(records) -> list[SignatureArea]:
    """Convert stored {page, x, y, width, height} records into SignatureAreas."""
    if not isinstance(records, list):
        raise InvalidInputError("Signature areas must be a list")
    return [SignatureArea.from_dict(record) for record in records]


def validate_areas(areas: list[SignatureArea], page_count: int) -> None:
    for area in areas:
        if not 1 <= area.page <= page_count:
            raise PageIndexError(f"Page {area.page} does not exist. PDF has {page_count} pages.")


def validate_preview_width(preview_width: float) -> float:
    if not math.isfinite(preview_width) or preview_width <= 0:
        raise InvalidInputError("Preview width must be a positive, finite number")
    return preview_width


def fit_to_area(width: float, height: float, aspect_ratio: float) -> tuple[float, float]:
    """
    Largest (width, height) with the given aspect ratio that fits in the box.
    Fills the box width first, and falls back to its height if that overflows.
    """
    draw_width = width
    draw_height = width / aspect_ratio

    if draw_height > height:
        draw_height = height
        draw_width = height * aspect_ratio

    return draw_width, draw_height


def compute_placement(
    area: SignatureArea,
    page_width: float,
    page_height: float,
    aspect_ratio: float,
    preview_width: Optional[float] = None
) -> Placement:
    """
    Map a preview-space area onto the page.

    Without preview_width the preview is assumed to match the page in points
    (1:1). With it, area coordinates are scaled by page_width / preview_width.
    The image is anchored to the area's top-left corner.
    """
    scale = 1.0
    if preview_width is not None:
        scale = page_width / validate_preview_width(preview_width)

    x = area.x * scale
    y_from_top = area.y * scale
    draw_width, draw_height = fit_to_area(area.width * scale, area.height * scale, aspect_ratio)

    # Convert from top-left origin to PDF bottom-left origin
    y = page_height - y_from_top - draw_height

    return Placement(area.page, x, y, draw_width, draw_height)


def _open_pdf(pdf_data: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(pdf_data))
        if reader.is_encrypted:
            raise PdfDecodeError("Encrypted PDFs are not supported")
        # Page tree is parsed lazily; force it so broken files fail here
        len(reader.pages)
    except (PyPdfError, ValueError, KeyError) as e:
        raise PdfDecodeError(f"Cannot read PDF: {e}") from e
    return reader


def _open_signature(signature_data: bytes) -> Image.Image:
    try:
        sig_image = Image.open(io.BytesIO(signature_data))
        sig_image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode signature image: {e}") from e

    if sig_image.mode != 'RGBA':
        sig_image = sig_image.convert('RGBA')
    return sig_image


def _page_size(page) -> tuple[float, float]:
    mediabox = page.mediabox
    return float(mediabox.width), float(mediabox.height)


def get_pdf_info(pdf_data: bytes) -> dict:
    """Get PDF metadata and page information."""
    reader = _open_pdf(pdf_data)
    pages = []

    for i, page in enumerate(reader.pages):
        width, height = _page_size(page)
        pages.append({
            'page_number': i + 1,
            'width': width,
            'height': height
        })

    metadata = {}
    if reader.metadata:
        metadata = {str(key): str(value) for key, value in reader.metadata.items()}

    return {
        'num_pages': len(reader.pages),
        'pages': pages,
        'metadata': metadata
    }


def get_page_count(pdf_data: bytes) -> int:
    return len(_open_pdf(pdf_data).pages)


def get_page_dimensions(pdf_data: bytes, page_number: int = 1) -> dict:
    """Width and height in points of a 1-indexed page."""
    reader = _open_pdf(pdf_data)
    page_count = len(reader.pages)
    if not 1 <= page_number <= page_count:
        raise PageIndexError(f"Page {page_number} does not exist. PDF has {page_count} pages.")

    width, height = _page_size(reader.pages[page_number - 1])
    return {'width': width, 'height': height}


def _render_overlay(page_sizes: dict, placements: dict, sig_image: Image.Image) -> bytes:
    """
    Build one overlay page per signed page.

    The same ImageReader is drawn for every placement, so reportlab stores the
    image as a single XObject that all placements reference.
    """
    packet = io.BytesIO()
    overlay_canvas = canvas.Canvas(packet)
    sig_reader = ImageReader(sig_image)

    for page_index in sorted(placements):
        overlay_canvas.setPageSize(page_sizes[page_index])
        for placement in placements[page_index]:
            overlay_canvas.drawImage(
                sig_reader,
                placement.x, placement.y,
                width=placement.width,
                height=placement.height,
                mask='auto'  # Preserve transparency
            )
        overlay_canvas.showPage()

    overlay_canvas.save()
    return packet.getvalue()


def embed_signature(
    pdf_data: bytes,
    signature_data: bytes,
    areas: list[SignatureArea],
    preview_width: Optional[float] = None
) -> bytes:
    """
    Draw the signature into every area and return the new PDF.

    Args:
        pdf_data: Original PDF bytes (left untouched)
        signature_data: PNG bytes of the prepared signature
        areas: Ordered SignatureAreas, pages 1-indexed
        preview_width: Width in pixels of the preview the areas were drawn
            on; None maps preview pixels 1:1 to PDF points

    Returns:
        Signed PDF as bytes, with one image placement per area

    Raises PdfDecodeError, ImageDecodeError, PageIndexError or
    InvalidInputError; nothing is returned on failure.
    """
    reader = _open_pdf(pdf_data)
    page_count = len(reader.pages)
    validate_areas(areas, page_count)

    sig_image = _open_signature(signature_data)
    aspect_ratio = sig_image.width / sig_image.height

    page_sizes = {}
    placements = {}
    for area in areas:
        page_index = area.page - 1
        if page_index not in page_sizes:
            page_sizes[page_index] = _page_size(reader.pages[page_index])
        page_width, page_height = page_sizes[page_index]

        placement = compute_placement(area, page_width, page_height, aspect_ratio, preview_width)
        placements.setdefault(page_index, []).append(placement)

    overlay_pages = {}
    if placements:
        overlay_reader = PdfReader(io.BytesIO(_render_overlay(page_sizes, placements, sig_image)))
        overlay_pages = dict(zip(sorted(placements), overlay_reader.pages))

    writer = PdfWriter()
    for i, page in enumerate(reader.pages):
        if i in overlay_pages:
            page.merge_page(overlay_pages[i])
        writer.add_page(page)

    # Copy metadata
    if reader.metadata:
        writer.add_metadata(reader.metadata)

    output_buffer = io.BytesIO()
    writer.write(output_buffer)

    logger.info(
        "Embedded signature into %d area(s) across %d page(s)",
        len(areas), len(overlay_pages)
    )
    return output_buffer.getvalue()
