import io

import pytest
from PIL import Image, ImageDraw
from PyPDF2.generic import ContentStream
from reportlab.pdfgen import canvas

from app import create_app
from models import db


def _build_pdf(num_pages=1, pagesize=(612, 792)):
    buffer = io.BytesIO()
    pdf_canvas = canvas.Canvas(buffer, pagesize=pagesize)
    for i in range(num_pages):
        pdf_canvas.drawString(72, 72, f"Page {i + 1}")
        pdf_canvas.showPage()
    pdf_canvas.save()
    return buffer.getvalue()


def _build_image(size=(200, 80), color=(255, 255, 255), mode='RGB', image_format='PNG', stroke=None):
    img = Image.new(mode, size, color)
    if stroke:
        draw = ImageDraw.Draw(img)
        draw.line([(10, size[1] // 2), (size[0] - 10, size[1] // 2)], fill=stroke, width=5)
    output = io.BytesIO()
    img.save(output, format=image_format)
    return output.getvalue()


def _multiply(m, ctm):
    a, b, c, d, e, f = m
    ca, cb, cc, cd, ce, cf = ctm
    return [
        a * ca + b * cc,
        a * cb + b * cd,
        c * ca + d * cc,
        c * cb + d * cd,
        e * ca + f * cc + ce,
        e * cb + f * cd + cf,
    ]


def _image_draws(page, reader):
    """(x, y, width, height) of every XObject drawn on the page."""
    ctm = [1.0, 0.0, 0.0, 1.0, 0.0, 0.0]
    stack = []
    draws = []
    for operands, operator in ContentStream(page.get_contents(), reader).operations:
        if operator == b'q':
            stack.append(ctm)
        elif operator == b'Q':
            ctm = stack.pop()
        elif operator == b'cm':
            ctm = _multiply([float(v) for v in operands], ctm)
        elif operator == b'Do':
            draws.append((ctm[4], ctm[5], ctm[0], ctm[3]))
    return draws


@pytest.fixture
def build_pdf():
    return _build_pdf


@pytest.fixture
def build_image():
    return _build_image


@pytest.fixture
def image_draws():
    return _image_draws


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'BASE_URL': 'http://testserver',
        'UPLOAD_FOLDER': str(tmp_path / 'pdfs'),
        'SIGNED_FOLDER': str(tmp_path / 'signed'),
        'SIGNATURES_FOLDER': str(tmp_path / 'signatures'),
        'PREVIEW_WIDTH': None,
    })

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
