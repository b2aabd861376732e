import io

import pytest
from PyPDF2 import PdfReader

from errors import ImageDecodeError, InvalidInputError, PageIndexError, PdfDecodeError
from pdf_signer import (Placement, SignatureArea, compute_placement, embed_signature, fit_to_area,
                        get_page_count, get_page_dimensions, get_pdf_info, parse_areas)


@pytest.fixture
def signature(build_image):
    # 2:1 signature
    return build_image(size=(200, 100), color=(0, 0, 0, 0), mode='RGBA', stroke=(0, 0, 0, 255))


def xobject_ids(reader):
    ids = set()
    for page in reader.pages:
        resources = page['/Resources']
        if '/XObject' in resources:
            xobjects = resources['/XObject']
            for name in xobjects:
                ids.add(xobjects.raw_get(name).idnum)
    return ids


# ============== GEOMETRY ==============

def test_fit_to_area_matching_aspect_fills_box():
    assert fit_to_area(100, 40, 2.5) == (100, 40)


def test_fit_to_area_tall_signature_uses_box_height():
    assert fit_to_area(100, 40, 2.0) == (80, 40)


def test_fit_to_area_wide_signature_uses_box_width():
    assert fit_to_area(100, 100, 2.0) == (100, 50)


def test_compute_placement_flips_y_axis():
    area = SignatureArea(page=1, x=50, y=50, width=100, height=40)

    assert compute_placement(area, 612, 792, 200 / 80) == Placement(1, 50, 702, 100, 40)
    assert compute_placement(area, 612, 792, 2.0) == Placement(1, 50, 702, 80, 40)


def test_compute_placement_scales_from_preview_width():
    area = SignatureArea(page=1, x=10, y=20, width=50, height=20)

    placement = compute_placement(area, 612, 792, 2.5, preview_width=306)

    assert placement == Placement(1, 20, 712, 100, 40)


@pytest.mark.parametrize('preview_width', [0, -1, float('nan'), float('inf'), float('-inf')])
def test_compute_placement_rejects_bad_preview_width(preview_width):
    area = SignatureArea(page=1, x=10, y=20, width=50, height=20)

    with pytest.raises(InvalidInputError):
        compute_placement(area, 612, 792, 2.0, preview_width=preview_width)


def test_embed_signature_rejects_infinite_preview_width(build_pdf, signature):
    area = SignatureArea(page=1, x=10, y=20, width=50, height=20)

    with pytest.raises(InvalidInputError):
        embed_signature(build_pdf(), signature, [area], preview_width=float('inf'))


# ============== AREA PARSING ==============

def test_parse_areas_converts_records():
    areas = parse_areas([
        {'page': 1, 'x': 10, 'y': 20.5, 'width': 100, 'height': 40},
        {'page': 2.0, 'x': '0', 'y': 0, 'width': 1, 'height': 1},
    ])

    assert areas == [
        SignatureArea(page=1, x=10.0, y=20.5, width=100.0, height=40.0),
        SignatureArea(page=2, x=0.0, y=0.0, width=1.0, height=1.0),
    ]
    assert areas[0].to_dict() == {'page': 1, 'x': 10.0, 'y': 20.5, 'width': 100.0, 'height': 40.0}


@pytest.mark.parametrize('record', [
    {'x': 0, 'y': 0, 'width': 10, 'height': 10},
    {'page': 0, 'x': 0, 'y': 0, 'width': 10, 'height': 10},
    {'page': 1.5, 'x': 0, 'y': 0, 'width': 10, 'height': 10},
    {'page': True, 'x': 0, 'y': 0, 'width': 10, 'height': 10},
    {'page': '1', 'x': 0, 'y': 0, 'width': 10, 'height': 10},
    {'page': 1, 'x': -1, 'y': 0, 'width': 10, 'height': 10},
    {'page': 1, 'x': 0, 'y': 0, 'width': 0, 'height': 10},
    {'page': 1, 'x': 0, 'y': 0, 'width': 10, 'height': 'tall'},
    {'page': 1, 'x': float('nan'), 'y': 0, 'width': 10, 'height': 10},
    [1, 0, 0, 10, 10],
])
def test_parse_areas_rejects_malformed_records(record):
    with pytest.raises(InvalidInputError):
        parse_areas([record])


def test_parse_areas_requires_list():
    with pytest.raises(InvalidInputError):
        parse_areas({'page': 1, 'x': 0, 'y': 0, 'width': 10, 'height': 10})


# ============== EMBEDDING ==============

def test_embed_signature_places_signature(build_pdf, signature, image_draws):
    area = SignatureArea(page=1, x=50, y=50, width=100, height=40)

    reader = PdfReader(io.BytesIO(embed_signature(build_pdf(), signature, [area])))

    assert len(reader.pages) == 1
    draws = image_draws(reader.pages[0], reader)
    assert len(draws) == 1
    x, y, width, height = draws[0]
    assert (x, y, width, height) == (pytest.approx(50), pytest.approx(702), pytest.approx(80), pytest.approx(40))


def test_embed_signature_one_mark_per_area_on_same_page(build_pdf, signature, image_draws):
    areas = [
        SignatureArea(page=2, x=10, y=10, width=100, height=100),
        SignatureArea(page=2, x=300, y=400, width=60, height=20),
        SignatureArea(page=2, x=10, y=700, width=50, height=50),
    ]

    reader = PdfReader(io.BytesIO(embed_signature(build_pdf(num_pages=3), signature, areas)))

    assert len(image_draws(reader.pages[0], reader)) == 0
    assert len(image_draws(reader.pages[2], reader)) == 0
    draws = sorted(image_draws(reader.pages[1], reader))
    assert len(draws) == 3
    assert draws[0] == (pytest.approx(10), pytest.approx(67), pytest.approx(50), pytest.approx(25))
    assert draws[1] == (pytest.approx(10), pytest.approx(732), pytest.approx(100), pytest.approx(50))
    assert draws[2] == (pytest.approx(300), pytest.approx(372), pytest.approx(40), pytest.approx(20))


def test_embed_signature_embeds_image_once(build_pdf, signature, image_draws):
    areas = [
        SignatureArea(page=1, x=10, y=10, width=100, height=50),
        SignatureArea(page=1, x=10, y=100, width=100, height=50),
        SignatureArea(page=3, x=10, y=10, width=100, height=50),
    ]

    reader = PdfReader(io.BytesIO(embed_signature(build_pdf(num_pages=3), signature, areas)))

    assert [len(image_draws(page, reader)) for page in reader.pages] == [2, 0, 1]
    assert len(xobject_ids(reader)) == 1


def test_embed_signature_uses_each_page_height(build_pdf, signature, image_draws):
    area = SignatureArea(page=1, x=0, y=0, width=100, height=50)

    reader = PdfReader(io.BytesIO(embed_signature(build_pdf(pagesize=(595, 842)), signature, [area])))

    assert image_draws(reader.pages[0], reader) == [
        (pytest.approx(0), pytest.approx(792), pytest.approx(100), pytest.approx(50))
    ]


def test_embed_signature_rejects_page_out_of_range(build_pdf, signature):
    areas = [
        SignatureArea(page=1, x=0, y=0, width=100, height=50),
        SignatureArea(page=5, x=0, y=0, width=100, height=50),
    ]

    with pytest.raises(PageIndexError):
        embed_signature(build_pdf(num_pages=3), signature, areas)


def test_embed_signature_rejects_corrupt_pdf(signature):
    with pytest.raises(PdfDecodeError):
        embed_signature(b'%PDF-1.4 this is not really a pdf', signature,
                        [SignatureArea(page=1, x=0, y=0, width=10, height=10)])


def test_embed_signature_rejects_corrupt_signature(build_pdf):
    with pytest.raises(ImageDecodeError):
        embed_signature(build_pdf(), b'not a png', [SignatureArea(page=1, x=0, y=0, width=10, height=10)])


def test_embed_signature_without_areas_keeps_pages(build_pdf, signature, image_draws):
    reader = PdfReader(io.BytesIO(embed_signature(build_pdf(num_pages=2), signature, [])))

    assert len(reader.pages) == 2
    assert all(not image_draws(page, reader) for page in reader.pages)


# ============== PAGE QUERIES ==============

def test_page_queries(build_pdf):
    pdf = build_pdf(num_pages=2, pagesize=(595, 842))

    assert get_page_count(pdf) == 2
    assert get_page_dimensions(pdf) == {'width': 595.0, 'height': 842.0}
    assert get_page_dimensions(pdf, 2) == {'width': 595.0, 'height': 842.0}

    info = get_pdf_info(pdf)
    assert info['num_pages'] == 2
    assert info['pages'][1] == {'page_number': 2, 'width': 595.0, 'height': 842.0}


def test_page_dimensions_out_of_range(build_pdf):
    with pytest.raises(PageIndexError):
        get_page_dimensions(build_pdf(), 0)
    with pytest.raises(PageIndexError):
        get_page_dimensions(build_pdf(), 2)


def test_page_count_rejects_empty_input():
    with pytest.raises(PdfDecodeError):
        get_page_count(b'')
