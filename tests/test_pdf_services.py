import fitz
import pytest

from pdf_form_builder.core.pdf_services import (
    PDFProcessingError,
    PageOutOfRangeError,
    add_text_fields,
    fill_form_fields,
    list_form_fields,
    render_page,
    to_page_rect,
    from_page_rect,
)
from pdf_form_builder.models.form_models import FieldDefinition
from conftest import PAGE_HEIGHT, PAGE_WIDTH


def _values(pdf_bytes):
    return {f.name: f.value for f in list_form_fields(pdf_bytes)}


def _definition(name, page_index=0, x=50.0, y=600.0, width=200.0, height=24.0, **kwargs):
    return FieldDefinition(page_index=page_index, field_name=name, x=x, y=y, width=width, height=height, **kwargs)


def test_page_rect_conversion_flips_vertical_axis():
    definition = _definition("a", x=10, y=700, width=100, height=20)
    rect = to_page_rect(definition, PAGE_HEIGHT)
    assert (rect.x0, rect.y0, rect.x1, rect.y1) == (10, 72, 110, 92)
    assert from_page_rect(rect, PAGE_HEIGHT) == {"x": 10, "y": 700, "width": 100, "height": 20}


def test_fill_writes_values_into_text_fields(form_pdf):
    result = fill_form_fields(form_pdf, {"full_name": "Jane Doe", "notes": 42})

    values = _values(result.pdf_bytes)
    assert values["full_name"] == "Jane Doe"
    assert values["notes"] == "42"
    assert [(o.field_name, o.status) for o in result.outcomes] == [("full_name", "applied"), ("notes", "applied")]
    assert result.skipped == []


def test_fill_unknown_field_leaves_form_unchanged(form_pdf):
    before = _values(form_pdf)

    result = fill_form_fields(form_pdf, {"does_not_exist": "x"})

    assert _values(result.pdf_bytes) == before
    assert len(result.skipped) == 1
    assert result.skipped[0].reason == "not_found"


def test_fill_skips_non_text_fields(form_pdf):
    result = fill_form_fields(form_pdf, {"agree": "yes", "full_name": "Ann"})

    reasons = {o.field_name: o.reason for o in result.outcomes}
    assert reasons == {"agree": "not_text_field", "full_name": None}
    assert _values(result.pdf_bytes)["full_name"] == "Ann"


@pytest.mark.parametrize("empty", [None, ""])
def test_fill_clears_existing_value(form_pdf, empty):
    filled = fill_form_fields(form_pdf, {"full_name": "Someone"}).pdf_bytes
    assert _values(filled)["full_name"] == "Someone"

    result = fill_form_fields(filled, {"full_name": empty})

    assert [o.status for o in result.outcomes] == ["applied"]
    assert _values(result.pdf_bytes)["full_name"] == ""


def test_fill_rejects_unreadable_pdf():
    with pytest.raises(PDFProcessingError, match="Failed to load PDF"):
        fill_form_fields(b"this is not a pdf", {"a": "b"})


def test_added_fields_round_trip(blank_pdf):
    definitions = [
        _definition("first_name", page_index=0, x=72, y=700, width=180, height=20),
        _definition("comments", page_index=1, x=72, y=300, width=400, height=120, multiline=True),
    ]

    result = add_text_fields(blank_pdf, definitions)

    fields = {f.name: f for f in list_form_fields(result.pdf_bytes)}
    assert set(fields) == {"first_name", "comments"}
    for definition in definitions:
        found = fields[definition.field_name]
        assert found.page_index == definition.page_index
        assert found.field_type == "Text"
        assert found.x == pytest.approx(definition.x, abs=0.01)
        assert found.y == pytest.approx(definition.y, abs=0.01)
        assert found.width == pytest.approx(definition.width, abs=0.01)
        assert found.height == pytest.approx(definition.height, abs=0.01)
    assert all(o.status == "added" for o in result.outcomes)


def test_add_skips_out_of_range_pages_but_keeps_the_rest(blank_pdf):
    definitions = [
        _definition("on_first", page_index=0),
        _definition("nowhere", page_index=5),
        _definition("negative", page_index=-1),
        _definition("on_second", page_index=1),
    ]

    result = add_text_fields(blank_pdf, definitions)

    assert {f.name for f in list_form_fields(result.pdf_bytes)} == {"on_first", "on_second"}
    skipped = {o.field_name: o.reason for o in result.skipped}
    assert skipped == {"nowhere": "page_out_of_range", "negative": "page_out_of_range"}


def test_add_skips_duplicate_and_existing_names(form_pdf):
    definitions = [
        _definition("email"),
        _definition("email", y=500),
        _definition("full_name", y=400),
    ]

    result = add_text_fields(form_pdf, definitions)

    skipped = {o.field_name: o.reason for o in result.skipped}
    assert skipped == {"email": "duplicate_name", "full_name": "name_exists"}
    assert {f.name for f in list_form_fields(result.pdf_bytes)} == {"full_name", "agree", "notes", "email"}


def test_added_field_styling_and_defaults(blank_pdf):
    definitions = [_definition("bio", multiline=True, default_value="hello")]

    pdf_bytes = add_text_fields(blank_pdf, definitions).pdf_bytes

    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        widget = next(doc[0].widgets())
        assert widget.field_value == "hello"
        assert widget.field_flags & fitz.PDF_TX_FIELD_IS_MULTILINE
    finally:
        doc.close()


def test_list_fields_reports_types_and_pages(form_pdf):
    fields = list_form_fields(form_pdf)

    assert [(f.name, f.page_index) for f in fields] == [("full_name", 0), ("agree", 0), ("notes", 1)]
    full_name = fields[0]
    assert full_name.x == pytest.approx(72)
    assert full_name.y == pytest.approx(PAGE_HEIGHT - 96)
    assert full_name.width == pytest.approx(228)
    assert full_name.height == pytest.approx(24)
    assert fields[1].field_type == "CheckBox"


def test_render_page_scales_to_width(blank_pdf):
    rendered = render_page(blank_pdf, 1, 306, overlays=[_definition("box", page_index=1)])

    assert rendered.png_bytes.startswith(b"\x89PNG")
    assert rendered.scale == pytest.approx(0.5)
    assert rendered.page_width == PAGE_WIDTH
    assert rendered.page_height == PAGE_HEIGHT
    assert rendered.page_count == 2


def test_render_page_rejects_missing_page(blank_pdf):
    with pytest.raises(PageOutOfRangeError, match="out of range"):
        render_page(blank_pdf, 2, 400)
    with pytest.raises(PageOutOfRangeError):
        render_page(blank_pdf, -1, 400)


def test_render_page_returns_overlay_boxes_for_that_page(blank_pdf):
    definitions = [
        _definition("top_left", page_index=0, x=0, y=PAGE_HEIGHT - 20, width=100, height=20),
        _definition("elsewhere", page_index=1),
    ]

    rendered = render_page(blank_pdf, 0, PAGE_WIDTH * 2, overlays=definitions)

    [box] = rendered.overlays
    assert box["fieldName"] == "top_left"
    assert (box["left"], box["top"], box["width"], box["height"]) == pytest.approx((0, 0, 200, 40))
