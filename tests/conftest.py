import fitz
import pytest
from fastapi.testclient import TestClient
from pdf_form_builder.main import app

PAGE_WIDTH = 612
PAGE_HEIGHT = 792

def make_pdf(page_count=2):
    doc = fitz.open()
    for _ in range(page_count):
        doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    data = doc.tobytes()
    doc.close()
    return data

def _add_widget(page, field_type, name, rect, value=None):
    widget = fitz.Widget()
    widget.field_type = field_type
    widget.field_name = name
    widget.rect = rect
    if value is not None:
        widget.field_value = value
    page.add_widget(widget)

@pytest.fixture
def blank_pdf():
    return make_pdf()

@pytest.fixture
def form_pdf():
    """Two pages: text field full_name and checkbox agree on page 0, text field notes on page 1."""
    doc = fitz.open()
    doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    # a page object goes stale once another page is inserted
    first, second = doc[0], doc[1]
    _add_widget(first, fitz.PDF_WIDGET_TYPE_TEXT, "full_name", fitz.Rect(72, 72, 300, 96), "")
    _add_widget(first, fitz.PDF_WIDGET_TYPE_CHECKBOX, "agree", fitz.Rect(72, 120, 90, 138), False)
    _add_widget(second, fitz.PDF_WIDGET_TYPE_TEXT, "notes", fitz.Rect(72, 72, 400, 200), "")
    data = doc.tobytes()
    doc.close()
    return data

@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
