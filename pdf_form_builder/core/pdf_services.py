import fitz  # PyMuPDF
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set
from starlette.concurrency import run_in_threadpool
from pdf_form_builder.models.form_models import FieldDefinition, FieldOutcome, FormFieldInfo
from pdf_form_builder.core.drawing import Viewport, field_overlays

logger = logging.getLogger(__name__)

# Styling applied to every field created by the field-adder.
TEXT_COLOR = (0, 0, 0)
BORDER_COLOR = (0.75, 0.75, 0.75)
FILL_COLOR = (0.94, 0.94, 0.94)
BORDER_WIDTH = 1
TEXT_FONT = "Helv"
TEXT_FONTSIZE = 0  # auto-size to the rectangle

OVERLAY_COLOR = (0.86, 0.2, 0.2)

class PDFProcessingError(Exception):
    """Raised when a PDF cannot be loaded or serialized."""

class PageOutOfRangeError(PDFProcessingError):
    """Raised when a requested page index does not exist in the document."""

@dataclass
class OperationResult:
    pdf_bytes: bytes
    outcomes: List[FieldOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> List[FieldOutcome]:
        return [o for o in self.outcomes if o.status == "skipped"]

@dataclass
class RenderedPage:
    png_bytes: bytes
    scale: float
    page_width: float
    page_height: float
    page_count: int
    overlays: List[Dict[str, Any]] = field(default_factory=list)

@contextmanager
def open_pdf(pdf_bytes: bytes) -> Iterator[fitz.Document]:
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise PDFProcessingError(f"Failed to load PDF: {e}") from e
    try:
        if doc.needs_pass:
            raise PDFProcessingError("Failed to load PDF: document is password protected")
        yield doc
    finally:
        doc.close()

def save_pdf(doc: fitz.Document) -> bytes:
    try:
        return doc.tobytes(garbage=3, deflate=True)
    except Exception as e:
        raise PDFProcessingError(f"Failed to save PDF: {e}") from e

def to_page_rect(definition: FieldDefinition, page_height: float) -> fitz.Rect:
    """Convert a bottom-left origin definition into PyMuPDF's top-left page space."""
    top = page_height - (definition.y + definition.height)
    return fitz.Rect(definition.x, top, definition.x + definition.width, top + definition.height)

def from_page_rect(rect: fitz.Rect, page_height: float) -> Dict[str, float]:
    return {
        "x": rect.x0,
        "y": page_height - rect.y1,
        "width": rect.width,
        "height": rect.height,
    }

def _coerce_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)

def _existing_field_types(doc: fitz.Document) -> Dict[str, Set[int]]:
    types: Dict[str, Set[int]] = {}
    for page in doc:
        for widget in page.widgets():
            if widget.field_name:
                types.setdefault(widget.field_name, set()).add(widget.field_type)
    return types

def fill_form_fields(pdf_bytes: bytes, values: Mapping[str, Any]) -> OperationResult:
    """Write values into text fields that already exist in the PDF's form.

    Unknown names and names of non-text fields are skipped and reported; the
    document is only rejected when it cannot be loaded or saved.
    """
    outcomes: List[FieldOutcome] = []
    with open_pdf(pdf_bytes) as doc:
        field_types = _existing_field_types(doc)
        pending: Dict[str, str] = {}
        for name, value in values.items():
            types = field_types.get(name)
            if not types:
                logger.warning(f"Field \"{name}\" not found in PDF form.")
                outcomes.append(FieldOutcome(field_name=name, status="skipped", reason="not_found"))
                continue
            if types != {fitz.PDF_WIDGET_TYPE_TEXT}:
                logger.warning(f"Field \"{name}\" is not a text field; skipping.")
                outcomes.append(FieldOutcome(field_name=name, status="skipped", reason="not_text_field"))
                continue
            pending[name] = _coerce_value(value)
            outcomes.append(FieldOutcome(field_name=name, status="applied"))

        for page in doc:
            for widget in page.widgets():
                if widget.field_name in pending:
                    value = pending[widget.field_name]
                    widget.field_value = value
                    widget.update()
                    if not value:
                        # PyMuPDF leaves the previous /V in place for empty values
                        doc.xref_set_key(widget.xref, "V", "()")

        logger.info(f"Filled {len(pending)} of {len(values)} requested fields.")
        return OperationResult(pdf_bytes=save_pdf(doc), outcomes=outcomes)

def add_text_fields(pdf_bytes: bytes, definitions: Sequence[FieldDefinition]) -> OperationResult:
    """Create a styled text input for each definition and return the new PDF."""
    outcomes: List[FieldOutcome] = []
    with open_pdf(pdf_bytes) as doc:
        taken = set(_existing_field_types(doc))
        seen: Set[str] = set()
        for definition in definitions:
            name = definition.field_name
            page_index = definition.page_index

            if not 0 <= page_index < doc.page_count:
                logger.warning(
                    f"Page index {page_index} out of range for field \"{name}\" "
                    f"(document has {doc.page_count} pages); skipping."
                )
                outcomes.append(FieldOutcome(field_name=name, status="skipped", reason="page_out_of_range", page_index=page_index))
                continue
            if name in seen:
                logger.warning(f"Field \"{name}\" defined more than once; skipping duplicate.")
                outcomes.append(FieldOutcome(field_name=name, status="skipped", reason="duplicate_name", page_index=page_index))
                continue
            if name in taken:
                logger.warning(f"Field \"{name}\" already exists in PDF form; skipping.")
                outcomes.append(FieldOutcome(field_name=name, status="skipped", reason="name_exists", page_index=page_index))
                continue

            page = doc[page_index]
            widget = fitz.Widget()
            widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
            widget.field_name = name
            widget.rect = to_page_rect(definition, page.rect.height)
            widget.text_color = TEXT_COLOR
            widget.border_color = BORDER_COLOR
            widget.fill_color = FILL_COLOR
            widget.border_width = BORDER_WIDTH
            widget.text_font = TEXT_FONT
            widget.text_fontsize = TEXT_FONTSIZE
            if definition.multiline:
                widget.field_flags |= fitz.PDF_TX_FIELD_IS_MULTILINE
            if definition.default_value:
                widget.field_value = definition.default_value
            page.add_widget(widget)

            seen.add(name)
            outcomes.append(FieldOutcome(field_name=name, status="added", page_index=page_index))

        logger.info(f"Added {len(seen)} of {len(definitions)} requested fields.")
        return OperationResult(pdf_bytes=save_pdf(doc), outcomes=outcomes)

def list_form_fields(pdf_bytes: bytes) -> List[FormFieldInfo]:
    fields: List[FormFieldInfo] = []
    seen: Set[str] = set()
    with open_pdf(pdf_bytes) as doc:
        for page in doc:
            for widget in page.widgets():
                name = widget.field_name
                if not name or name in seen:
                    continue
                seen.add(name)
                value = widget.field_value
                fields.append(FormFieldInfo(
                    name=name,
                    field_type=widget.field_type_string,
                    page_index=page.number,
                    value=None if value is None else str(value),
                    **from_page_rect(widget.rect, page.rect.height),
                ))
    return fields

def render_page(
    pdf_bytes: bytes,
    page_index: int,
    width: int,
    overlays: Optional[Sequence[FieldDefinition]] = None,
) -> RenderedPage:
    """Rasterize one page to PNG, scaled so the image is ``width`` pixels wide.

    Definitions placed on the page are outlined in the image and returned as
    pixel boxes on the rendered image; the source bytes are untouched.
    """
    with open_pdf(pdf_bytes) as doc:
        if not 0 <= page_index < doc.page_count:
            raise PageOutOfRangeError(f"Page index {page_index} out of range (document has {doc.page_count} pages)")
        page = doc[page_index]
        page_rect = page.rect
        for definition in overlays or ():
            if definition.page_index == page_index:
                page.draw_rect(to_page_rect(definition, page_rect.height), color=OVERLAY_COLOR, width=1)
        viewport = Viewport.for_page(page_rect.width, page_rect.height, width)
        scale = viewport.scale
        try:
            pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            png_bytes = pixmap.tobytes("png")
        except Exception as e:
            raise PDFProcessingError(f"Failed to render page {page_index}: {e}") from e
        return RenderedPage(
            png_bytes=png_bytes,
            scale=scale,
            page_width=page_rect.width,
            page_height=page_rect.height,
            page_count=doc.page_count,
            overlays=field_overlays(overlays or (), page_index, viewport),
        )

class PDFFormService:
    """Async facade over the blocking PyMuPDF operations."""

    def __init__(self, default_render_width: int = 800):
        self.default_render_width = default_render_width

    async def fill_fields(self, pdf_bytes: bytes, values: Mapping[str, Any]) -> OperationResult:
        return await run_in_threadpool(fill_form_fields, pdf_bytes, values)

    async def add_fields(self, pdf_bytes: bytes, definitions: Sequence[FieldDefinition]) -> OperationResult:
        return await run_in_threadpool(add_text_fields, pdf_bytes, definitions)

    async def list_fields(self, pdf_bytes: bytes) -> List[FormFieldInfo]:
        return await run_in_threadpool(list_form_fields, pdf_bytes)

    async def render(
        self,
        pdf_bytes: bytes,
        page_index: int = 0,
        width: Optional[int] = None,
        overlays: Optional[Sequence[FieldDefinition]] = None,
    ) -> RenderedPage:
        return await run_in_threadpool(render_page, pdf_bytes, page_index, width or self.default_render_width, overlays)
