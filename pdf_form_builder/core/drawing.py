"""Drawing interaction for placing fields on a rendered page.

A ``DrawingSession`` holds everything the browser UI keeps between mouse
events: the loaded document's page count, the current page and its viewport,
the in-progress rectangle, and the list of named field definitions.

Client coordinates are pixels relative to the canvas' top-left corner. PDF
coordinates are points with the origin at the page's bottom-left corner.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from pdf_form_builder.models.form_models import FieldDefinition

logger = logging.getLogger(__name__)

MIN_DRAW_SIZE = 10  # px
PRIMARY_BUTTON = 0

@dataclass(frozen=True)
class Point:
    x: float
    y: float

@dataclass(frozen=True)
class ClientRect:
    left: float
    top: float
    width: float
    height: float

@dataclass(frozen=True)
class Viewport:
    """Render scale (pixels per point) and the canvas height in pixels."""
    scale: float
    canvas_height: float

    @classmethod
    def for_page(cls, page_width: float, page_height: float, container_width: float) -> "Viewport":
        scale = container_width / page_width
        return cls(scale=scale, canvas_height=page_height * scale)

def client_to_pdf(point: Point, viewport: Viewport) -> Point:
    return Point(point.x / viewport.scale, (viewport.canvas_height - point.y) / viewport.scale)

def pdf_to_client(point: Point, viewport: Viewport) -> Point:
    return Point(point.x * viewport.scale, viewport.canvas_height - point.y * viewport.scale)

def rect_between(a: Point, b: Point) -> ClientRect:
    return ClientRect(min(a.x, b.x), min(a.y, b.y), abs(b.x - a.x), abs(b.y - a.y))

def client_rect_to_pdf(rect: ClientRect, viewport: Viewport) -> Dict[str, float]:
    bottom_left = client_to_pdf(Point(rect.left, rect.top + rect.height), viewport)
    top_right = client_to_pdf(Point(rect.left + rect.width, rect.top), viewport)
    return {
        "x": min(bottom_left.x, top_right.x),
        "y": min(bottom_left.y, top_right.y),
        "width": abs(top_right.x - bottom_left.x),
        "height": abs(top_right.y - bottom_left.y),
    }

def is_accidental(rect: ClientRect, min_size: float = MIN_DRAW_SIZE) -> bool:
    """True for drags too small to be a field, i.e. plain clicks."""
    return rect.width < min_size or rect.height < min_size

def definition_to_client_rect(definition: FieldDefinition, viewport: Viewport) -> ClientRect:
    top_left = pdf_to_client(Point(definition.x, definition.y + definition.height), viewport)
    bottom_right = pdf_to_client(Point(definition.x + definition.width, definition.y), viewport)
    return rect_between(top_left, bottom_right)

def field_overlays(definitions: Iterable[FieldDefinition], page_index: int, viewport: Viewport) -> List[Dict[str, Any]]:
    """Pixel boxes, relative to the rendered image, for the definitions on one page."""
    overlays = []
    for definition in definitions:
        if definition.page_index != page_index:
            continue
        rect = definition_to_client_rect(definition, viewport)
        overlays.append({
            "fieldName": definition.field_name,
            "left": rect.left,
            "top": rect.top,
            "width": rect.width,
            "height": rect.height,
        })
    return overlays

class DrawState(enum.Enum):
    IDLE = "idle"
    DRAWING = "drawing"

@dataclass(frozen=True)
class PendingField:
    """A finished rectangle waiting for a name."""
    page_index: int
    x: float
    y: float
    width: float
    height: float

class DrawingSession:
    def __init__(self, min_draw_size: float = MIN_DRAW_SIZE):
        self.min_draw_size = min_draw_size
        self.page_count = 0
        self.current_page = 1
        self.viewport: Optional[Viewport] = None
        self.state = DrawState.IDLE
        self.anchor: Optional[Point] = None
        self.current_rect: Optional[ClientRect] = None
        self.pending: Optional[PendingField] = None
        self.fields: List[FieldDefinition] = []
        self.status_message = "Please upload a PDF file to begin."

    @property
    def is_loaded(self) -> bool:
        return self.page_count > 0 and self.viewport is not None

    def load_document(self, page_count: int, viewport: Viewport) -> None:
        """Start over with a freshly loaded PDF; previously defined fields are dropped."""
        if page_count < 1:
            raise ValueError("document must have at least one page")
        self.page_count = page_count
        self.current_page = 1
        self.viewport = viewport
        self.fields.clear()
        self._reset_drag()
        self.pending = None
        self.status_message = "PDF loaded successfully. Draw fields on the PDF."

    def show_page(self, page_number: int, viewport: Optional[Viewport] = None) -> bool:
        """Switch to a 1-based page. Returns False when the page does not exist."""
        if not self.is_loaded or not 1 <= page_number <= self.page_count:
            return False
        self.current_page = page_number
        if viewport is not None:
            self.viewport = viewport
        self._reset_drag()
        return True

    def next_page(self) -> bool:
        return self.show_page(self.current_page + 1)

    def previous_page(self) -> bool:
        return self.show_page(self.current_page - 1)

    # mouse handlers

    def press(self, x: float, y: float, button: int = PRIMARY_BUTTON) -> bool:
        if not self.is_loaded:
            self.status_message = "Please load a PDF first to draw fields."
            return False
        if button != PRIMARY_BUTTON or self.pending is not None:
            return False
        self.state = DrawState.DRAWING
        self.anchor = Point(x, y)
        self.current_rect = ClientRect(x, y, 0, 0)
        return True

    def move(self, x: float, y: float) -> Optional[ClientRect]:
        if self.state is not DrawState.DRAWING:
            return None
        self.current_rect = rect_between(self.anchor, Point(x, y))
        return self.current_rect

    def release(self, x: float, y: float) -> Optional[PendingField]:
        """Finish the drag. Rectangles under the threshold count as clicks and are dropped."""
        if self.state is not DrawState.DRAWING:
            return None
        rect = rect_between(self.anchor, Point(x, y))
        self._reset_drag()
        if is_accidental(rect, self.min_draw_size):
            logger.debug(f"Drawing too small ({rect.width}x{rect.height}); discarded.")
            return None
        self.pending = PendingField(page_index=self.current_page - 1, **client_rect_to_pdf(rect, self.viewport))
        return self.pending

    # naming prompt

    def confirm(self, name: str, default_value: str = "", multiline: bool = False) -> FieldDefinition:
        if self.pending is None:
            raise ValueError("no drawn rectangle is waiting for a name")
        name = name.strip()
        if not name:
            raise ValueError("Please enter a field name.")
        pending = self.pending
        definition = FieldDefinition(
            page_index=pending.page_index,
            field_name=name,
            x=pending.x,
            y=pending.y,
            width=pending.width,
            height=pending.height,
            multiline=multiline,
            default_value=default_value.strip(),
        )
        self.fields.append(definition)
        self.pending = None
        self.status_message = f"Field \"{name}\" added."
        return definition

    def cancel(self) -> None:
        self.pending = None
        self._reset_drag()

    def remove_field(self, index: int) -> FieldDefinition:
        if not 0 <= index < len(self.fields):
            raise IndexError(f"no field at index {index}")
        removed = self.fields.pop(index)
        self.status_message = f"Field \"{removed.field_name}\" removed."
        return removed

    def overlays(self) -> List[ClientRect]:
        """Client rectangles for every field on the current page."""
        if self.viewport is None:
            return []
        page_index = self.current_page - 1
        return [definition_to_client_rect(f, self.viewport) for f in self.fields if f.page_index == page_index]

    def payload(self) -> List[Dict[str, Any]]:
        """The ``fields`` form value posted to ``/add-fillable-fields``."""
        return [f.model_dump(by_alias=True) for f in self.fields]

    def _reset_drag(self) -> None:
        self.state = DrawState.IDLE
        self.anchor = None
        self.current_rect = None
