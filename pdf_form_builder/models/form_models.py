from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from typing import List, Literal, Optional

SkipReason = Literal["not_found", "not_text_field", "page_out_of_range", "duplicate_name", "name_exists"]

class FieldDefinition(BaseModel):
    """A rectangle drawn on a page, in PDF points with a bottom-left origin.

    Accepts the browser's camelCase keys as well as the snake_case attribute names.
    """
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    page_index: int = Field(..., alias="pageIndex", description="0-based page the field is placed on.")
    field_name: str = Field(..., alias="fieldName", description="Unique name of the new form field.")
    x: float
    y: float
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    multiline: bool = False
    default_value: Optional[str] = Field(None, alias="defaultValue")

    @field_validator("field_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("field name must not be blank")
        return value

FieldDefinitionList = TypeAdapter(List[FieldDefinition])

class FieldOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_name: str = Field(..., alias="fieldName")
    status: Literal["applied", "added", "skipped"]
    reason: Optional[SkipReason] = None
    page_index: Optional[int] = Field(None, alias="pageIndex")

class FormFieldInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    field_type: str = Field(..., alias="fieldType")
    page_index: int = Field(..., alias="pageIndex")
    x: float
    y: float
    width: float
    height: float
    value: Optional[str] = None

class FieldListResponse(BaseModel):
    status: str = "success"
    fields: List[FormFieldInfo]

class ErrorResponse(BaseModel):
    status: str = "error"
    message: str

class ClientRectRequest(BaseModel):
    """A rectangle dragged on the rendered page, in image pixels from its top-left corner."""
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    scale: float = Field(..., gt=0, description="Pixels per PDF point of the rendered page.")
    canvas_height: float = Field(..., alias="canvasHeight", gt=0)
    left: float
    top: float
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

class PdfRectResponse(BaseModel):
    accepted: bool
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
