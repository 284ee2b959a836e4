from fastapi import APIRouter, HTTPException, Depends, File, Form, UploadFile, status
from fastapi.responses import Response
from pydantic import ValidationError
from typing import Any, List, Optional
from pdf_form_builder.models.form_models import (
    ClientRectRequest, FieldDefinition, FieldDefinitionList, FieldListResponse, FieldOutcome, ErrorResponse, PdfRectResponse,
)
from pdf_form_builder.core.pdf_services import PDFFormService, PDFProcessingError, PageOutOfRangeError
from pdf_form_builder.core.drawing import ClientRect, Viewport, client_rect_to_pdf, is_accidental
from pdf_form_builder.core.config import Settings, get_settings
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing file or invalid JSON payload"},
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse, "description": "Uploaded PDF exceeds the size limit"},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "PDF could not be loaded, processed or saved"},
}
PDF_RESPONSES = {200: {"content": {"application/pdf": {}}}, **ERROR_RESPONSES}
PNG_RESPONSES = {200: {"content": {"image/png": {}}}, **ERROR_RESPONSES}

def get_pdf_service(settings: Settings = Depends(get_settings)) -> PDFFormService:
    return PDFFormService(default_render_width=settings.default_render_width)

async def read_pdf_upload(pdf_file: Optional[UploadFile], settings: Settings) -> bytes:
    if pdf_file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No PDF file uploaded.")
    pdf_bytes = await pdf_file.read()
    if not pdf_bytes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded PDF file is empty.")
    if len(pdf_bytes) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Uploaded PDF is {len(pdf_bytes)} bytes; the limit is {settings.max_upload_bytes} bytes.",
        )
    logger.debug(f"Read upload {pdf_file.filename!r} ({len(pdf_bytes)} bytes).")
    return pdf_bytes

def parse_json_form(raw: Optional[str], label: str) -> Any:
    if raw is None or not raw.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"No {label} provided.")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed {label} JSON: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid JSON for {label}: {e}")

def parse_field_definitions(raw: Optional[str], allow_empty: bool = False) -> List[FieldDefinition]:
    payload = parse_json_form(raw, "field definitions")
    if not isinstance(payload, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Field definitions must be a JSON array.")
    if not payload and not allow_empty:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No field definitions provided.")
    try:
        return FieldDefinitionList.validate_python(payload)
    except ValidationError as e:
        logger.warning(f"Invalid field definitions: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid field definitions: {e}")

def outcome_header(outcomes: List[FieldOutcome]) -> str:
    return json.dumps([o.model_dump(by_alias=True) for o in outcomes])

def pdf_attachment(pdf_bytes: bytes, filename: str, outcomes: List[FieldOutcome]) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Field-Outcomes": outcome_header(outcomes),
        },
    )

@router.post("/fill-pdf", response_class=Response, responses=PDF_RESPONSES)
async def fill_pdf_endpoint(
    pdf_file: Optional[UploadFile] = File(None, alias="pdfFile"),
    data: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    service: PDFFormService = Depends(get_pdf_service),
):
    pdf_bytes = await read_pdf_upload(pdf_file, settings)
    values = parse_json_form(data, "field values")
    if not isinstance(values, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Field values must be a JSON object.")
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No field values provided.")
    logger.info(f"Received request to fill {len(values)} fields.")

    try:
        result = await service.fill_fields(pdf_bytes, values)
    except PDFProcessingError as e:
        logger.error(f"Filling PDF failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    logger.info(f"Filled PDF ready ({len(result.skipped)} fields skipped).")
    return pdf_attachment(result.pdf_bytes, "filled_form.pdf", result.outcomes)

@router.post("/add-fillable-fields", response_class=Response, responses=PDF_RESPONSES)
async def add_fillable_fields_endpoint(
    pdf_file: Optional[UploadFile] = File(None, alias="pdfFile"),
    fields: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    service: PDFFormService = Depends(get_pdf_service),
):
    pdf_bytes = await read_pdf_upload(pdf_file, settings)
    definitions = parse_field_definitions(fields)
    logger.info(f"Received request to add {len(definitions)} fields.")

    try:
        result = await service.add_fields(pdf_bytes, definitions)
    except PDFProcessingError as e:
        logger.error(f"Adding fields failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    logger.info(f"PDF with new fields ready ({len(result.skipped)} fields skipped).")
    return pdf_attachment(result.pdf_bytes, "pdf_with_new_fields.pdf", result.outcomes)

@router.post("/list-fields", response_model=FieldListResponse, responses=ERROR_RESPONSES)
async def list_fields_endpoint(
    pdf_file: Optional[UploadFile] = File(None, alias="pdfFile"),
    settings: Settings = Depends(get_settings),
    service: PDFFormService = Depends(get_pdf_service),
):
    pdf_bytes = await read_pdf_upload(pdf_file, settings)
    try:
        fields = await service.list_fields(pdf_bytes)
    except PDFProcessingError as e:
        logger.error(f"Listing fields failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    logger.info(f"Found {len(fields)} existing form fields.")
    return FieldListResponse(fields=fields)

@router.post("/render-page", response_class=Response, responses=PNG_RESPONSES)
async def render_page_endpoint(
    pdf_file: Optional[UploadFile] = File(None, alias="pdfFile"),
    page: int = Form(0),
    width: Optional[int] = Form(None, gt=0),
    fields: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    service: PDFFormService = Depends(get_pdf_service),
):
    if width is not None and width > settings.max_render_width:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Render width {width} exceeds the maximum of {settings.max_render_width} pixels.",
        )
    pdf_bytes = await read_pdf_upload(pdf_file, settings)
    overlays = parse_field_definitions(fields, allow_empty=True) if fields else None

    try:
        rendered = await service.render(pdf_bytes, page_index=page, width=width, overlays=overlays)
    except PageOutOfRangeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PDFProcessingError as e:
        logger.error(f"Rendering page {page} failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return Response(
        content=rendered.png_bytes,
        media_type="image/png",
        headers={
            "X-Page-Count": str(rendered.page_count),
            "X-Render-Scale": repr(rendered.scale),
            "X-Page-Width": repr(rendered.page_width),
            "X-Page-Height": repr(rendered.page_height),
            "X-Field-Overlays": json.dumps(rendered.overlays),
        },
    )

@router.post("/client-rect-to-pdf", response_model=PdfRectResponse)
async def client_rect_to_pdf_endpoint(request_data: ClientRectRequest):
    rect = ClientRect(request_data.left, request_data.top, request_data.width, request_data.height)
    if is_accidental(rect):
        logger.debug(f"Drawing too small ({rect.width}x{rect.height}); discarded.")
        return PdfRectResponse(accepted=False)
    viewport = Viewport(scale=request_data.scale, canvas_height=request_data.canvas_height)
    return PdfRectResponse(accepted=True, **client_rect_to_pdf(rect, viewport))
