from fastapi import APIRouter
from .endpoints import pdf_forms

api_router = APIRouter()
api_router.include_router(pdf_forms.router, tags=["PDF Forms"])
