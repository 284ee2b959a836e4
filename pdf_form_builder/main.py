from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pdf_form_builder.core.config import Settings, get_settings
from pdf_form_builder.api.v1 import api_router
import logging

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

EXPOSED_HEADERS = [
    "Content-Disposition", "X-Field-Outcomes", "X-Field-Overlays",
    "X-Page-Count", "X-Render-Scale", "X-Page-Width", "X-Page-Height",
]

def create_app(settings: Settings) -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        openapi_url=f"{settings.api_prefix}/openapi.json"
    )

    # CORS Middleware
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=EXPOSED_HEADERS,
        )

    app.include_router(api_router, prefix=settings.api_prefix)

    # Global Exception Handler (for unhandled exceptions)
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": "An unexpected internal server error occurred."},
        )

    @app.on_event("startup")
    async def startup_event():
        logger.info("Application startup complete.")
        logger.info(f"CORS origins allowed: {settings.cors_origins}")
        logger.info(f"Serving UI from {settings.static_dir} at {settings.api_prefix or '/'}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Application shutdown complete.")

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "ok"}

    # The UI posts to relative URLs, so it is served under the same prefix as the API.
    # Mounted last: the catch-all static mount must not shadow the API routes.
    app.mount(settings.api_prefix or "/", StaticFiles(directory=settings.static_dir, html=True), name="static")
    return app

app = create_app(settings)

logger.info("FastAPI application initialized.")
