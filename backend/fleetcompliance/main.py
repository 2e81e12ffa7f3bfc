from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from fleetcompliance import __version__
from fleetcompliance.core.config import Settings, get_settings
from fleetcompliance.core.errors import ReportServiceError
from fleetcompliance.core.logging import configure_logger
from fleetcompliance.core.database import init_db
from fleetcompliance.api.v1.endpoints import router as api_router
from fleetcompliance.middleware.request_logger import RequestLoggerMiddleware

# Initialize logger
logger = configure_logger()


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or get_settings()

    app = FastAPI(
        title=config.PROJECT_NAME,
        description="Period-based aggregation of vessel operational data into regulatory reports.",
        version=__version__,
    )

    # Middleware: CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logger middleware
    app.add_middleware(RequestLoggerMiddleware)

    # Routers
    app.include_router(api_router, prefix=config.API_V1_STR)

    # Attachments are published from SERVICE_ROOT/public/uploads as /uploads
    config.UPLOAD_ROOT.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=config.PUBLIC_UPLOADS_DIR), name="uploads")

    # Health check
    @app.get("/", tags=["Health"])
    async def root():
        return JSONResponse(status_code=200, content={"service": config.PROJECT_NAME, "status": "running"})

    # Exception handling
    @app.exception_handler(ReportServiceError)
    async def report_error_handler(request: Request, exc: ReportServiceError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP error: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": "HTTPError", "message": str(exc.detail), "detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error", exc_info=True)
        return JSONResponse(
            status_code=422,
            content={
                "code": "ValidationError",
                "message": "Request parameters are invalid",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    # Startup
    @app.on_event("startup")
    async def startup_event():
        logger.info(f"🚀 Starting {config.PROJECT_NAME}...")

        if config.CREATE_TABLES_ON_STARTUP:
            try:
                await init_db()
                logger.info("✅ Database schema ensured.")
            except Exception as e:
                logger.error(f"❌ Database init failed: {e}")

    return app


# Entry point
app = create_app()

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("fleetcompliance.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")
