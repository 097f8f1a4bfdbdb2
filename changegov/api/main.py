import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from changegov import __version__
from changegov.api.routers import changes, health
from changegov.api.schemas.common import ErrorResponse
from changegov.core.config import get_settings
from changegov.core.governance import GovernanceError
from changegov.core.logger import configure_logging

settings = get_settings()

configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Change request governance: decisions, delivery lanes and approval chains",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GovernanceError)
async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    """Map typed governance failures to stable status codes."""
    logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    content = ErrorResponse(
        error=HTTPStatus(exc.status_code).phrase,
        detail=exc.message,
        code=exc.code,
    ).model_dump()
    content.update(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(health.router)
app.include_router(changes.router, prefix="/api")


@app.get("/")
def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
