"""
Environmental Geo Query API

FastAPI application serving geometry hashes, unit shapes, species
occurrences, remote sensing and drought time series, and climate grid
statistics, all composed by the dataset-agnostic query core.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.api.v1.deps import limiter
from app.api.v1.hash_routes import router as hash_router
from app.api.v1.shape_routes import router as shape_router
from app.api.v1.occurrence_routes import router as occurrence_router
from app.api.v1.remote_sensing_routes import router as remote_sensing_router
from app.api.v1.drought_routes import router as drought_router
from app.api.v1.climate_routes import router as climate_router
from app.api.v1.query_routes import router as query_router
from app.spatial_sync import register_spatial_sync
from core.datasets import load_datasets
from core.errors import StoreFailure, ValidationError

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=(
        "Spatial, attribute and temporal queries over environmental datasets: "
        "genetic conservation unit shapes, species occurrences, remote sensing "
        "and drought observatory time series, and WorldClim / CHELSA climate grids."
    ),
)

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(StoreFailure)
def store_failure_handler(request: Request, exc: StoreFailure):
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content=exc.to_dict())


load_datasets(settings.DATASETS_DIR)
register_spatial_sync()

# Include API routes
app.include_router(hash_router)
app.include_router(shape_router)
app.include_router(occurrence_router)
app.include_router(remote_sensing_router)
app.include_router(drought_router)
app.include_router(climate_router)
app.include_router(query_router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": settings.API_VERSION}
