import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

import uvicorn

from backend.config import settings
from backend.core.assets import reconcile_orphaned_assets
from backend.core.exceptions import AssetNotFoundError, AssetValidationError, UpstreamStoreError
from backend.core.model_loader import ModelLoadError
from backend.core.storage import PUBLIC_PATH, Storage, StorageError, get_storage
from backend.database import Base, SessionLocal, engine
from backend.routers import assets

logging.getLogger("backend").setLevel(settings.log_level.upper())

logger = logging.getLogger(__name__)


def prepare_storage(storage: Storage, db: Session) -> list[UUID]:
    """Provision the bucket, then finish deletes interrupted before shutdown.

    A bucket that had to be created is empty, which usually means the storage
    path is wrong or not mounted; the sweep is skipped in that case.

    Returns:
        list[UUID]: IDs of the records removed by the sweep
    """
    try:
        created = storage.init_bucket()
    except StorageError as e:
        logger.error(f"Error creating bucket: {e}")
        return []

    if created:
        logger.warning(f"Bucket {storage.bucket} did not exist and was created; skipping reconciliation")
        return []

    try:
        return reconcile_orphaned_assets(db, storage)
    except UpstreamStoreError as e:
        logger.error(f"Startup reconciliation failed: {e}")
        return []


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the tables, then provision the bucket and reconcile interrupted deletes."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        prepare_storage(get_storage(), db)
    finally:
        db.close()

    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(assets.router)

# Public blob URLs
_storage = get_storage()
app.mount(
    f"{PUBLIC_PATH}/{_storage.bucket}",
    StaticFiles(directory=_storage.base_path, check_dir=False),
    name="public-assets",
)


@app.exception_handler(AssetValidationError)
async def validation_error_handler(request: Request, exc: AssetValidationError) -> JSONResponse:
    logger.info(f"Rejected {request.method} {request.url.path}: {exc.code} ({exc})")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.code})


@app.exception_handler(AssetNotFoundError)
async def not_found_error_handler(request: Request, exc: AssetNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": exc.code})


@app.exception_handler(ModelLoadError)
async def model_load_error_handler(request: Request, exc: ModelLoadError) -> JSONResponse:
    logger.warning(f"Cannot serve {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"error": exc.code})


@app.exception_handler(UpstreamStoreError)
async def upstream_error_handler(request: Request, exc: UpstreamStoreError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error"},
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "asset_dashboard_backend"}


if __name__ == "__main__":
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.app_env == "development",
        log_level=settings.log_level,
        loop="asyncio",  # Explicitly use asyncio instead of auto (which tries uvloop)
    )
