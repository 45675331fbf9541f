"""Asset router."""

import logging
from datetime import date
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from backend.core import assets as asset_service
from backend.core.asset_filter import FilterSpec, derive_facets, filter_assets
from backend.core.exceptions import AssetNotFoundError, UpstreamStoreError
from backend.core.file_processing import FILE_MISSING, FileValidationError
from backend.core.model_loader import format_for_type, get_model_cache, load_model
from backend.core.storage import FileNotFoundError, Storage, StorageError, get_storage
from backend.database import get_db
from backend.schemas.asset import AssetBrowseResponse, AssetResponse, AssetUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])


def get_asset_storage() -> Storage:
    """Dependency returning the blob storage for the asset bucket."""
    return get_storage()


@router.post("", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def create_asset(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[Storage, Depends(get_asset_storage)],
    file: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    tags: str = Form(""),
) -> AssetResponse:
    """Upload a new 3D asset.

    Args:
        db: Database session
        storage: Blob storage
        file: The model file (glb, gltf, fbx or obj)
        name: Display name; defaults to the filename without extension
        tags: Comma-separated tags

    Returns:
        AssetResponse: The newly created asset

    Raises:
        FileValidationError: If the file is missing, too large or of a disallowed type
        UpstreamStoreError: If the blob or record could not be written
    """
    if file is None:
        raise FileValidationError("No file uploaded", code=FILE_MISSING)

    try:
        file_content = await file.read()
    except OSError as e:
        raise UpstreamStoreError(f"Failed to read upload: {e}") from e

    asset = asset_service.create_asset(db, storage, file.filename, file_content, name=name, tags=tags)
    return AssetResponse.model_validate(asset)


@router.get("", response_model=list[AssetResponse])
async def list_assets(
    db: Annotated[Session, Depends(get_db)],
    search: Optional[str] = None,
    type: Optional[str] = None,
) -> list[AssetResponse]:
    """List assets, newest first.

    Args:
        db: Database session
        search: Case-insensitive substring of the asset name
        type: Exact asset type

    Returns:
        list[AssetResponse]: A list of assets
    """
    assets = asset_service.list_assets(db, search=search, type=type)
    return [AssetResponse.model_validate(asset) for asset in assets]


@router.get("/browse", response_model=AssetBrowseResponse)
async def browse_assets(
    db: Annotated[Session, Depends(get_db)],
    term: str = "",
    tags: Annotated[list[str], Query()] = [],
    types: Annotated[list[str], Query()] = [],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> AssetBrowseResponse:
    """List assets through the dashboard filter, with the facet vocabularies.

    Facets are derived from every asset, not only the matching ones.
    """
    spec = FilterSpec(term=term, tags=tags, types=types, start_date=start_date, end_date=end_date)
    assets = [AssetResponse.model_validate(asset) for asset in asset_service.list_assets(db)]
    facets = derive_facets(assets)

    return AssetBrowseResponse(
        assets=filter_assets(assets, spec),
        available_tags=facets.tags,
        available_types=facets.types,
        total=len(assets),
    )


@router.put("/{asset_id}", response_model=AssetResponse)
async def update_asset(
    asset_id: UUID,
    asset_data: AssetUpdate,
    db: Annotated[Session, Depends(get_db)],
) -> AssetResponse:
    """Update an asset's name and/or tags.

    Args:
        asset_id: ID of the asset to update
        asset_data: Fields to change
        db: Database session

    Returns:
        AssetResponse: The updated asset
    """
    asset = asset_service.update_asset(db, asset_id, asset_data)
    return AssetResponse.model_validate(asset)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(
    asset_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[Storage, Depends(get_asset_storage)],
) -> Response:
    """Delete an asset's file and then its record.

    Args:
        asset_id: ID of the asset to delete
        db: Database session
        storage: Blob storage
    """
    asset_service.delete_asset(db, storage, asset_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{asset_id}/model")
async def get_asset_model(
    asset_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[Storage, Depends(get_asset_storage)],
) -> Response:
    """Serve the model file of an asset for the viewer.

    Raises:
        AssetNotFoundError: If the asset or its file in storage is missing
        ModelLoadError: If the file does not match its type
    """
    asset = asset_service.get_asset(db, asset_id)

    def fetch(url: str) -> bytes:
        blob_path = storage.path_from_public_url(url)
        if blob_path is None:
            raise FileNotFoundError(f"No blob for {url}")
        return storage.read(blob_path)

    cache = get_model_cache()
    try:
        model = cache.acquire(asset.file_url, lambda: load_model(asset.file_url, format_for_type(asset.type), fetch))
    except FileNotFoundError as e:
        raise AssetNotFoundError(f"File of asset {asset_id} not found in storage") from e
    except StorageError as e:
        raise UpstreamStoreError(f"Failed to read file: {e}") from e

    try:
        return Response(content=model.content, media_type=model.media_type)
    finally:
        cache.release(asset.file_url, model)
