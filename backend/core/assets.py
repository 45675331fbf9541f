"""Asset repository service.

Translates create, list, update and delete requests into record store
(SQLAlchemy) and blob store operations.
"""

import logging
import os
import time
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.exceptions import AssetNotFoundError, AssetValidationError, UpstreamStoreError
from backend.core.file_processing import EMPTY_NAME, normalize_tags, resolve_asset_name, validate_file
from backend.core.model_loader import get_model_cache
from backend.core.storage import FileNotFoundError, Storage, StorageError
from backend.models.asset import Asset
from backend.schemas.asset import AssetUpdate

logger = logging.getLogger(__name__)


class DeleteOutcome(str, Enum):
    """Terminal states of the delete flow."""

    RECORD_REMOVED = "record_removed"
    BLOB_REMOVAL_FAILED = "blob_removal_failed"
    RECORD_REMOVAL_FAILED = "record_removal_failed"


def build_blob_path(filename: str) -> str:
    """Build the bucket path for a new upload: epoch milliseconds plus the original name."""
    basename = os.path.basename(filename.replace("\\", "/").strip())
    return f"{int(time.time() * 1000)}_{basename}"


def create_asset(
    db: Session,
    storage: Storage,
    filename: Optional[str],
    content: bytes,
    name: Optional[str] = None,
    tags: Optional[str | list[str]] = None,
) -> Asset:
    """Validate an upload, store its blob and insert its record.

    Args:
        db: Database session
        storage: Blob storage for the asset bucket
        filename: Original filename of the upload
        content: File content
        name: Display name; defaults to the filename without extension
        tags: Comma-separated string or list of tags

    Returns:
        Asset: The persisted asset record

    Raises:
        AssetValidationError: If the file or name is rejected. Nothing is stored.
        UpstreamStoreError: If the blob or record could not be written
    """
    asset_type = validate_file(content, filename)
    asset_name = resolve_asset_name(name, filename)

    try:
        blob_path = storage.save(build_blob_path(filename), content)
    except StorageError as e:
        logger.error(f"Failed to store blob for {filename}: {e}")
        raise UpstreamStoreError(f"Failed to save file: {e}") from e

    new_asset = Asset(
        name=asset_name,
        file_url=storage.get_public_url(blob_path),
        type=asset_type,
        size=len(content),
        tags=normalize_tags(tags),
    )

    try:
        db.add(new_asset)
        db.commit()
        db.refresh(new_asset)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to insert asset record for {blob_path}: {e}")
        try:
            storage.delete(blob_path)
        except StorageError as cleanup_error:
            logger.error(f"Failed to remove blob {blob_path} after insert failure: {cleanup_error}")
        raise UpstreamStoreError(f"Failed to save asset record: {e}") from e

    logger.info(f"Asset {new_asset.id} uploaded as {blob_path} ({new_asset.size} bytes)")
    return new_asset


def list_assets(db: Session, search: Optional[str] = None, type: Optional[str] = None) -> list[Asset]:
    """List assets newest first, optionally narrowed by name and type.

    Args:
        db: Database session
        search: Case-insensitive substring of the asset name
        type: Exact asset type

    Raises:
        UpstreamStoreError: If the record store query fails
    """
    query = db.query(Asset)
    if search:
        query = query.filter(Asset.name.ilike(f"%{search}%"))
    if type:
        query = query.filter(Asset.type == type.strip().lower())

    try:
        return query.order_by(Asset.uploaded_at.desc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to list assets: {e}")
        raise UpstreamStoreError(f"Failed to list assets: {e}") from e


def get_asset(db: Session, asset_id: UUID) -> Asset:
    """Fetch one asset by ID.

    Raises:
        AssetNotFoundError: If no asset has this ID
        UpstreamStoreError: If the record store query fails
    """
    try:
        asset = db.query(Asset).filter(Asset.id == asset_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Failed to look up asset {asset_id}: {e}")
        raise UpstreamStoreError(f"Failed to look up asset: {e}") from e
    if asset is None:
        raise AssetNotFoundError(f"Asset {asset_id} not found")
    return asset


def update_asset(db: Session, asset_id: UUID, asset_data: AssetUpdate) -> Asset:
    """Patch the mutable metadata of an asset.

    Only name and tags can change. Concurrent updates are last-write-wins.

    Raises:
        AssetValidationError: If the new name is empty
        AssetNotFoundError: If no asset has this ID
        UpstreamStoreError: If the record store fails
    """
    update_data = asset_data.model_dump(exclude_unset=True)
    if "name" in update_data and not update_data["name"]:
        raise AssetValidationError("Asset name cannot be empty", code=EMPTY_NAME)

    asset = get_asset(db, asset_id)
    for key, value in update_data.items():
        if key == "tags":
            value = normalize_tags(value)
        setattr(asset, key, value)

    try:
        db.commit()
        db.refresh(asset)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update asset {asset_id}: {e}")
        raise UpstreamStoreError(f"Failed to update asset: {e}") from e

    return asset


def delete_asset(db: Session, storage: Storage, asset_id: UUID) -> DeleteOutcome:
    """Remove an asset's blob, then its record.

    The record is marked pending_delete before the blob is touched, so a
    record left behind by a failed record removal can be found by
    reconcile_orphaned_assets. The record is kept and unmarked when the blob
    cannot be removed. A blob that is already missing counts as removed.

    Returns:
        DeleteOutcome: RECORD_REMOVED on success

    Raises:
        AssetNotFoundError: If no asset has this ID. No blob call is made.
        UpstreamStoreError: If blob or record removal fails
    """
    asset = get_asset(db, asset_id)
    file_url = asset.file_url
    blob_path = storage.path_from_public_url(file_url)

    try:
        asset.pending_delete = True
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark asset {asset_id} for deletion: {e}")
        raise UpstreamStoreError(f"Failed to delete asset record: {e}") from e

    if blob_path is None:
        logger.warning(f"Asset {asset_id} has no blob under bucket {storage.bucket}: {file_url}")
    else:
        try:
            storage.delete(blob_path)
        except FileNotFoundError:
            logger.warning(f"Blob {blob_path} of asset {asset_id} already missing")
        except StorageError as e:
            logger.error(f"{DeleteOutcome.BLOB_REMOVAL_FAILED.value}: asset {asset_id}, blob {blob_path}: {e}")
            _unmark_pending_delete(db, asset)
            raise UpstreamStoreError(f"Failed to delete file: {e}") from e

    get_model_cache().evict(file_url)

    try:
        db.delete(asset)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        # Blob is gone; the record stays marked until reconcile_orphaned_assets removes it
        logger.error(f"{DeleteOutcome.RECORD_REMOVAL_FAILED.value}: asset {asset_id} kept without blob: {e}")
        raise UpstreamStoreError(f"Failed to delete asset record: {e}") from e

    logger.info(f"Asset {asset_id} deleted")
    return DeleteOutcome.RECORD_REMOVED


def _unmark_pending_delete(db: Session, asset: Asset) -> None:
    try:
        asset.pending_delete = False
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to clear pending delete of asset {asset.id}: {e}")


def reconcile_orphaned_assets(db: Session, storage: Storage) -> list[UUID]:
    """Finish deletes that removed the blob but not the record.

    Only records marked pending_delete are considered, and only those whose
    blob is gone are removed. Unmarked records are never touched, even when
    their blob cannot be found.

    Returns:
        list[UUID]: IDs of the removed records
    """
    removed: list[UUID] = []
    pending = db.query(Asset).filter(Asset.pending_delete.is_(True)).all()
    for asset in pending:
        blob_path = storage.path_from_public_url(asset.file_url)
        if blob_path is not None and storage.exists(blob_path):
            continue
        db.delete(asset)
        removed.append(asset.id)

    if removed:
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to remove orphaned asset records: {e}")
            raise UpstreamStoreError(f"Failed to reconcile assets: {e}") from e
        logger.info(f"Removed {len(removed)} asset records left by interrupted deletes")
    return removed
