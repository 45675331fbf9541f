"""Pytest fixtures for backend tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.core.model_loader import ModelCache
from backend.core.storage import LocalStorage
from backend.database import Base, get_db
from backend.main import app
from backend.models.asset import Asset

GLB_CONTENT = b"glTF\x02\x00\x00\x00" + b"\x00" * 24


@pytest.fixture(scope="function")
def test_db_engine():
    """Create an in-memory SQLite engine shared across threads for testing."""
    engine = create_engine(
        os.getenv("TEST_DATABASE_URL", "sqlite://"),
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup: drop all tables
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """Create a database session for testing with automatic rollback."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine,
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        # Rollback any uncommitted changes to clean up test data
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def temp_storage(tmp_path: Path) -> Generator[LocalStorage, None, None]:
    """Create a temporary storage bucket for testing.

    Args:
        tmp_path: Pytest temporary directory fixture

    Yields:
        LocalStorage: Storage instance using temporary directory
    """
    storage_dir = tmp_path / "test_uploads"
    storage = LocalStorage(base_path=storage_dir, bucket="assets", public_base_url="http://testserver")
    storage.init_bucket()

    # Override the global storage instance
    import backend.core.storage as storage_module

    original_storage = getattr(storage_module, "_storage", None)
    storage_module._storage = storage

    try:
        yield storage
    finally:
        # Restore original storage
        storage_module._storage = original_storage
        # Cleanup: remove temporary directory
        if storage_dir.exists():
            shutil.rmtree(storage_dir, ignore_errors=True)


@pytest.fixture(scope="function", autouse=True)
def model_cache() -> Generator[ModelCache, None, None]:
    """Give every test a fresh global model cache."""
    import backend.core.model_loader as loader_module

    original_cache = loader_module._model_cache
    cache = ModelCache()
    loader_module._model_cache = cache

    try:
        yield cache
    finally:
        loader_module._model_cache = original_cache


@pytest.fixture(scope="function")
def test_client(test_db_session: Session, temp_storage: LocalStorage) -> Generator[TestClient, None, None]:
    """Create a test client with database and storage overrides."""

    def override_get_db() -> Generator[Session, None, None]:
        """Override get_db dependency to use test database session."""
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = TestClient(app)

    try:
        yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def create_asset(test_db_session: Session, temp_storage: LocalStorage) -> Callable:
    """Factory function to create assets directly in the database.

    Example:
        ```python
        def test_example(create_asset):
            asset = create_asset(name="Office Chair", tags=["chair", "wood"])
            assert asset.type == "glb"
        ```
    """

    def _create_asset(
        name: str = "Model",
        type: str = "glb",
        tags: Optional[list[str]] = None,
        uploaded_at: Optional[datetime] = None,
        content: Optional[bytes] = GLB_CONTENT,
        pending_delete: bool = False,
    ) -> Asset:
        """Create an asset record and, unless content is None, its blob.

        Args:
            name: Display name
            type: Asset type
            tags: Tags to attach
            uploaded_at: Upload timestamp (default: now)
            content: Blob content; None creates a record without a blob
            pending_delete: Mark the record as left behind by an interrupted delete

        Returns:
            Asset: The created asset
        """
        blob_path = f"{uuid4().hex}_{name.replace(' ', '_')}.{type}"
        if content is not None:
            temp_storage.save(blob_path, content)

        asset = Asset(
            id=uuid4(),
            name=name,
            file_url=temp_storage.get_public_url(blob_path),
            type=type,
            size=len(content or b""),
            tags=tags,
            uploaded_at=uploaded_at or datetime.now(timezone.utc),
            pending_delete=pending_delete,
        )
        test_db_session.add(asset)
        test_db_session.commit()
        test_db_session.refresh(asset)
        return asset

    return _create_asset
