"""Tests for assets router."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

from fastapi.testclient import TestClient

from backend.core.storage import StorageError
from backend.models.asset import Asset

GLB = b"glTF\x02\x00\x00\x00" + b"\x00" * 24


def test_create_asset_success(test_client: TestClient, test_db_session, temp_storage):
    """Test successful asset upload."""
    response = test_client.post(
        "/assets",
        files={"file": ("model.GLB", GLB, "model/gltf-binary")},
        data={"name": "Office Chair", "tags": "chair, wood ,"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Office Chair"
    assert data["type"] == "glb"
    assert data["size"] == len(GLB)
    assert data["tags"] == ["chair", "wood"]
    assert data["file_url"].startswith("http://testserver/storage/v1/object/public/assets/")
    assert "id" in data
    assert "uploaded_at" in data

    # Verify asset and blob were stored
    asset = test_db_session.query(Asset).filter(Asset.name == "Office Chair").first()
    assert asset is not None
    assert temp_storage.read(temp_storage.path_from_public_url(asset.file_url)) == GLB


def test_create_asset_defaults_name_to_filename(test_client: TestClient):
    """Test asset upload without a name uses the filename stem."""
    response = test_client.post("/assets", files={"file": ("crate.obj", b"v 0 0 0\n", "text/plain")})

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "crate"
    assert data["tags"] is None


def test_create_asset_invalid_type(test_client: TestClient, test_db_session, temp_storage):
    """Test upload of a disallowed type is rejected before any write."""
    response = test_client.post("/assets", files={"file": ("model.stl", b"solid cube", "model/stl")})

    assert response.status_code == 400
    assert response.json() == {"error": "INVALID_TYPE"}
    assert test_db_session.query(Asset).count() == 0
    assert list(temp_storage.base_path.iterdir()) == []


def test_create_asset_missing_file(test_client: TestClient):
    """Test upload without a file part."""
    response = test_client.post("/assets", data={"name": "Nothing"})

    assert response.status_code == 400
    assert response.json() == {"error": "FILE_MISSING"}


def test_create_asset_too_large(test_client: TestClient, test_db_session):
    """Test upload over the size limit."""
    with patch("backend.core.file_processing.MAX_FILE_SIZE", 16):
        response = test_client.post("/assets", files={"file": ("big.glb", GLB, "model/gltf-binary")})

    assert response.status_code == 400
    assert response.json() == {"error": "LIMIT_FILE_SIZE"}
    assert test_db_session.query(Asset).count() == 0


def test_create_asset_storage_failure(test_client: TestClient, temp_storage):
    """Test blob store failure is reported as a generic 500."""
    with patch.object(temp_storage, "save", side_effect=StorageError("bucket offline")):
        response = test_client.post("/assets", files={"file": ("model.glb", GLB, "model/gltf-binary")})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}


def test_list_assets_newest_first(test_client: TestClient, create_asset):
    """Test assets are listed by upload time, newest first."""
    now = datetime.now(timezone.utc)
    old = create_asset(name="Old", uploaded_at=now - timedelta(days=3))
    new = create_asset(name="New", uploaded_at=now)

    response = test_client.get("/assets")

    assert response.status_code == 200
    assert [a["id"] for a in response.json()] == [str(new.id), str(old.id)]


def test_list_assets_search_and_type(test_client: TestClient, create_asset):
    """Test server-side search and type filters."""
    chair = create_asset(name="Office Chair", type="glb")
    create_asset(name="Chair Frame", type="fbx")
    create_asset(name="Table", type="glb")

    response = test_client.get("/assets", params={"search": "chair", "type": "glb"})

    assert response.status_code == 200
    assert [a["id"] for a in response.json()] == [str(chair.id)]


def test_list_assets_empty(test_client: TestClient):
    response = test_client.get("/assets")

    assert response.status_code == 200
    assert response.json() == []


def test_browse_assets_filters_and_facets(test_client: TestClient, create_asset):
    """Test browse applies the dashboard filter and returns unfiltered facets."""
    now = datetime.now(timezone.utc)
    chair = create_asset(name="Office Chair", type="glb", tags=["chair", "wood"], uploaded_at=now)
    create_asset(name="Table", type="fbx", tags=["Chair-style", "metal"], uploaded_at=now - timedelta(hours=1))
    create_asset(name="Lamp", type="obj", uploaded_at=now - timedelta(hours=2))

    response = test_client.get("/assets/browse", params={"term": "chair", "tags": ["wood"], "types": ["glb", "obj"]})

    assert response.status_code == 200
    data = response.json()
    assert [a["id"] for a in data["assets"]] == [str(chair.id)]
    assert data["available_tags"] == ["Chair-style", "chair", "metal", "wood"]
    assert data["available_types"] == ["fbx", "glb", "obj"]
    assert data["total"] == 3


def test_browse_assets_date_range(test_client: TestClient, create_asset):
    """Test browse with a date range around the upload day."""
    uploaded = datetime(2024, 1, 15, 12, 0).astimezone()
    inside = create_asset(name="Inside", uploaded_at=uploaded)
    create_asset(name="Later", uploaded_at=uploaded + timedelta(days=30))

    response = test_client.get(
        "/assets/browse",
        params={"start_date": date(2024, 1, 1).isoformat(), "end_date": date(2024, 1, 31).isoformat()},
    )

    assert response.status_code == 200
    assert [a["id"] for a in response.json()["assets"]] == [str(inside.id)]


def test_update_asset_success(test_client: TestClient, create_asset):
    """Test name and tags update."""
    asset = create_asset(name="Old", tags=["a"])

    response = test_client.put(f"/assets/{asset.id}", json={"name": "  Renamed ", "tags": ["x", " ", "y"]})

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Renamed"
    assert data["tags"] == ["x", "y"]
    assert data["file_url"] == asset.file_url


def test_update_asset_ignores_immutable_fields(test_client: TestClient, create_asset):
    """Test immutable fields in the body are not applied."""
    asset = create_asset(name="Fixed", type="glb")

    response = test_client.put(f"/assets/{asset.id}", json={"type": "obj", "size": 1, "name": "Still Fixed"})

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "glb"
    assert data["name"] == "Still Fixed"


def test_update_asset_empty_name(test_client: TestClient, create_asset):
    asset = create_asset(name="Keep")

    response = test_client.put(f"/assets/{asset.id}", json={"name": "  "})

    assert response.status_code == 400
    assert response.json() == {"error": "EMPTY_NAME"}


def test_update_asset_not_found(test_client: TestClient):
    response = test_client.put(f"/assets/{uuid4()}", json={"name": "Ghost"})

    assert response.status_code == 404
    assert response.json() == {"error": "NOT_FOUND"}


def test_delete_asset_success(test_client: TestClient, test_db_session, temp_storage, create_asset):
    """Test delete removes blob and record."""
    asset = create_asset(name="Doomed")
    asset_id = asset.id
    blob_path = temp_storage.path_from_public_url(asset.file_url)

    response = test_client.delete(f"/assets/{asset_id}")

    assert response.status_code == 204
    assert response.content == b""
    assert not temp_storage.exists(blob_path)
    assert test_db_session.query(Asset).filter(Asset.id == asset_id).first() is None


def test_delete_asset_not_found(test_client: TestClient, temp_storage):
    """Test delete of an unknown id reports not found without touching storage."""
    with patch.object(temp_storage, "delete") as mock_delete:
        response = test_client.delete(f"/assets/{uuid4()}")

    assert response.status_code == 404
    assert response.json() == {"error": "NOT_FOUND"}
    mock_delete.assert_not_called()


def test_delete_asset_twice(test_client: TestClient, create_asset):
    """Test a repeated delete observes not found."""
    asset = create_asset(name="Once")

    assert test_client.delete(f"/assets/{asset.id}").status_code == 204
    assert test_client.delete(f"/assets/{asset.id}").status_code == 404


def test_delete_asset_blob_failure(test_client: TestClient, test_db_session, temp_storage, create_asset):
    """Test blob removal failure keeps the record and returns 500."""
    asset = create_asset(name="Stuck")

    with patch.object(temp_storage, "delete", side_effect=StorageError("permission denied")):
        response = test_client.delete(f"/assets/{asset.id}")

    assert response.status_code == 500
    assert test_db_session.query(Asset).filter(Asset.id == asset.id).first() is not None


def test_get_asset_model(test_client: TestClient, create_asset, model_cache):
    """Test the viewer endpoint serves the model and releases its reference."""
    asset = create_asset(name="Viewable", type="glb", content=GLB)

    response = test_client.get(f"/assets/{asset.id}/model")

    assert response.status_code == 200
    assert response.content == GLB
    assert response.headers["content-type"] == "model/gltf-binary"
    assert asset.file_url in model_cache
    assert model_cache.refcount(asset.file_url) == 0


def test_get_asset_model_missing_blob(test_client: TestClient, create_asset):
    asset = create_asset(name="No Blob", content=None)

    response = test_client.get(f"/assets/{asset.id}/model")

    assert response.status_code == 404
    assert response.json() == {"error": "NOT_FOUND"}


def test_get_asset_model_mismatched_payload(test_client: TestClient, create_asset):
    asset = create_asset(name="Fake", type="glb", content=b"not a model")

    response = test_client.get(f"/assets/{asset.id}/model")

    assert response.status_code == 422
    assert response.json() == {"error": "INVALID_MODEL"}


def test_get_asset_model_unknown_asset(test_client: TestClient):
    response = test_client.get(f"/assets/{uuid4()}/model")

    assert response.status_code == 404
    assert response.json() == {"error": "NOT_FOUND"}
