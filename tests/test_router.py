import os
import re

import pytest
from fastapi.testclient import TestClient

from api.waste import router as waste_router
from api.waste.service import WasteService
from main import create_app
from provider.local_storage import LocalStorageService
from provider.minIO import ObjectTooLargeError

from conftest import MemoryStore, make_jpeg


def _upload(client, data=None, path="/upload"):
    data = make_jpeg() if data is None else data
    return client.post(path, files={"image": ("photo.jpg", data, "image/jpeg")})


def _image_id(html: str) -> str:
    match = re.search(r"/download/([0-9a-f-]+)", html)
    assert match, html
    return match.group(1)


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "OK", "model": "fake/detr", "apiKeySet": True}


def test_home_renders_upload_form(client):
    resp = client.get("/")

    assert resp.status_code == 200
    assert 'name="image"' in resp.text


@pytest.mark.parametrize("path", ["/upload", "/analyze"])
def test_missing_file_is_rejected(client, model, path):
    resp = client.post(path)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "No file uploaded"
    assert model.calls == 0


@pytest.mark.parametrize("path", ["/upload", "/analyze"])
def test_oversized_file_is_rejected_before_inference(client, model, store, monkeypatch, path):
    monkeypatch.setattr(waste_router, "MAX_UPLOAD_BYTES", 2 * 1024 * 1024)

    resp = _upload(client, b"x" * (2 * 1024 * 1024 + 1), path)

    assert resp.status_code == 400
    assert "exceeds the 2 MB limit" in resp.json()["detail"]
    assert model.calls == 0
    assert store.objects == {}


def test_upload_renders_result(client):
    resp = _upload(client)

    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert "banana" in resp.text
    assert "bottle" in resp.text
    assert 'class="score B"' in resp.text
    assert "http://blob.test/annotated_" in resp.text


def test_upload_then_download_returns_stored_bytes(client, store):
    image_id = _image_id(_upload(client).text)

    resp = client.get(f"/download/{image_id}")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"
    assert resp.headers["content-disposition"].startswith("attachment;")
    (stored,) = store.objects.values()
    assert resp.content == stored


def test_upload_with_no_objects(client, model, store):
    model.detections = []

    resp = _upload(client)

    assert resp.status_code == 200
    assert "No objects found" in resp.text
    assert store.objects == {}


def test_upload_cleans_temp_file(client, model, monkeypatch):
    saved = []
    save_upload = waste_router.save_upload

    def spy(file):
        path, content_type = save_upload(file)
        saved.append(path)
        return path, content_type

    monkeypatch.setattr(waste_router, "save_upload", spy)
    model.error = RuntimeError("inference down")

    resp = _upload(client)

    assert resp.status_code == 500
    assert resp.json()["detail"] == "inference down"
    assert saved
    assert not os.path.exists(saved[0])


def test_storage_size_error_maps_to_400(client, service):
    service.store = MemoryStore(upload_error=ObjectTooLargeError("too large"))

    resp = _upload(client)

    assert resp.status_code == 400
    assert "50 MB" in resp.json()["detail"]


def test_storage_limit_message_follows_store_limit(client, service):
    service.store = MemoryStore(upload_error=ObjectTooLargeError("too large", 20 * 1024 * 1024))

    resp = _upload(client)

    assert resp.status_code == 400
    assert "exceeds the 20 MB limit" in resp.json()["detail"]


def test_analyze_returns_json_detections(client, store):
    resp = _upload(client, path="/analyze")

    assert resp.status_code == 200
    detections = resp.json()["detections"]
    assert [d["label"] for d in detections] == ["banana", "bottle"]
    assert [d["type"] for d in detections] == ["Biodegradable", "Non-biodegradable"]
    assert all(d["confidence"] > 0.5 for d in detections)
    assert store.objects == {}


def test_download_unknown_image(client):
    resp = client.get("/download/does-not-exist")

    assert resp.status_code == 404


def test_download_storage_failure(client, store):
    image_id = _image_id(_upload(client).text)
    store.objects.clear()

    resp = client.get(f"/download/{image_id}")

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Error downloading image"


def test_delete_unknown_image_is_an_error(client):
    resp = client.post("/delete-image", json={"imageId": "does-not-exist"})

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Metadata not found"


def test_delete_requires_image_id(client):
    resp = client.post("/delete-image", json={})

    assert resp.status_code == 400


def test_delete_with_json_body(client, store):
    image_id = _image_id(_upload(client).text)

    resp = client.post("/delete-image", json={"imageId": image_id})

    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert store.objects == {}
    assert client.get(f"/download/{image_id}").status_code == 404


def test_delete_with_form_body(client, store):
    image_id = _image_id(_upload(client).text)

    resp = client.post("/delete-image", data={"imageId": image_id})

    assert resp.status_code == 200
    assert store.objects == {}


def test_delete_storage_failure_is_generic_error(client, repository, model, table):
    failing = MemoryStore()
    client.app.dependency_overrides[waste_router.get_waste_service] = lambda: WasteService(
        model=model, store=failing, repository=repository, table=table
    )
    row = repository.insert("annotated_missing.jpg")

    resp = client.post("/delete-image", json={"imageId": row.id})

    assert resp.status_code == 500
    assert repository.get(row.id) is not None


@pytest.mark.parametrize("path", ["/upload", "/analyze"])
def test_empty_file_is_rejected(client, model, path):
    resp = _upload(client, b"", path)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "No file uploaded"
    assert model.calls == 0


@pytest.mark.parametrize("path", ["/upload", "/analyze"])
def test_non_image_upload_is_client_error(client, model, store, path):
    resp = _upload(client, b"this is not a picture", path)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "The uploaded file is not a valid image."
    assert model.calls == 0
    assert store.objects == {}


def test_upload_removes_temp_file_after_success(client, monkeypatch):
    saved = []
    save_upload = waste_router.save_upload

    def spy(file):
        path, content_type = save_upload(file)
        saved.append(path)
        return path, content_type

    monkeypatch.setattr(waste_router, "save_upload", spy)

    resp = _upload(client)

    assert resp.status_code == 200
    assert saved
    assert not os.path.exists(saved[0])


def test_local_store_serves_annotated_images(monkeypatch, tmp_path, model, repository, table):
    monkeypatch.setenv("IMAGE_STORE", "local")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path))
    local = LocalStorageService(str(tmp_path))
    app = create_app()
    app.dependency_overrides[waste_router.get_waste_service] = lambda: WasteService(
        model=model, store=local, repository=repository, table=table
    )

    with TestClient(app) as client:
        html = _upload(client).text
        match = re.search(r'src="(/uploads/annotated_[^"]+\.jpg)"', html)
        assert match, html

        served = client.get(match.group(1))
        downloaded = client.get(f"/download/{_image_id(html)}")

    assert served.status_code == 200
    (stored,) = [p.read_bytes() for p in tmp_path.iterdir()]
    assert served.content == stored
    assert downloaded.content == stored
