import os

# must be set before the app modules are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["IMAGE_STORE"] = "minio"
os.environ.setdefault("HUGGINGFACE_API_KEY", "test-key")

from io import BytesIO
from typing import List

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from common.ai_model.ai_interface import AIModelInterface
from common.waste_types import load_waste_types
from provider.database import MetadataRepository


def make_jpeg(width: int = 200, height: int = 100, color=(255, 255, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeModel(AIModelInterface):
    model_name = "fake/detr"

    def __init__(self, detections: List[dict] = None, error: Exception = None):
        self.detections = detections or []
        self.error = error
        self.calls = 0

    @property
    def api_key_set(self) -> bool:
        return True

    def detect_objects(self, image_bytes: bytes, content_type: str = "image/jpeg") -> List[dict]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.detections


class MemoryStore:
    def __init__(self, upload_error: Exception = None):
        self.objects = {}
        self.upload_error = upload_error

    def upload_image(self, file_name, data, content_type="image/jpeg"):
        if self.upload_error is not None:
            raise self.upload_error
        self.objects[file_name] = data
        return file_name

    def get_image(self, file_name):
        if file_name not in self.objects:
            raise FileNotFoundError(file_name)
        return self.objects[file_name]

    def remove_image(self, file_name):
        del self.objects[file_name]

    def get_url(self, file_key):
        return f"http://blob.test/{file_key}"


RAW_DETECTIONS = [
    {"label": "banana", "score": 0.97, "box": {"xmin": 10, "ymin": 10, "xmax": 60, "ymax": 50}},
    {"label": "bottle", "score": 0.88, "box": {"xmin": 100, "ymin": 20, "xmax": 150, "ymax": 90}},
    {"label": "apple", "score": 0.4, "box": {"xmin": 0, "ymin": 0, "xmax": 20, "ymax": 20}},
]


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def table():
    return load_waste_types()


@pytest.fixture
def model():
    return FakeModel(RAW_DETECTIONS)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repository():
    return MetadataRepository("sqlite://")


@pytest.fixture
def service(model, store, repository, table):
    from api.waste.service import WasteService

    return WasteService(model=model, store=store, repository=repository, table=table)


@pytest.fixture
def client(service):
    from main import app
    from api.waste.router import get_waste_service

    app.dependency_overrides[get_waste_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
