import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from main import create_app
from services.video_store import VideoStore


@pytest.fixture
def store():
    return VideoStore()


@pytest.fixture
def settings():
    return Settings(max_upload_bytes=1024 * 1024, chunk_size=64 * 1024)


@pytest.fixture
def client(store, settings):
    app = create_app(settings=settings, store=store)
    return TestClient(app)


@pytest.fixture
def upload(client):
    def _upload(data=b"0123456789", filename="clip.mp4", content_type="video/mp4", **fields):
        files = {"video": (filename, data, content_type)}
        return client.post("/api/upload", files=files, data=fields)

    return _upload
