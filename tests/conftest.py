import pytest
from fastapi.testclient import TestClient

from database import MemoryStore, SQLiteStore
from main import create_app
from uploads import DiskImageStore

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    store = MemoryStore() if request.param == "memory" else SQLiteStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def images(upload_dir):
    return DiskImageStore(str(upload_dir))


@pytest.fixture
def client(store, images):
    app = create_app(store=store, images=images, seed=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def product(client):
    resp = client.post(
        "/api/products",
        json={"title": "Herbal Syrup", "price": 6000, "discount": 10, "features": ["Natural", "Safe"]},
    )
    assert resp.status_code == 201
    return resp.json()


def png_file(name="photo.png"):
    return {"image": (name, PNG, "image/png")}
