import os

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from httpx import ASGITransport, AsyncClient
from PIL import Image

from photos_api.config import Settings
from photos_api.derivatives import ThumbnailGenerator
from photos_api.ingestion import IngestionService
from photos_api.main import app
from photos_api.models import Photo
from photos_api.pagination import paginate
from photos_api.routers.photos import get_catalog_service, get_ingestion_service, get_settings

TEST_BUCKET_MAIN = "test-photos-main"
TEST_BUCKET_THUMBNAILS = "test-photos-thumbnails"
TEST_TABLE = "test-photos-catalog"


class FakeStorage:
    """In-memory stand-in for StorageService that records every call."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.deleted = []
        self.fail_buckets = set()

    async def put(self, local_path, bucket, key, content_type=None):
        self.calls.append((bucket, key, os.path.exists(local_path)))
        if bucket in self.fail_buckets:
            raise ClientError({'Error': {'Code': '500', 'Message': 'boom'}}, 'PutObject')
        with open(local_path, 'rb') as f:
            self.objects[(bucket, key)] = f.read()
        return f"https://{bucket}.storage.test/{key}"

    async def delete(self, bucket, key):
        self.deleted.append((bucket, key))
        self.objects.pop((bucket, key), None)


class FakeCatalog:
    """In-memory stand-in for CatalogService."""

    def __init__(self):
        self.photos = {}
        self.fail = False

    async def create(self, photo):
        if self.fail:
            raise ClientError({'Error': {'Code': '500', 'Message': 'boom'}}, 'PutItem')
        self.photos[photo.id] = photo
        return photo

    async def get_published(self, photo_id):
        from photos_api.errors import NotFoundError
        photo = self.photos.get(photo_id)
        if photo is None or not photo.is_published or photo.is_private:
            raise NotFoundError(f"Photo {photo_id} not found")
        return photo

    async def list_published(self, options):
        visible = [p for p in self.photos.values() if p.is_published and not p.is_private]
        return paginate(visible, options)


def make_photo(index, **overrides):
    fields = dict(
        id=f"photo-{index}",
        url=f"https://main.storage.test/p{index}",
        thumbnail=f"https://thumbs.storage.test/p{index}",
        title=f"Photo {index}",
        is_published=True,
        is_private=False,
        created_at=f"2024-01-0{index}T00:00:00.000000+00:00",
    )
    fields.update(overrides)
    return Photo(**fields)


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return str(path)


@pytest.fixture
def settings(upload_dir):
    return Settings(
        BUCKET_MAIN=TEST_BUCKET_MAIN,
        BUCKET_THUMBNAILS=TEST_BUCKET_THUMBNAILS,
        TABLE_NAME=TEST_TABLE,
        UPLOAD_DIR=upload_dir,
        AWS_ENDPOINT_URL=None,
    )


@pytest.fixture
def source_image(upload_dir):
    """A staged 640x480 JPEG upload."""
    path = os.path.join(upload_dir, "staged.jpg")
    Image.new('RGB', (640, 480), color='red').save(path, format='JPEG')
    return path


@pytest.fixture
def corrupt_file(upload_dir):
    path = os.path.join(upload_dir, "corrupt.jpg")
    with open(path, 'wb') as f:
        f.write(b'not an image')
    return path


@pytest.fixture
def sample_image_bytes():
    """Fixture providing sample JPEG image bytes."""
    import io

    img = Image.new('RGB', (400, 200), color='blue')
    buffer = io.BytesIO()
    img.save(buffer, format='JPEG')
    return buffer.getvalue()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def thumbnails(upload_dir):
    return ThumbnailGenerator(output_dir=upload_dir)


@pytest.fixture
def ingestion(storage, catalog, thumbnails, settings):
    return IngestionService(storage, catalog, thumbnails, settings)


@pytest_asyncio.fixture
async def client(settings, ingestion, catalog):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion
    app.dependency_overrides[get_catalog_service] = lambda: catalog

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
