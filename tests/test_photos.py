import os

import pytest
from httpx import AsyncClient

from conftest import make_photo


@pytest.fixture
def jpeg_upload(sample_image_bytes):
    return {'file': ('gala.jpg', sample_image_bytes, 'image/jpeg')}


@pytest.mark.asyncio
async def test_upload_photo(client: AsyncClient, jpeg_upload, catalog, upload_dir):
    response = await client.post("/photos/", files=jpeg_upload, data={
        "title": "Spring Gala",
        "description": "A test image",
        "tags": ["nature", "test"],
        "year": "2024",
        "month": "4",
        "meeting_id": "m-1",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Photo uploaded successfully"
    data = body["data"]
    assert data["is_published"] is True
    assert data["tags"] == ["nature", "test"]
    assert data["year"] == 2024
    assert data["metadata"]["width"] == 400
    assert data["url"] != data["thumbnail"]
    assert data["id"] in catalog.photos
    assert os.listdir(upload_dir) == []


@pytest.mark.asyncio
async def test_upload_comma_separated_tags(client: AsyncClient, jpeg_upload):
    response = await client.post("/photos/", files=jpeg_upload, data={"title": "Tags", "tags": "a, b,,c"})
    assert response.status_code == 201
    assert response.json()["data"]["tags"] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_create_draft(client: AsyncClient, jpeg_upload):
    response = await client.post("/photos/drafts", files=jpeg_upload, data={"title": "Draft"})
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Draft created!"
    assert body["data"]["is_published"] is False

    # Drafts never show up in the listing
    listing = await client.get("/photos/")
    assert listing.json()["photos"]["totalResults"] == 0


@pytest.mark.asyncio
async def test_upload_with_draft_flag(client: AsyncClient, jpeg_upload, catalog):
    response = await client.post("/photos/", files=jpeg_upload, data={"title": "Flagged", "draft": "true"})
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Draft created!"
    assert body["data"]["is_published"] is False
    assert catalog.photos[body["data"]["id"]].is_published is False


@pytest.mark.asyncio
async def test_upload_requires_title(client: AsyncClient, jpeg_upload):
    response = await client.post("/photos/", files=jpeg_upload)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_upload_blank_title(client: AsyncClient, jpeg_upload, catalog, upload_dir):
    response = await client.post("/photos/", files=jpeg_upload, data={"title": "   "})
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert catalog.photos == {}
    assert os.listdir(upload_dir) == []


@pytest.mark.asyncio
async def test_upload_corrupt_image(client: AsyncClient, catalog, upload_dir):
    files = {'file': ('broken.jpg', b'not an image', 'image/jpeg')}
    response = await client.post("/photos/", files=files, data={"title": "Broken"})
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Ingestion failed"
    assert body["kind"] == "derivative_generation"
    assert catalog.photos == {}
    assert os.listdir(upload_dir) == []


@pytest.mark.asyncio
async def test_list_photos_oldest_first(client: AsyncClient, catalog):
    for i in range(1, 6):
        photo = make_photo(i)
        catalog.photos[photo.id] = photo
    hidden = [make_photo(6, is_private=True), make_photo(7, is_published=False)]
    for photo in hidden:
        catalog.photos[photo.id] = photo

    response = await client.get("/photos/", params={"sortBy": "oldest", "limit": 2, "page": 1})
    assert response.status_code == 200
    photos = response.json()["photos"]
    assert [p["id"] for p in photos["results"]] == ["photo-1", "photo-2"]
    assert photos["totalResults"] == 5
    assert photos["totalPages"] == 3
    assert photos["page"] == 1


@pytest.mark.asyncio
async def test_list_photos_defaults(client: AsyncClient, catalog, settings):
    for i in range(1, 4):
        photo = make_photo(i)
        catalog.photos[photo.id] = photo

    response = await client.get("/photos/", params={"sortBy": "whatever", "limit": "abc"})
    photos = response.json()["photos"]
    assert [p["id"] for p in photos["results"]] == ["photo-3", "photo-2", "photo-1"]
    assert photos["limit"] == settings.DEFAULT_PAGE_SIZE


@pytest.mark.asyncio
async def test_get_photo(client: AsyncClient, catalog):
    photo = make_photo(1)
    catalog.photos[photo.id] = photo

    response = await client.get(f"/photos/{photo.id}")
    assert response.status_code == 200
    assert response.json()["data"]["id"] == photo.id


@pytest.mark.asyncio
async def test_get_draft_is_not_found(client: AsyncClient, catalog):
    photo = make_photo(1, is_published=False)
    catalog.photos[photo.id] = photo

    response = await client.get(f"/photos/{photo.id}")
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


@pytest.mark.asyncio
async def test_read_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
