import asyncio
import contextlib
import os
import shutil
import uuid
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Form, Depends, Query, Request, status

from photos_api.config import Settings
from photos_api.ingestion import IngestionService
from photos_api.models import PhotoCreate
from photos_api.pagination import QueryOptions
from photos_api.services import CatalogService

router = APIRouter(prefix="/photos", tags=["photos"])


# Dependency Injection for services built at startup
async def get_settings(request: Request) -> Settings:
    return request.app.state.settings

async def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion

async def get_catalog_service(request: Request) -> CatalogService:
    return request.app.state.catalog


def split_tags(tags: List[str]) -> List[str]:
    """Accept repeated fields as well as comma separated values."""
    return [tag.strip() for raw in tags for tag in raw.split(",") if tag.strip()]


async def stage_upload(file: UploadFile, upload_dir: str) -> str:
    """Copy the uploaded bytes to a local file the pipeline can read."""
    os.makedirs(upload_dir, exist_ok=True)
    extension = os.path.splitext(file.filename or "")[1].lower()
    path = os.path.join(upload_dir, f"{uuid.uuid4().hex}{extension}")
    try:
        with open(path, "wb") as out:
            await asyncio.to_thread(shutil.copyfileobj, file.file, out)
    except Exception:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)
        raise
    return path


class PhotoForm:
    """Multipart form fields describing an upload."""

    def __init__(
        self,
        file: UploadFile = File(...),
        title: str = Form(...),
        description: Optional[str] = Form(default=None),
        tags: List[str] = Form(default=[]),
        year: Optional[int] = Form(default=None),
        month: Optional[int] = Form(default=None),
        meeting_id: Optional[str] = Form(default=None),
        is_private: bool = Form(default=False),
        draft: bool = Form(default=False),
    ):
        self.file = file
        self.draft = draft
        self.descriptor = PhotoCreate(
            title=title,
            description=description,
            tags=split_tags(tags),
            year=year,
            month=month,
            meeting_id=meeting_id,
            is_private=is_private,
        )


async def _ingest(form: PhotoForm, ingestion: IngestionService, settings: Settings, is_draft: bool):
    source_path = await stage_upload(form.file, settings.UPLOAD_DIR)
    return await ingestion.ingest(
        form.descriptor, source_path, is_draft=is_draft, original_name=form.file.filename
    )


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_photo(
    form: PhotoForm = Depends(),
    ingestion: IngestionService = Depends(get_ingestion_service),
    settings: Settings = Depends(get_settings)
):
    photo = await _ingest(form, ingestion, settings, is_draft=form.draft)
    return {
        "status": status.HTTP_201_CREATED,
        "message": "Draft created!" if form.draft else "Photo uploaded successfully",
        "data": photo,
    }


@router.post("/drafts", status_code=status.HTTP_201_CREATED)
async def create_draft(
    form: PhotoForm = Depends(),
    ingestion: IngestionService = Depends(get_ingestion_service),
    settings: Settings = Depends(get_settings)
):
    photo = await _ingest(form, ingestion, settings, is_draft=True)
    return {
        "status": status.HTTP_201_CREATED,
        "message": "Draft created!",
        "data": photo,
    }


@router.get("/")
async def list_photos(
    sort_by: Optional[str] = Query(None, alias="sortBy", description="'oldest' for ascending order"),
    limit: Optional[str] = Query(None, description="Page size"),
    page: Optional[str] = Query(None, description="1-based page number"),
    catalog: CatalogService = Depends(get_catalog_service),
    settings: Settings = Depends(get_settings)
):
    options = QueryOptions.from_request(
        sort_by, limit, page,
        default_limit=settings.DEFAULT_PAGE_SIZE,
        max_limit=settings.MAX_PAGE_SIZE,
    )
    photos = await catalog.list_published(options)
    return {
        "status": status.HTTP_200_OK,
        "message": "Photos fetched successfully",
        "photos": photos,
    }


@router.get("/{photo_id}")
async def get_photo(
    photo_id: str,
    catalog: CatalogService = Depends(get_catalog_service)
):
    photo = await catalog.get_published(photo_id)
    return {
        "status": status.HTTP_200_OK,
        "message": "Photo fetched successfully",
        "data": photo,
    }
