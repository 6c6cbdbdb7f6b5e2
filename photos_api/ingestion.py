"""
IngestionService - Turns a staged upload into a catalog record.

The pipeline is a fixed list of steps run strictly in order:

    derive_keys -> generate_thumbnail -> upload_original -> upload_thumbnail
    -> extract_metadata -> release_files -> persist

Every step names the error raised when it fails and may carry an undo hook
that runs, newest first, when a later step fails. Local files belong to a
TempFiles scope and are removed on every way out of ``ingest``.
"""

import asyncio
import contextlib
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from photos_api.config import Settings
from photos_api.derivatives import THUMBNAIL_HEIGHT, THUMBNAIL_WIDTH, ThumbnailGenerator
from photos_api.errors import (
    DerivativeGenerationError,
    IngestionError,
    MetadataExtractionError,
    ObjectStoreError,
    PersistenceError,
    ValidationError,
)
from photos_api.models import Photo, PhotoCreate
from photos_api.services import CatalogService, StorageService
from photos_api.tempfiles import TempFiles


@dataclass
class IngestionContext:
    """State handed from one pipeline step to the next."""
    descriptor: PhotoCreate
    source_path: str
    is_draft: bool
    temp_files: TempFiles
    original_name: Optional[str] = None
    main_key: Optional[str] = None
    thumb_key: Optional[str] = None
    thumbnail_path: Optional[str] = None
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    photo: Optional[Photo] = None


Action = Callable[[IngestionContext], Awaitable[None]]


@dataclass(frozen=True)
class Step:
    name: str
    action: Action
    error: Type[IngestionError] = IngestionError
    undo: Optional[Action] = None


async def run_to_completion(func, *args):
    """
    Run blocking work in a thread and wait for it even if cancelled.

    A thread cannot be interrupted, so on cancellation the work is allowed
    to finish (its files exist or it failed) before CancelledError moves on
    to the cleanup of the request.
    """
    work = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(work)
    except asyncio.CancelledError:
        with contextlib.suppress(Exception):
            await work
        raise


def title_slug(title: str) -> str:
    return re.sub(r"\s+", "_", title.strip())


def key_token() -> str:
    """Millisecond timestamp for readability, random suffix for uniqueness."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class IngestionService:
    """
    Orchestrates photo ingestion.

    Args:
        storage: Object store client
        catalog: Catalog store
        thumbnails: Derivative generator
        settings: Bucket names and rollback policy
        logger: Optional logger instance
    """

    def __init__(
        self,
        storage: StorageService,
        catalog: CatalogService,
        thumbnails: ThumbnailGenerator,
        settings: Settings,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.catalog = catalog
        self.thumbnails = thumbnails
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)

    @property
    def steps(self) -> List[Step]:
        return [
            Step("derive_keys", self._derive_keys),
            Step("generate_thumbnail", self._generate_thumbnail, DerivativeGenerationError),
            Step("upload_original", self._upload_original, ObjectStoreError, undo=self._undo_original),
            Step("upload_thumbnail", self._upload_thumbnail, ObjectStoreError, undo=self._undo_thumbnail),
            Step("extract_metadata", self._extract_metadata, MetadataExtractionError),
            Step("release_files", self._release_files),
            Step("persist", self._persist, PersistenceError),
        ]

    async def ingest(
        self,
        descriptor: PhotoCreate,
        source_path: str,
        is_draft: bool = False,
        original_name: Optional[str] = None
    ) -> Photo:
        """
        Ingest a staged source image.

        The service owns ``source_path`` from the moment it is called: the
        file is removed when ingestion ends, whatever the outcome.

        Args:
            descriptor: Caller-supplied photo fields
            source_path: Locally staged upload
            is_draft: Keep the record unpublished
            original_name: Client filename, used for the key extension

        Returns:
            The persisted Photo

        Raises:
            ValidationError: descriptor is unusable; nothing was uploaded
            IngestionError: a pipeline step failed; no record was written
        """
        with TempFiles(self.logger) as temp_files:
            temp_files.register(source_path)
            self.validate(descriptor)

            ctx = IngestionContext(
                descriptor=descriptor,
                source_path=source_path,
                is_draft=is_draft,
                temp_files=temp_files,
                original_name=original_name,
            )
            await self._run(ctx)
            return ctx.photo

    @staticmethod
    def validate(descriptor: PhotoCreate) -> None:
        if not descriptor.title or not descriptor.title.strip():
            raise ValidationError("Title is required")
        if descriptor.month is not None and not 1 <= descriptor.month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        if descriptor.year is not None and descriptor.year < 1:
            raise ValidationError("Year must be a positive number")

    async def _run(self, ctx: IngestionContext) -> None:
        completed: List[Step] = []
        for step in self.steps:
            try:
                await step.action(ctx)
            except Exception as e:
                self.logger.error(
                    "Ingestion of '%s' failed at %s: %r", ctx.descriptor.title, step.name, e
                )
                await self._rollback(completed, ctx)
                raise step.error(step=step.name) from e
            completed.append(step)

    async def _rollback(self, completed: List[Step], ctx: IngestionContext) -> None:
        for step in reversed(completed):
            if step.undo is None:
                continue
            try:
                await step.undo(ctx)
            except Exception as e:
                self.logger.error("Undo of %s failed: %r", step.name, e)

    # --- steps -------------------------------------------------------------

    async def _derive_keys(self, ctx: IngestionContext) -> None:
        slug = title_slug(ctx.descriptor.title)
        token = key_token()
        ext = os.path.splitext(ctx.original_name or "")[1].lower()
        ctx.main_key = f"{slug}_main_{token}{ext}"
        ctx.thumb_key = f"{slug}_thumb_{token}{self.thumbnails.EXTENSION}"

    async def _generate_thumbnail(self, ctx: IngestionContext) -> None:
        # Registered before writing so a half-written file is still removed
        path = ctx.temp_files.register(self.thumbnails.new_output_path())
        ctx.thumbnail_path = await run_to_completion(
            self.thumbnails.resize, ctx.source_path, THUMBNAIL_WIDTH, THUMBNAIL_HEIGHT, path
        )

    async def _upload_original(self, ctx: IngestionContext) -> None:
        ctx.url = await self.storage.put(ctx.source_path, self.settings.BUCKET_MAIN, ctx.main_key)

    async def _upload_thumbnail(self, ctx: IngestionContext) -> None:
        ctx.thumbnail_url = await self.storage.put(
            ctx.thumbnail_path,
            self.settings.BUCKET_THUMBNAILS,
            ctx.thumb_key,
            content_type=self.thumbnails.CONTENT_TYPE,
        )

    async def _extract_metadata(self, ctx: IngestionContext) -> None:
        ctx.metadata = await run_to_completion(self.thumbnails.extract_metadata, ctx.source_path)

    async def _release_files(self, ctx: IngestionContext) -> None:
        ctx.temp_files.release()

    async def _persist(self, ctx: IngestionContext) -> None:
        descriptor = ctx.descriptor
        photo = Photo(
            id=str(uuid.uuid4()),
            url=ctx.url,
            thumbnail=ctx.thumbnail_url,
            title=descriptor.title,
            description=descriptor.description,
            tags=descriptor.tags,
            year=descriptor.year,
            month=descriptor.month,
            meeting_id=descriptor.meeting_id,
            metadata=ctx.metadata,
            is_published=not ctx.is_draft,
            is_private=descriptor.is_private,
            created_at=datetime.now(timezone.utc).isoformat(timespec="microseconds"),
        )
        ctx.photo = await self.catalog.create(photo)

    # --- undo hooks ----------------------------------------------------------

    async def _undo_original(self, ctx: IngestionContext) -> None:
        await self._discard(self.settings.BUCKET_MAIN, ctx.main_key)

    async def _undo_thumbnail(self, ctx: IngestionContext) -> None:
        await self._discard(self.settings.BUCKET_THUMBNAILS, ctx.thumb_key)

    async def _discard(self, bucket: str, key: str) -> None:
        if not self.settings.DELETE_ORPHANS_ON_FAILURE:
            self.logger.warning("Orphaned object left in storage: s3://%s/%s", bucket, key)
            return
        await self.storage.delete(bucket, key)
