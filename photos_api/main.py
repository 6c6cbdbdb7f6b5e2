import logging
import os
from contextlib import asynccontextmanager

import aioboto3
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from mangum import Mangum

from photos_api.config import Settings, fetch_ssm_params, setup_logging
from photos_api.derivatives import ThumbnailGenerator
from photos_api.errors import PhotoServiceError
from photos_api.ingestion import IngestionService
from photos_api.routers import photos
from photos_api.services import CatalogService, StorageService

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings, session: aioboto3.Session) -> None:
    """Construct the service graph once and hang it on app.state."""
    storage = StorageService(settings, session)
    catalog = CatalogService(settings, session)
    thumbnails = ThumbnailGenerator(
        output_dir=settings.UPLOAD_DIR,
        fit=settings.THUMBNAIL_FIT,
        quality=settings.THUMBNAIL_QUALITY,
    )

    app.state.settings = settings
    app.state.storage = storage
    app.state.catalog = catalog
    app.state.ingestion = IngestionService(storage, catalog, thumbnails, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("Starting up...")

    session = aioboto3.Session()

    # 1. Fetch SSM Params
    await fetch_ssm_params(settings, session)
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    build_services(app, settings, session)

    # 2. Bootstrap LocalStack (Ensure Buckets and Table exist)
    if settings.is_local:
        for bucket in (settings.BUCKET_MAIN, settings.BUCKET_THUMBNAILS):
            try:
                await app.state.storage.ensure_bucket(bucket)
            except Exception as e:
                logger.error("Failed to bootstrap S3 bucket %s: %s", bucket, e)
        try:
            await app.state.catalog.ensure_table()
        except Exception as e:
            logger.error("Failed to bootstrap DynamoDB: %s", e)

    yield
    logger.info("Shutting down...")


root_path = os.environ.get("ROOT_PATH", "")
app = FastAPI(title="Photo Ingestion Service", lifespan=lifespan, root_path=root_path)

app.include_router(photos.router)


@app.exception_handler(PhotoServiceError)
async def photo_service_error_handler(request: Request, exc: PhotoServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "message": exc.message, "kind": exc.kind},
    )


@app.get("/")
def read_root():
    return {"message": "Welcome to the Photo Ingestion Service"}


# Adapter for AWS Lambda
handler = Mangum(app)


if __name__ == "__main__":
    uvicorn.run("photos_api.main:app", host="0.0.0.0", port=8000, reload=True, env_file="dev.env")
