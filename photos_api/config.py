import logging
import os
from typing import Optional

from pydantic_settings import BaseSettings
from botocore.exceptions import ClientError
import aioboto3

logger = logging.getLogger(__name__)

SSM_PARAMETERS = {
    "/photos/bucket_main": "BUCKET_MAIN",
    "/photos/bucket_thumbnails": "BUCKET_THUMBNAILS",
    "/photos/table_name": "TABLE_NAME",
}


class Settings(BaseSettings):
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = "test"
    AWS_SECRET_ACCESS_KEY: str = "test"
    AWS_ENDPOINT_URL: Optional[str] = None
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # These will be populated from SSM or defaults
    BUCKET_MAIN: str = "photos-main"
    BUCKET_THUMBNAILS: str = "photos-thumbnails"
    TABLE_NAME: str = "photos-catalog"

    # Public base for locators, e.g. a CDN in front of the buckets
    PUBLIC_BASE_URL: Optional[str] = None

    UPLOAD_DIR: str = "uploads"
    THUMBNAIL_FIT: str = "cover"
    THUMBNAIL_QUALITY: int = 80

    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Delete already-uploaded objects when a later pipeline step fails
    DELETE_ORPHANS_ON_FAILURE: bool = False

    @property
    def aws_endpoint(self) -> Optional[str]:
        if self.AWS_ENDPOINT_URL:
            return self.AWS_ENDPOINT_URL
        localstack_host = os.environ.get("LOCALSTACK_HOSTNAME")
        if localstack_host:
            return f"http://{localstack_host}:4566"
        return None

    @property
    def is_local(self) -> bool:
        return self.ENV in ("dev", "local")

    def client_kwargs(self) -> dict:
        """Keyword arguments shared by every aioboto3 client and resource."""
        return {
            "region_name": self.AWS_REGION,
            "endpoint_url": self.aws_endpoint,
            "aws_access_key_id": self.AWS_ACCESS_KEY_ID,
            "aws_secret_access_key": self.AWS_SECRET_ACCESS_KEY,
        }

    model_config = {
        "env_file": "dev.env",
        "extra": "ignore"
    }


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure logging."""
    logging.basicConfig(
        level=logging.getLevelName(level.upper()),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    for noisy in ('boto3', 'botocore', 'aiobotocore', 'urllib3'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger('photos_api')


async def fetch_ssm_params(settings: Settings, session: aioboto3.Session) -> Settings:
    """
    Fetches bucket and table names from SSM Parameter Store.
    Values found there override the ones on the given settings object.
    """
    logger.debug("Connecting to SSM at %s", settings.aws_endpoint)
    try:
        async with session.client("ssm", **settings.client_kwargs()) as ssm:
            response = await ssm.get_parameters(
                Names=list(SSM_PARAMETERS),
                WithDecryption=True
            )

            for param in response.get("Parameters", []):
                field = SSM_PARAMETERS.get(param["Name"])
                if field:
                    setattr(settings, field, param["Value"])

            logger.info(
                "Loaded config from SSM: main=%s, thumbnails=%s, table=%s",
                settings.BUCKET_MAIN, settings.BUCKET_THUMBNAILS, settings.TABLE_NAME,
            )

    except ClientError as e:
        logger.warning("Failed to fetch parameters from SSM: %s", e)
        logger.warning("Using default values or env vars.")

    return settings
