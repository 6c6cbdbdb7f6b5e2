import json
import logging
import mimetypes
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aioboto3
from botocore.exceptions import ClientError
from boto3.dynamodb.conditions import Attr

from photos_api.config import Settings
from photos_api.errors import NotFoundError, PersistenceError
from photos_api.models import Photo, PhotoPage
from photos_api.pagination import DESC, QueryOptions, build_page

logger = logging.getLogger(__name__)


class StorageService:
    """Streams local files to S3 buckets and hands back public locators."""

    def __init__(self, settings: Settings, session: Optional[aioboto3.Session] = None):
        self.settings = settings
        self.session = session or aioboto3.Session()

    def client(self):
        return self.session.client("s3", **self.settings.client_kwargs())

    def locator(self, bucket: str, key: str) -> str:
        base = self.settings.PUBLIC_BASE_URL or self.settings.aws_endpoint
        if base:
            return f"{base.rstrip('/')}/{bucket}/{quote(key)}"
        return f"https://{bucket}.s3.{self.settings.AWS_REGION}.amazonaws.com/{quote(key)}"

    async def put(self, local_path: str, bucket: str, key: str, content_type: Optional[str] = None) -> str:
        """
        Upload a local file under the given key.
        upload_file sends the file in multipart chunks, so large originals
        are never held in memory. Errors propagate unchanged.
        """
        content_type = content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
        async with self.client() as s3:
            await s3.upload_file(local_path, bucket, key, ExtraArgs={"ContentType": content_type})
        logger.debug("Uploaded %s to s3://%s/%s", local_path, bucket, key)
        return self.locator(bucket, key)

    async def delete(self, bucket: str, key: str):
        async with self.client() as s3:
            await s3.delete_object(Bucket=bucket, Key=key)
        logger.info("Deleted s3://%s/%s", bucket, key)

    async def ensure_bucket(self, bucket: str):
        async with self.client() as s3:
            try:
                await s3.head_bucket(Bucket=bucket)
                logger.info("Bucket %s exists.", bucket)
            except ClientError:
                logger.info("Creating bucket %s...", bucket)
                await s3.create_bucket(Bucket=bucket)


def to_item(photo: Photo) -> dict:
    # DynamoDB rejects float, numbers go in as Decimal
    return json.loads(photo.model_dump_json(), parse_float=Decimal)


def from_item(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: from_item(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [from_item(v) for v in value]
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class CatalogService:
    """Photo records in a DynamoDB table keyed by ``id``."""

    PUBLIC_FILTER = Attr("is_published").eq(True) & Attr("is_private").eq(False)
    BATCH_GET_LIMIT = 100

    def __init__(self, settings: Settings, session: Optional[aioboto3.Session] = None):
        self.settings = settings
        self.session = session or aioboto3.Session()

    def resource(self):
        return self.session.resource("dynamodb", **self.settings.client_kwargs())

    async def create(self, photo: Photo) -> Photo:
        async with self.resource() as dynamo:
            table = await dynamo.Table(self.settings.TABLE_NAME)
            await table.put_item(Item=to_item(photo))
        logger.info("Catalog record %s created (published=%s)", photo.id, photo.is_published)
        return photo

    async def get(self, photo_id: str) -> Photo:
        try:
            async with self.resource() as dynamo:
                table = await dynamo.Table(self.settings.TABLE_NAME)
                response = await table.get_item(Key={'id': photo_id})
        except ClientError as e:
            raise PersistenceError("Failed to read photo") from e

        item = response.get('Item')
        if not item:
            raise NotFoundError(f"Photo {photo_id} not found")
        return Photo(**from_item(item))

    async def get_published(self, photo_id: str) -> Photo:
        """Like get, but drafts and private photos count as missing."""
        photo = await self.get(photo_id)
        if not photo.is_published or photo.is_private:
            raise NotFoundError(f"Photo {photo_id} not found")
        return photo

    async def list_published(self, options: QueryOptions) -> PhotoPage:
        """
        One page of published, public photos.

        The scan only projects the sort attributes, so memory grows with the
        number of ids rather than full records. Full items are fetched for
        the requested page alone.
        """
        rows = []
        scan_kwargs = {
            'FilterExpression': self.PUBLIC_FILTER,
            'ProjectionExpression': '#id, created_at',
            'ExpressionAttributeNames': {'#id': 'id'},
        }
        try:
            async with self.resource() as dynamo:
                table = await dynamo.Table(self.settings.TABLE_NAME)
                while True:
                    response = await table.scan(**scan_kwargs)
                    rows.extend(response.get('Items', []))
                    last_key = response.get('LastEvaluatedKey')
                    if not last_key:
                        break
                    scan_kwargs['ExclusiveStartKey'] = last_key

                rows.sort(key=lambda row: (row['created_at'], row['id']), reverse=options.sort_by == DESC)
                window = [row['id'] for row in rows[options.offset:options.offset + options.limit]]
                items = await self._batch_get(dynamo, window)
        except ClientError as e:
            raise PersistenceError("Failed to list photos") from e

        # Records deleted between the scan and the batch read are skipped
        results = [Photo(**from_item(items[photo_id])) for photo_id in window if photo_id in items]
        return build_page(results, len(rows), options)

    async def _batch_get(self, dynamo, ids: List[str]) -> Dict[str, dict]:
        items = {}
        for start in range(0, len(ids), self.BATCH_GET_LIMIT):
            request = {self.settings.TABLE_NAME: {'Keys': [{'id': i} for i in ids[start:start + self.BATCH_GET_LIMIT]]}}
            while request:
                response = await dynamo.batch_get_item(RequestItems=request)
                for item in response.get('Responses', {}).get(self.settings.TABLE_NAME, []):
                    items[item['id']] = item
                request = response.get('UnprocessedKeys')
        return items

    async def ensure_table(self):
        async with self.resource() as dynamo:
            table = await dynamo.Table(self.settings.TABLE_NAME)
            try:
                await table.load()
                logger.info("Table %s exists.", self.settings.TABLE_NAME)
            except ClientError:
                logger.info("Creating table %s...", self.settings.TABLE_NAME)
                await dynamo.create_table(
                    TableName=self.settings.TABLE_NAME,
                    KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
                    AttributeDefinitions=[{'AttributeName': 'id', 'AttributeType': 'S'}],
                    ProvisionedThroughput={'ReadCapacityUnits': 5, 'WriteCapacityUnits': 5}
                )
