import os
from typing import Any, List, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import DownloadError, StorageError, UploadError
from ..logger import get_logger
from ..schemas import StorageConfig
from .base import StorageProvider

logger = get_logger(__name__)

DEFAULT_REGION = "us-east-1"
CHUNK_SIZE = 64 * 1024


class S3Storage(StorageProvider):
    def __init__(self, config: StorageConfig, client: Optional[Any] = None):
        if not config.bucket:
            raise ValueError("S3 bucket name is required")

        self.bucket = config.bucket
        credentials = config.credentials
        self.region = (credentials.region if credentials else None) or DEFAULT_REGION
        if client is None:
            client = boto3.client(
                's3',
                endpoint_url=credentials.endpoint_url if credentials else None,
                aws_access_key_id=credentials.access_key_id if credentials else None,
                aws_secret_access_key=credentials.secret_access_key if credentials else None,
                region_name=self.region,
                config=Config(signature_version='s3v4')
            )
        self.s3_client = client
        self._create_bucket_if_not_exists()

    def _create_bucket_if_not_exists(self):
        try:
            try:
                self.s3_client.head_bucket(Bucket=self.bucket)
                return
            except ClientError as e:
                if e.response['Error']['Code'] not in ('404', 'NoSuchBucket'):
                    raise

            logger.info(f"Creating missing bucket '{self.bucket}' in {self.region}")
            params = {"Bucket": self.bucket}
            # us-east-1 is the only region that rejects an explicit LocationConstraint
            if self.region != DEFAULT_REGION:
                params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
            self.s3_client.create_bucket(**params)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Could not access bucket '{self.bucket}': {e}")
            raise StorageError(f"Could not access or create bucket s3://{self.bucket}: {e}") from e

    def upload(self, local_path: str, remote_key: str) -> str:
        try:
            with open(local_path, "rb") as body:
                # upload_fileobj switches to multipart for large files
                self.s3_client.upload_fileobj(body, self.bucket, remote_key)
        except (OSError, ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed for {remote_key}: {e}")
            raise UploadError(f"Failed to upload {local_path} to s3://{self.bucket}/{remote_key}: {e}") from e

        location = f"s3://{self.bucket}/{remote_key}"
        logger.info(f"File uploaded successfully to {location}")
        return location

    def download(self, remote_key: str, local_path: str) -> None:
        started = False
        try:
            os.makedirs(os.path.dirname(os.path.abspath(local_path)), exist_ok=True)
            response = self.s3_client.get_object(Bucket=self.bucket, Key=remote_key)
            body = response['Body']
            try:
                started = True
                with open(local_path, "wb") as f:
                    for chunk in body.iter_chunks(CHUNK_SIZE):
                        f.write(chunk)
            finally:
                body.close()
        except (OSError, ClientError, BotoCoreError) as e:
            logger.error(f"S3 download failed for {remote_key}: {e}")
            if started and os.path.exists(local_path):
                os.remove(local_path)
            raise DownloadError(f"Failed to download s3://{self.bucket}/{remote_key}: {e}") from e
        logger.info(f"File downloaded successfully from S3 to {local_path}")

    def delete(self, remote_key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=remote_key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete {remote_key} from S3: {e}")
            raise StorageError(f"Failed to delete s3://{self.bucket}/{remote_key}: {e}") from e
        logger.info(f"File deleted successfully from S3: {remote_key}")

    def list(self, prefix: Optional[str] = None) -> List[str]:
        params = {"Bucket": self.bucket}
        if prefix:
            params["Prefix"] = prefix

        # dict keeps first-seen order while dropping duplicates
        keys = {}
        continuation_token = None
        try:
            while True:
                if continuation_token:
                    response = self.s3_client.list_objects_v2(ContinuationToken=continuation_token, **params)
                else:
                    response = self.s3_client.list_objects_v2(**params)

                for obj in response.get('Contents') or []:
                    if obj.get('Key'):
                        keys[obj['Key']] = None

                # Pages can be empty while a cursor is still pending
                continuation_token = response.get('NextContinuationToken')
                if not continuation_token:
                    break
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 list operation failed: {e}")
            raise StorageError(f"Failed to list s3://{self.bucket}/{prefix or ''}: {e}") from e

        return list(keys)
