"""
S3 object store for uploaded documents.
"""
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from typing import Optional, BinaryIO
from io import BytesIO

from core.exceptions import NotFoundError, StoreError
from core.logger import logger
from storage.base import ObjectStore


class S3ObjectStore(ObjectStore):
    """S3 client storing every document in a single bucket."""

    def __init__(
        self,
        bucket_name: str,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,  # For S3-compatible services (MinIO, etc.)
        public_base_url: Optional[str] = None,
        auto_create_bucket: bool = True
    ):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding the documents
            aws_access_key_id: AWS access key (or from env)
            aws_secret_access_key: AWS secret key (or from env)
            region_name: AWS region
            endpoint_url: Custom endpoint URL (for MinIO, etc.)
            public_base_url: Public URL prefix (CDN); virtual-host style URL otherwise
            auto_create_bucket: Create the bucket if it doesn't exist
        """
        self.bucket_name = bucket_name
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

        client_kwargs = {"region_name": region_name}
        if aws_access_key_id:
            client_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)

        if auto_create_bucket:
            self._ensure_bucket_exists()

        logger.info(f"S3 object store initialized (bucket: {bucket_name})")

    def _ensure_bucket_exists(self):
        """Ensure bucket exists, create if it doesn't."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "NoSuchBucket"):
                logger.error(f"Error checking bucket {self.bucket_name}: {e}")
                raise
            if self.region_name == "us-east-1":
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self.region_name}
                )
            logger.info(f"Created bucket: {self.bucket_name}")

    def upload(self, path: str, file_obj: BinaryIO, content_type: Optional[str] = None) -> str:
        """
        Upload a file-like object.

        Args:
            path: Object key
            file_obj: File-like object (BytesIO, SpooledTemporaryFile, ...)
            content_type: MIME type

        Returns:
            The object key
        """
        extra_args = {"ContentType": content_type} if content_type else {}
        try:
            self.s3_client.upload_fileobj(file_obj, self.bucket_name, path, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {path} to S3: {e}")
            raise StoreError("upload", e)
        logger.info(f"Uploaded s3://{self.bucket_name}/{path}")
        return path

    def get_public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}/{path}"
        return f"https://{self.bucket_name}.s3.{self.region_name}.amazonaws.com/{path}"

    def download(self, path: str) -> BytesIO:
        file_obj = BytesIO()
        try:
            self.s3_client.download_fileobj(self.bucket_name, path, file_obj)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise NotFoundError("File", path)
            logger.error(f"Failed to download {path} from S3: {e}")
            raise StoreError("download", e)
        except BotoCoreError as e:
            logger.error(f"Failed to download {path} from S3: {e}")
            raise StoreError("download", e)
        file_obj.seek(0)
        return file_obj

    def delete(self, path: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete {path} from S3: {e}")
            raise StoreError("delete", e)
        logger.info(f"Deleted s3://{self.bucket_name}/{path}")
