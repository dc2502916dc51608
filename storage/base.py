"""
Object store interface shared by the S3 and local directory backends.
"""
from abc import ABC, abstractmethod
from io import BytesIO
from typing import BinaryIO, Optional


class ObjectStore(ABC):
    """Path-addressed file storage returning retrievable URLs."""

    @abstractmethod
    def upload(self, path: str, file_obj: BinaryIO, content_type: Optional[str] = None) -> str:
        """Store file_obj under path and return the path."""

    @abstractmethod
    def get_public_url(self, path: str) -> str:
        ...

    @abstractmethod
    def download(self, path: str) -> BytesIO:
        """Return the object content; raises NotFoundError when absent."""

    @abstractmethod
    def delete(self, path: str) -> None:
        ...
