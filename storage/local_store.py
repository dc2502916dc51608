"""
Local directory object store, used when S3 is disabled and in tests.
Files are served back by app.py under /files.
"""
import shutil
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Optional

from core.exceptions import NotFoundError, StoreError
from core.logger import logger
from storage.base import ObjectStore


class LocalObjectStore(ObjectStore):

    def __init__(self, root: Path, public_base_url: str = "http://localhost:8000"):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        logger.info(f"Local object store initialized at {self.root}")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise NotFoundError("File", path)
        return target

    def upload(self, path: str, file_obj: BinaryIO, content_type: Optional[str] = None) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as out:
                shutil.copyfileobj(file_obj, out)
        except OSError as e:
            logger.error(f"Failed to store {path}: {e}")
            raise StoreError("upload", e)
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/files/{path}"

    def download(self, path: str) -> BytesIO:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("File", path)
        return BytesIO(target.read_bytes())

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.exists():
            target.unlink()
