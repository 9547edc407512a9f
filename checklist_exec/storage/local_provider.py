"""
Local filesystem storage provider.
Photo evidence is written under ``settings.storage_dir`` and served back by
``GET /files/local/{key}``.
"""
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider

logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.storage_dir)
        (self.base_dir / "uploads").mkdir(parents=True, exist_ok=True)

    def get_path(self, key: str) -> Path:
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / "uploads" / clean_key

    def contains(self, path: Path) -> bool:
        root = str((self.base_dir / "uploads").resolve())
        return str(path.resolve()).startswith(root)

    def put(self, key: str, data: Union[bytes, BinaryIO], content_type: str) -> None:
        path = self.get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data.read() if hasattr(data, "read") else data)
        logger.info("file_stored", key=key, content_type=content_type)

    def get_download_url(self, key: str) -> Optional[str]:
        if self.exists(key):
            return f"{settings.public_base_url}/files/local/{quote(key.lstrip('/'))}"
        return None

    def exists(self, key: str) -> bool:
        return self.get_path(key).exists()
