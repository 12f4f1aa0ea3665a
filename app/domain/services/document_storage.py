"""
Document Storage - uploaded driver documents on the local filesystem.

Files live under UPLOAD_DIR and are served by the app's /uploads static mount,
so every stored document has a public URL of the form
``{PUBLIC_BASE_URL}/uploads/{key}``.
"""
import asyncio
import mimetypes
import uuid
from pathlib import Path, PurePosixPath
from typing import Optional

from app.core.config import settings
from app.core.exceptions import DocumentStorageError
from app.core.logging import get_logger

UPLOADS_ROUTE = "/uploads"

_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def content_type_for(extension: str) -> str:
    """MIME type for a file extension; unknown extensions are application/octet-stream"""
    return _CONTENT_TYPES.get((extension or "").lower().lstrip("."), "application/octet-stream")


def extension_of(name: str, default: str = "jpg") -> str:
    suffix = PurePosixPath(name or "").suffix.lstrip(".").lower()
    return suffix or default


class LocalDocumentStorage:
    """Stores documents by key below a root directory"""

    def __init__(
        self,
        root: Optional[str] = None,
        public_base_url: Optional[str] = None,
        max_file_size: Optional[int] = None,
        logger=None,
    ):
        self.root = Path(root or settings.UPLOAD_DIR).resolve()
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.max_file_size = max_file_size if max_file_size is not None else settings.MAX_FILE_SIZE
        self._logger = logger or get_logger(__name__)

    def _path_for_key(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise DocumentStorageError("Document key escapes the storage root", details={"key": key})
        return path

    def url_for_key(self, key: str) -> str:
        return f"{self.public_base_url}{UPLOADS_ROUTE}/{key}"

    def key_for_url(self, url: str) -> Optional[str]:
        prefix = f"{self.public_base_url}{UPLOADS_ROUTE}/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):]

    async def upload(self, content: bytes, key_hint: str, content_type: str) -> str:
        """
        Store ``content`` under ``drivers/{uuid4}-{key_hint}`` and return its public URL.

        Raises:
            DocumentStorageError: empty or oversized content, or the write failed.
        """
        if not content:
            raise DocumentStorageError("Refusing to store an empty document", details={"key_hint": key_hint})
        if len(content) > self.max_file_size:
            raise DocumentStorageError(
                "Document exceeds the maximum file size",
                details={"size": len(content), "max_file_size": self.max_file_size},
            )

        key = f"drivers/{uuid.uuid4()}-{key_hint.lstrip('/')}"
        path = self._path_for_key(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise DocumentStorageError(
                f"Failed to store document: {e}", details={"key": key}
            ) from e

        self._logger.info(
            "Document stored",
            extra_data={"key": key, "size": len(content), "content_type": content_type},
        )
        return self.url_for_key(key)

    async def read(self, url: str) -> tuple[bytes, str]:
        """Return (content, content_type) for a URL produced by ``upload``"""
        key = self.key_for_url(url)
        if key is None:
            raise DocumentStorageError("URL does not belong to this storage", details={"url": url})
        path = self._path_for_key(key)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise DocumentStorageError(f"Failed to read document: {e}", details={"key": key}) from e
        content_type = mimetypes.guess_type(path.name)[0] or content_type_for(path.suffix)
        return content, content_type

    async def delete(self, url: str) -> None:
        """Remove a stored document; unknown URLs and missing files are ignored"""
        key = self.key_for_url(url)
        if key is None:
            self._logger.warning("Delete requested for a foreign URL", extra_data={"url": url})
            return
        path = self._path_for_key(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise DocumentStorageError(f"Failed to delete document: {e}", details={"key": key}) from e
        self._logger.info("Document deleted", extra_data={"key": key})

    async def upload_driver_document(
        self,
        content: bytes,
        owner_ref: int | str,
        document_type: str,
        original_name: str,
    ) -> str:
        """Store a driver document as ``{owner_ref}/{document_type}.{ext}``"""
        extension = extension_of(original_name)
        return await self.upload(
            content,
            f"{owner_ref}/{document_type}.{extension}",
            content_type_for(extension),
        )


_storage: LocalDocumentStorage | None = None


def get_document_storage() -> LocalDocumentStorage:
    global _storage
    if _storage is None:
        _storage = LocalDocumentStorage()
    return _storage


def set_document_storage(storage: LocalDocumentStorage | None) -> None:
    """Install a storage explicitly (tests); None resets to the settings-based default"""
    global _storage
    _storage = storage
