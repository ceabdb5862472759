"""
Opaque object storage returning a retrievable URL per uploaded blob.
"""

import asyncio
import time
from pathlib import Path
from typing import Dict, Optional, Protocol

from classdesk.kernel.errors import TransientIOError, ValidationError
from classdesk.logging_config import get_logger

logger = get_logger(__name__)


def build_attachment_path(
    course_code: str,
    client_token: str,
    filename: str,
    now_ms: Optional[int] = None,
) -> str:
    """`<course>/<client_token>/<epoch_ms>.<ext>`; the extension defaults to `bin`."""
    ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{course_code}/{client_token}/{stamp}.{ext or 'bin'}"


class BlobStore(Protocol):
    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store `data` under `path` and return its public URL."""
        ...


class LocalBlobStore:
    """Writes blobs under a directory served at `base_url`."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValidationError("Attachment path escapes the storage root", field="path")
        return target

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as exc:
            logger.warning("Attachment upload failed", extra={"path": path, "error": str(exc)})
            raise TransientIOError("Attachment upload failed") from exc
        return f"{self.base_url}/{path}"


class MemoryBlobStore:
    """Keeps blobs in a dict; for tests and single-process runs."""

    def __init__(self, base_url: str = "memory://attachments"):
        self.base_url = base_url.rstrip("/")
        self.blobs: Dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        self.blobs[path] = data
        return f"{self.base_url}/{path}"
