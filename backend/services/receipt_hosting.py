from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote
from uuid import uuid4

from expense_flow.errors import ExternalSinkError

SUPPORTED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/tiff",
        "image/heic",
    }
)


def sanitize_filename(value: str) -> str:
    value = Path(value).name
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", value)
    return safe or "receipt.bin"


@dataclass
class LocalFileHost:
    """Stores receipt files under ``base_dir`` and serves them from ``public_base_url``."""

    base_dir: Path
    public_base_url: str

    async def upload(self, filename: str, mime_type: str, content: bytes) -> str:
        if mime_type.lower() not in SUPPORTED_CONTENT_TYPES:
            raise ExternalSinkError(
                "file_host",
                f"Unsupported content type '{mime_type}'. Supported values: {sorted(SUPPORTED_CONTENT_TYPES)}",
            )
        stored_name = f"{uuid4().hex}-{sanitize_filename(filename)}"
        await asyncio.to_thread(self._write, stored_name, content)
        return f"{self.public_base_url.rstrip('/')}/{quote(stored_name)}"

    def upload_path(self, stored_name: str) -> Path:
        root = Path(self.base_dir).resolve()
        path = (root / sanitize_filename(stored_name)).resolve()
        if path.parent != root:
            raise ExternalSinkError("file_host", "Unsafe upload path")
        return path

    def _write(self, stored_name: str, content: bytes) -> None:
        Path(self.base_dir).mkdir(parents=True, exist_ok=True)
        try:
            self.upload_path(stored_name).write_bytes(content)
        except OSError as exc:
            raise ExternalSinkError("file_host", f"Could not store {stored_name}: {exc}") from exc
