"""
Managed output directory and media file helpers.

Every tool that writes generated media shares one output directory. Writers
never overwrite: each file gets a fresh name built from a kind prefix, a
millisecond timestamp and a random suffix.
"""

import base64
import time
import uuid
from pathlib import Path, PurePosixPath
from typing import Optional, Union
from urllib.parse import urlparse

from ..core.config import settings
from ..core.logging import logger


IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "gif", "webp")

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class OutputDirectory:
    """Process-wide location for generated media, created on first use."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else settings.output_path

    def ensure(self) -> Path:
        """Create the directory if needed (idempotent) and return it."""
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def new_file(self, prefix: str, extension: str) -> Path:
        """Mint a collision-resistant path: ``<prefix>_<ms>_<hex>.<ext>``."""
        self.ensure()
        timestamp = int(time.time() * 1000)
        filename = f"{prefix}_{timestamp}_{uuid.uuid4().hex[:8]}.{extension.lstrip('.')}"
        return self.path / filename

    def write(self, prefix: str, extension: str, data: bytes) -> Path:
        """Write ``data`` to a freshly minted file and return its path."""
        path = self.new_file(prefix, extension)
        path.write_bytes(data)
        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return path

    def resolve(self, path: Union[str, Path]) -> Path:
        """Resolve a relative path under the directory; absolute paths pass through."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.path / candidate

    def __str__(self) -> str:
        return str(self.path)


def extension_from_url(url: str, default: str = "png") -> str:
    """Infer an image extension from a URL path, ignoring query and fragment."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower().lstrip(".")
    return suffix if suffix in IMAGE_EXTENSIONS else default


def mime_type_for(path: Union[str, Path]) -> str:
    """MIME type for an image path, defaulting to JPEG."""
    return MIME_TYPES.get(Path(path).suffix.lower(), "image/jpeg")


def bytes_to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode raw image bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def file_to_data_url(path: Union[str, Path]) -> str:
    """Read an image file into a base64 data URL.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    file_path = Path(path)
    data = file_path.read_bytes()
    logger.debug(f"Read image {file_path}: {len(data) / 1024:.2f} KB, type {mime_type_for(file_path)}")
    return bytes_to_data_url(data, mime_type_for(file_path))
