"""Local object storage for generated recipe images."""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

import httpx

from plan_engine.errors import ImageResolutionError

logger = logging.getLogger(__name__)

CONTENT_TYPE_SUFFIXES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "image"


class LocalImageStore:
    """Copies temporary image URLs into a directory and returns a lasting URL.

    With ``base_url`` set, returned URLs are ``{base_url}/{filename}``;
    otherwise they are ``file://`` URIs of the stored file.
    """

    def __init__(
        self,
        root: Path,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/") if base_url else None
        self._http = http_client or httpx.Client(timeout=timeout, follow_redirects=True)

    def upload(self, temporary_url: str, name: str) -> str:
        try:
            response = self._http.get(temporary_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageResolutionError(f"Failed to download image for {name}: {e}") from e

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        suffix = CONTENT_TYPE_SUFFIXES.get(content_type, ".png")
        digest = hashlib.sha256(temporary_url.encode()).hexdigest()[:8]
        filename = f"{slugify(name)}-{digest}{suffix}"

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / filename
        path.write_bytes(response.content)
        logger.debug("Stored image for %s at %s (%d bytes)", name, path, len(response.content))

        if self.base_url:
            return f"{self.base_url}/{filename}"
        return path.resolve().as_uri()

    def close(self) -> None:
        self._http.close()
