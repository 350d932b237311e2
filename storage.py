"""Local file storage for uploads and generated images.

Everything lives in one directory served at ``/uploads/``.  Files are
written once and never modified; there is no eviction.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import re
import secrets
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union
from urllib.parse import urlparse

log = logging.getLogger(__name__)

URL_PREFIX = "/uploads"

_MIME_BY_EXT = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def brand_slug(name: str) -> str:
    """'Tiffany & Co.' -> 'tiffany-co'.  Never contains '_' (used as a field separator)."""
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "brand"


def mime_for(path: Union[str, Path]) -> str:
    return _MIME_BY_EXT.get(Path(path).suffix.lower(), "image/jpeg")


class ImageStorage:
    def __init__(self, root: Union[str, Path], public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @staticmethod
    def _stamp() -> str:
        return f"{int(time.time() * 1000)}_{secrets.token_hex(3)}"

    def variation_filename(self, brand_name: str, index: int) -> str:
        return f"{brand_slug(brand_name)}_{index}_{self._stamp()}.png"

    def placeholder_filename(self, brand_name: str, index: int) -> str:
        return f"{brand_slug(brand_name)}_mock_{index}_{self._stamp()}.png"

    def combined_filename(self, brand_name: str) -> str:
        return f"{brand_slug(brand_name)}_combined_{self._stamp()}.png"

    def upload_filename(self, original_name: str, mimetype: str = "") -> str:
        ext = Path(original_name or "").suffix.lower()
        if not re.fullmatch(r"\.[a-z0-9]{1,5}", ext):
            ext = guess_extension(mimetype)
        return f"upload_{int(time.time() * 1000)}_{secrets.token_hex(6)}{ext}"

    # ------------------------------------------------------------------
    # Reading / writing
    # ------------------------------------------------------------------

    def url_for(self, filename: str) -> str:
        return f"{self.public_base_url}{URL_PREFIX}/{filename}"

    def path_for(self, filename: str) -> Path:
        return self.root / Path(filename).name

    def save(self, filename: str, data: bytes) -> str:
        """Write bytes and return the public URL."""
        path = self.path_for(filename)
        path.write_bytes(data)
        log.info("Saved %s (%d bytes)", path.name, len(data))
        return self.url_for(path.name)

    async def save_async(self, filename: str, data: bytes) -> str:
        return await asyncio.to_thread(self.save, filename, data)

    def resolve_local(self, url: str) -> Optional[Path]:
        """Map a URL served by this app back to its file, else None.

        Accepts the absolute public URL, any ``http://localhost:<port>/uploads/…``
        URL and the bare ``/uploads/…`` path.
        """
        if not url:
            return None
        parsed = urlparse(url)
        is_ours = (
            url.startswith(self.public_base_url + URL_PREFIX + "/")
            or url.startswith(URL_PREFIX + "/")
            or (parsed.hostname in ("localhost", "127.0.0.1") and parsed.path.startswith(URL_PREFIX + "/"))
        )
        if not is_ours:
            return None
        path = self.path_for(parsed.path.rsplit("/", 1)[-1])
        return path if path.is_file() else None

    def as_data_uri(self, path: Path) -> str:
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        return f"data:{mime_for(path)};base64,{encoded}"

    def provider_inputs(self, urls: Sequence[str]) -> List[str]:
        """Inline our own files as data URIs; pass external URLs through.

        Local URLs whose file is missing are dropped with a warning.
        """
        inputs: List[str] = []
        for url in urls:
            if url.startswith("data:"):
                inputs.append(url)
                continue
            local = self.resolve_local(url)
            if local is not None:
                inputs.append(self.as_data_uri(local))
            elif urlparse(url).path.startswith(URL_PREFIX + "/") and self._looks_local(url):
                log.warning("Input image not found on disk, skipping: %s", url)
            else:
                inputs.append(url)
        return inputs

    def _looks_local(self, url: str) -> bool:
        parsed = urlparse(url)
        return (
            not parsed.netloc
            or url.startswith(self.public_base_url)
            or parsed.hostname in ("localhost", "127.0.0.1")
        )


def guess_extension(mimetype: str) -> str:
    ext = mimetypes.guess_extension(mimetype or "") or ".jpg"
    return ".jpg" if ext in (".jpe", ".jpeg") else ext
