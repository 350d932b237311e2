"""Turn whatever the image provider returned into a stored, addressable file.

Provider responses are decoded exactly once, here, into one of:

    UrlResult           a plain ``http…`` string
    BinaryResult        bytes, a file-like object or an async byte stream
                        (replicate's FileOutput is all three)
    NestedObjectResult  a dict/object with an ``http…`` string inside
    Unrecognized        anything else
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

import httpx

from errors import DownloadError, UnrecognizedOutputFormat
from storage import ImageStorage

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UrlResult:
    url: str


@dataclass(frozen=True)
class BinaryResult:
    payload: Any  # bytes, object with .read(), or async iterable of bytes


@dataclass(frozen=True)
class NestedObjectResult:
    url: str
    source_type: str


@dataclass(frozen=True)
class Unrecognized:
    description: str


ProviderOutput = Union[UrlResult, BinaryResult, NestedObjectResult, Unrecognized]


def _is_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("http")


def _own_fields(value: Any) -> Iterable[Any]:
    if isinstance(value, dict):
        return list(value.values())
    fields = []
    url = getattr(value, "url", None)
    if url is not None:
        fields.append(url)
    try:
        fields.extend(vars(value).values())
    except TypeError:
        pass
    return fields


def find_nested_url(value: Any) -> Optional[str]:
    """First ``http…`` string among the object's own fields, then one level into arrays."""
    fields = list(_own_fields(value))
    for field in fields:
        if _is_url(field):
            return field
    for field in fields:
        if isinstance(field, (list, tuple)):
            for item in field:
                if _is_url(item):
                    return item
    return None


def decode_output(value: Any) -> ProviderOutput:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BinaryResult(bytes(value))
    if isinstance(value, str):
        if _is_url(value):
            return UrlResult(value)
        if value.startswith("data:") and ";base64," in value:
            return BinaryResult(base64.b64decode(value.split(";base64,", 1)[1]))
        return Unrecognized(f"string output without a URL: {value[:80]!r}")
    if value is None:
        return Unrecognized("empty output")
    if hasattr(value, "read") or hasattr(value, "__aiter__"):
        return BinaryResult(value)
    if isinstance(value, (list, tuple)):
        for item in value:
            decoded = decode_output(item)
            if not isinstance(decoded, Unrecognized):
                return decoded
        return Unrecognized(f"list of {len(value)} items without an image")
    url = find_nested_url(value)
    if url:
        return NestedObjectResult(url=url, source_type=type(value).__name__)
    return Unrecognized(f"unsupported output type {type(value).__name__}")


async def _drain(payload: Any) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if hasattr(payload, "read"):
        return bytes(await asyncio.to_thread(payload.read))
    chunks = []
    async for chunk in payload:
        chunks.append(bytes(chunk))
    return b"".join(chunks)


class ImageMaterializer:
    """Download or drain provider output and persist it as a PNG file."""

    def __init__(self, storage: ImageStorage, http: httpx.AsyncClient) -> None:
        self.storage = storage
        self.http = http

    async def download(self, url: str) -> bytes:
        resp = await self.http.get(url, follow_redirects=True)
        if not resp.is_success:
            raise DownloadError(url, resp.status_code)
        return resp.content

    async def fetch_bytes(self, output: Any) -> bytes:
        decoded = decode_output(output)
        if isinstance(decoded, (UrlResult, NestedObjectResult)):
            if isinstance(decoded, NestedObjectResult):
                log.debug("Found image URL nested in %s output", decoded.source_type)
            data = await self.download(decoded.url)
        elif isinstance(decoded, BinaryResult):
            data = await _drain(decoded.payload)
        else:
            raise UnrecognizedOutputFormat(f"Unrecognized provider output: {decoded.description}")
        if not data:
            raise UnrecognizedOutputFormat("Provider returned an empty image")
        return data

    async def materialize(self, output: Any, brand_name: str, index: int) -> str:
        """Store one variation; returns its absolute URL."""
        data = await self.fetch_bytes(output)
        filename = self.storage.variation_filename(brand_name, index)
        return await self.storage.save_async(filename, data)

    async def materialize_combined(self, output: Any, brand_name: str) -> str:
        data = await self.fetch_bytes(output)
        return await self.storage.save_async(self.storage.combined_filename(brand_name), data)
