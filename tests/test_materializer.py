import asyncio
import base64
import io
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

from errors import DownloadError, UnrecognizedOutputFormat
from materializer import (
    BinaryResult,
    ImageMaterializer,
    NestedObjectResult,
    Unrecognized,
    UrlResult,
    decode_output,
    find_nested_url,
)

from fakes import png_bytes

IMAGE = png_bytes()


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/missing.png"):
        return httpx.Response(404, text="not found")
    if request.url.path.endswith("/empty.png"):
        return httpx.Response(200, content=b"")
    return httpx.Response(200, content=IMAGE, headers={"content-type": "image/png"})


def _materialize(storage, output, index=2):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
            return await ImageMaterializer(storage, http).materialize(output, "Tiffany & Co.", index)

    return asyncio.run(go())


class FileLike:
    def __init__(self, data: bytes):
        self._buf = io.BytesIO(data)

    def read(self) -> bytes:
        return self._buf.read()


class AsyncStream:
    def __init__(self, chunks):
        self.chunks = chunks

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for chunk in self.chunks:
            yield chunk


def test_decode_variants():
    assert decode_output("https://cdn.example/a.png") == UrlResult("https://cdn.example/a.png")
    assert decode_output(b"abc") == BinaryResult(b"abc")
    data_uri = "data:image/png;base64," + base64.b64encode(b"xyz").decode()
    assert decode_output(data_uri) == BinaryResult(b"xyz")
    assert decode_output(["https://cdn.example/b.png"]) == UrlResult("https://cdn.example/b.png")
    nested = decode_output({"output": "https://cdn.example/c.png"})
    assert nested == NestedObjectResult("https://cdn.example/c.png", "dict")
    assert isinstance(decode_output(None), Unrecognized)
    assert isinstance(decode_output("not a url"), Unrecognized)
    assert isinstance(decode_output({"status": "ok"}), Unrecognized)
    assert isinstance(decode_output([]), Unrecognized)


def test_find_nested_url_looks_one_level_into_arrays():
    assert find_nested_url({"images": ["https://cdn.example/d.png"]}) == "https://cdn.example/d.png"
    assert find_nested_url(SimpleNamespace(url="https://cdn.example/e.png")) == "https://cdn.example/e.png"
    assert find_nested_url({"meta": {"url": "https://cdn.example/f.png"}}) is None


def test_url_output_is_downloaded_and_named_by_slot(storage):
    url = _materialize(storage, "https://cdn.example/out.png", index=3)
    name = url.rsplit("/", 1)[-1]
    assert url.startswith("http://testserver/uploads/")
    assert name.startswith("tiffany-co_3_")
    assert name.endswith(".png")
    assert (storage.root / name).read_bytes() == IMAGE


def test_binary_outputs(storage):
    for output in (IMAGE, FileLike(IMAGE), AsyncStream([IMAGE[:10], IMAGE[10:]]), [FileLike(IMAGE)]):
        url = _materialize(storage, output)
        assert storage.path_for(url.rsplit("/", 1)[-1]).read_bytes() == IMAGE


def test_nested_object_output(storage):
    url = _materialize(storage, {"images": ["https://cdn.example/nested.png"]})
    assert Path(storage.path_for(url.rsplit("/", 1)[-1])).read_bytes() == IMAGE


def test_download_failure_raises(storage):
    with pytest.raises(DownloadError) as info:
        _materialize(storage, "https://cdn.example/missing.png")
    assert info.value.status == 404


def test_unrecognized_and_empty_outputs(storage):
    with pytest.raises(UnrecognizedOutputFormat):
        _materialize(storage, {"status": "succeeded"})
    with pytest.raises(UnrecognizedOutputFormat):
        _materialize(storage, "https://cdn.example/empty.png")
    assert list(storage.root.iterdir()) == []


def test_filenames_are_unique(storage):
    names = {storage.variation_filename("Nike", 1) for _ in range(50)}
    assert len(names) == 50
