import io

import pytest

from app import create_app
from brand_core import BrandStudio

from fakes import FakeProvider, failing_slots, jpeg_bytes, slot_prompt_text


def _client(settings, provider=None):
    studio = BrandStudio(settings, provider=provider)
    app = create_app(settings, studio=studio)
    app.config["TESTING"] = True
    return app.test_client()


def _local_path(url: str) -> str:
    return url.replace("http://testserver", "")


@pytest.fixture
def client(settings):
    return _client(settings)


def _upload(client, data=None, name="shirt.jpg"):
    return client.post(
        "/api/upload/single",
        data={"file": (io.BytesIO(data or jpeg_bytes()), name)},
        content_type="multipart/form-data",
    )


def test_end_to_end_offline(client):
    photo = jpeg_bytes()
    resp = _upload(client, photo)
    assert resp.status_code == 200
    uploaded = resp.get_json()
    assert uploaded["url"].endswith(".jpg")
    assert uploaded["size"] == len(photo)
    assert uploaded["mimetype"] == "image/jpeg"
    assert uploaded["filename"] == "shirt.jpg"

    resp = client.post("/api/analyze-product", json={"imageUrls": [uploaded["url"]]})
    assert resp.status_code == 200
    analysis = resp.get_json()["analysis"]
    assert analysis

    resp = client.post("/api/generate-brand-prompt", json={"productAnalysis": analysis, "brandData": {"id": "nike"}})
    assert resp.status_code == 200
    prompt = resp.get_json()
    assert "PROMPT" in prompt["brandPrompt"]
    assert prompt["brandName"] == "Nike"

    resp = client.post("/api/generate-brand-images", json={
        "productImageUrls": [uploaded["url"]],
        "brandPrompt": prompt["brandPrompt"],
        "brandId": "nike",
        "count": 4,
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["method"] == "placeholder"
    assert body["brandName"] == "Nike"
    assert 1 <= len(body["images"]) <= 4
    for url in body["images"]:
        image = client.get(_local_path(url))
        assert image.status_code == 200
        assert image.data.startswith(b"\x89PNG")
        assert image.headers["Cache-Control"] == "public, max-age=31536000"
        assert image.headers["Access-Control-Allow-Origin"] == "*"
        assert image.headers["Cross-Origin-Resource-Policy"] == "cross-origin"


def test_generate_with_provider_keeps_slot_indices(settings):
    client = _client(settings, FakeProvider(failing_slots(2)))
    url = _upload(client).get_json()["url"]
    resp = client.post("/api/generate-brand-images", json={
        "productImageUrl": url,
        "brandPrompt": slot_prompt_text(4),
        "brandId": "nike",
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["method"] == "fake"
    names = [u.rsplit("/", 1)[-1] for u in body["images"]]
    assert [n.split("_")[1] for n in names] == ["1", "3", "4"]


def test_total_failure_reports_every_slot(settings):
    client = _client(settings, FakeProvider(failing_slots(1, 2, 3, 4)))
    url = _upload(client).get_json()["url"]
    resp = client.post("/api/generate-brand-images", json={
        "productImageUrls": [url],
        "brandPrompt": slot_prompt_text(4),
        "brandId": "nike",
    })
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["error"] == "Failed to generate brand images"
    for i in range(1, 5):
        assert f"Variation {i}:" in body["details"]
    assert sorted(body["failures"]) == ["1", "2", "3", "4"]


def test_unknown_brand_is_404(client):
    resp = client.post("/api/generate-brand-images", json={
        "productImageUrls": ["https://cdn.example/a.jpg"],
        "brandPrompt": "anything",
        "brandId": "acme",
    })
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Brand not found", "brandId": "acme"}


def test_generate_requires_fields(client):
    resp = client.post("/api/generate-brand-images", json={"brandId": "nike"})
    assert resp.status_code == 400
    assert "Missing required parameters" in resp.get_json()["error"]


def test_combine_needs_two_images(client):
    resp = client.post("/api/combine-images", json={
        "productImageUrls": ["https://cdn.example/a.jpg"],
        "combinationPrompt": "put them together",
    })
    assert resp.status_code == 400


def test_combine_with_provider(settings):
    client = _client(settings, FakeProvider())
    urls = [_upload(client).get_json()["url"] for _ in range(2)]
    resp = client.post("/api/combine-images", json={
        "productImageUrls": urls,
        "combinationPrompt": "a model wearing both pieces",
        "brandName": "Nike",
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["inputImageCount"] == 2
    assert body["method"] == "fake"
    assert "nike_combined_" in body["image"]


def test_combine_offline_uses_placeholder(client):
    urls = [_upload(client).get_json()["url"] for _ in range(2)]
    resp = client.post("/api/combine-images", json={"productImageUrls": urls, "combinationPrompt": "both"})
    assert resp.status_code == 200
    assert resp.get_json()["method"] == "placeholder"


def test_upload_rejects_missing_and_non_images(client):
    assert client.post("/api/upload/single", data={}, content_type="multipart/form-data").status_code == 400
    resp = _upload(client, b"just text", name="notes.txt")
    assert resp.status_code == 400
    assert "image" in resp.get_json()["error"]


def test_upload_too_large(settings):
    client = _client(settings.with_overrides(max_upload_bytes=1024))
    assert _upload(client, b"\xff" * 2048).status_code == 400


def test_multi_upload(client):
    resp = client.post(
        "/api/upload",
        data={"files": [(io.BytesIO(jpeg_bytes()), "a.jpg"), (io.BytesIO(jpeg_bytes()), "b.png")]},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["count"] == 2
    assert [f["filename"] for f in body["files"]] == ["a.jpg", "b.png"]
    assert client.post("/api/upload", data={}, content_type="multipart/form-data").status_code == 400


def test_analyze_validation(client):
    resp = client.post("/api/analyze-product", json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Missing imageBase64 or mimeType for single image analysis"
    resp = client.post("/api/analyze-product", json={"imageBase64": "aGVsbG8=", "mimeType": "image/jpeg"})
    assert resp.status_code == 200


def test_analyze_stitches_multiple_images(client):
    urls = [_upload(client).get_json()["url"] for _ in range(2)]
    resp = client.post("/api/analyze-product", json={"imageUrls": urls})
    assert resp.status_code == 200
    assert resp.get_json()["success"] is True


def test_brand_prompt_validation(client):
    assert client.post("/api/generate-brand-prompt", json={"productAnalysis": "x"}).status_code == 400


def test_info_routes(client):
    assert client.get("/health").get_json()["status"] == "ok"
    assert len(client.get("/api/brands").get_json()["brands"]) == 8
    info = client.get("/").get_json()
    assert "POST /api/generate-brand-images" in info["endpoints"]
    status = client.get("/api/provider-status").get_json()
    assert status == {"provider": "replicate", "configured": False, "status": "unconfigured",
                      "detail": "REPLICATE_API_TOKEN not set"}


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Not found", "path": "/api/nope", "method": "GET"}
    assert client.get("/uploads/missing.png").status_code == 404
