"""Cluely for Brands — Flask API backend."""

from __future__ import annotations

import logging
import time
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

import log_setup
from brand_core import BrandStudio
from brands import BRANDS
from config import Settings
from errors import InvalidInput, StudioError
from storage import URL_PREFIX

log = logging.getLogger(__name__)

SERVICE_NAME = "Cluely for Brands API"
VERSION = "1.0.0"

ENDPOINTS = [
    "POST /api/upload/single",
    "POST /api/upload",
    "POST /api/analyze-product",
    "POST /api/generate-brand-prompt",
    "POST /api/generate-brand-images",
    "POST /api/combine-images",
    "GET /api/brands",
    "GET /api/provider-status",
    "GET /health",
    f"GET {URL_PREFIX}/<filename>",
]


def _studio() -> BrandStudio:
    return current_app.extensions["studio"]


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _save_upload(file_storage) -> dict:
    studio = _studio()
    if not file_storage or not file_storage.filename:
        raise InvalidInput("No file uploaded")
    mimetype = file_storage.mimetype or ""
    if not mimetype.startswith("image/"):
        raise InvalidInput(f"Only image files are allowed (got {mimetype or 'unknown type'})")

    data = file_storage.read()
    if not data:
        raise InvalidInput("Uploaded file is empty")
    if len(data) > studio.settings.max_upload_bytes:
        raise InvalidInput(
            f"File too large (max {studio.settings.max_upload_bytes // (1024 * 1024)}MB)"
        )

    saved_as = studio.storage.upload_filename(file_storage.filename, mimetype)
    url = studio.storage.save(saved_as, data)
    log.info("Upload: %s -> %s (%d bytes, %s)", file_storage.filename, saved_as, len(data), mimetype)
    return {
        "url": url,
        "filename": file_storage.filename,
        "savedAs": saved_as,
        "size": len(data),
        "mimetype": mimetype,
    }


def create_app(settings: Optional[Settings] = None, studio: Optional[BrandStudio] = None) -> Flask:
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
    log_setup.configure()

    app = Flask(__name__, static_folder=None)
    # Slack for multipart framing on top of the per-file limit
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes * settings.max_upload_files + 1024 * 1024
    CORS(app, origins=settings.cors_origins, supports_credentials=True)

    app.extensions["studio"] = studio or BrandStudio(settings)
    log.info("App ready: %s", settings.public_flags())

    # -----------------------------------------------------------------------
    # Error handlers
    # -----------------------------------------------------------------------

    @app.errorhandler(StudioError)
    def handle_studio_error(exc: StudioError):
        if exc.status_code >= 500:
            log.error("%s: %s", type(exc).__name__, exc)
        else:
            log.info("Rejected request %s %s: %s", request.method, request.path, exc)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc):
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        return jsonify({"error": f"File too large (max {limit_mb}MB per file)"}), 413

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "Not found", "path": request.path, "method": request.method}), 404

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.name, "details": exc.description}), exc.code
        log.error("Unhandled error on %s %s", request.method, request.path, exc_info=True)
        return jsonify({"error": "Internal server error", "details": str(exc)}), 500

    # -----------------------------------------------------------------------
    # Routes — service info
    # -----------------------------------------------------------------------

    @app.get("/")
    def index():
        return jsonify({"service": SERVICE_NAME, "version": VERSION, "endpoints": ENDPOINTS})

    @app.get("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "config": settings.public_flags(),
        })

    @app.get("/api/brands")
    def api_brands():
        return jsonify({"brands": BRANDS})

    @app.get("/api/provider-status")
    async def api_provider_status():
        result = await _studio().provider_status()
        return jsonify({
            "provider": "replicate",
            "configured": settings.replicate_configured,
            "status": result.status,
            "detail": result.detail,
        })

    # -----------------------------------------------------------------------
    # Routes — stored files
    # -----------------------------------------------------------------------

    @app.get(f"{URL_PREFIX}/<path:filename>")
    def serve_upload(filename: str):
        resp = send_from_directory(str(_studio().storage.root), filename)
        resp.headers["Cache-Control"] = "public, max-age=31536000"
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        return resp

    # -----------------------------------------------------------------------
    # Routes — uploads
    # -----------------------------------------------------------------------

    @app.post("/api/upload/single")
    def api_upload_single():
        return jsonify(_save_upload(request.files.get("file")))

    @app.post("/api/upload")
    def api_upload_many():
        files = request.files.getlist("files") or request.files.getlist("files[]")
        files = [f for f in files if f and f.filename]
        if not files:
            raise InvalidInput("No files uploaded")
        if len(files) > settings.max_upload_files:
            raise InvalidInput(f"Too many files (max {settings.max_upload_files})")
        saved = [_save_upload(f) for f in files]
        return jsonify({"files": saved, "count": len(saved)})

    # -----------------------------------------------------------------------
    # Routes — LLM steps
    # -----------------------------------------------------------------------

    @app.post("/api/analyze-product")
    async def api_analyze_product():
        body = _json_body()
        analysis = await _studio().analyze(
            image_base64=body.get("imageBase64"),
            mime_type=body.get("mimeType"),
            image_urls=body.get("imageUrls"),
        )
        return jsonify({"analysis": analysis, "success": True})

    @app.post("/api/generate-brand-prompt")
    async def api_generate_brand_prompt():
        body = _json_body()
        text, brand_name = await _studio().brand_prompt(body.get("productAnalysis"), body.get("brandData"))
        return jsonify({"brandPrompt": text, "brandName": brand_name, "success": True})

    # -----------------------------------------------------------------------
    # Routes — image generation
    # -----------------------------------------------------------------------

    @app.post("/api/generate-brand-images")
    async def api_generate_brand_images():
        body = _json_body()
        urls = body.get("productImageUrls") or body.get("productImageUrl")
        brand, outcome = await _studio().generate_brand_images(
            urls, body.get("brandPrompt"), body.get("brandId"), body.get("count"),
        )
        log.info(
            "generate-brand-images: brand=%s method=%s images=%d failures=%s",
            brand["id"], outcome.method, len(outcome.images), outcome.failures or "none",
        )
        return jsonify({
            "images": outcome.images,
            "brandName": brand["name"],
            "method": outcome.method,
            "success": True,
        })

    @app.post("/api/combine-images")
    async def api_combine_images():
        body = _json_body()
        url, count, method = await _studio().combine_images(
            body.get("productImageUrls"), body.get("combinationPrompt"), body.get("brandName"),
            brand_id=body.get("brandId"),
        )
        return jsonify({"image": url, "inputImageCount": count, "method": method, "success": True})

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    load_dotenv()
    _settings = Settings.from_env()
    app = create_app(_settings)
    print(f"\n  {SERVICE_NAME} → http://localhost:{_settings.port}\n")
    app.run(host="0.0.0.0", port=_settings.port, debug=False, threaded=True)
