"""Core brand generation service. Used by both the web app and CLI."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from brands import find_brand, get_brand
from config import Settings
from errors import BrandNotFound, DownloadError, InvalidInput
from generator import ImageProvider, RetryPolicy, VariationGenerator
from imaging import render_placeholder, stitch_side_by_side
from llm import BrandCopywriter
from materializer import ImageMaterializer
from orchestrator import GenerationJob, JobOutcome, VariationOrchestrator, normalize_image_urls
from providers import ProbeResult, ReplicateImageProvider
from storage import ImageStorage, mime_for

log = logging.getLogger(__name__)

MIN_COMBINE_IMAGES = 2


class BrandStudio:
    """Wires storage, the LLM copywriter and the image provider from Settings.

    ``provider``, ``copywriter`` and ``transport`` can be injected; tests pass
    fakes and an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        provider: Optional[ImageProvider] = None,
        copywriter: Optional[BrandCopywriter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.storage = ImageStorage(settings.uploads_dir, settings.public_base_url)
        self.copywriter = copywriter or BrandCopywriter(
            settings.text_provider, settings.text_model, settings.text_api_key,
        )
        if provider is None and settings.replicate_configured:
            provider = ReplicateImageProvider(
                settings.replicate_api_token,
                settings.image_model,
                poll_interval=settings.poll_interval,
                max_polls=settings.max_polls,
                user_agent=settings.http_user_agent,
            )
        self.provider = provider
        self.policy = RetryPolicy.from_settings(settings)
        self._transport = transport

        log.info(
            "Studio init: llm=%s/%s%s  images=%s  uploads=%s",
            settings.text_provider, settings.text_model,
            " (mock)" if self.copywriter.mock else "",
            getattr(provider, "name", "placeholder"), self.storage.root,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        # One client per operation: Flask runs each async view in its own loop.
        return httpx.AsyncClient(
            timeout=60.0,
            headers={"User-Agent": self.settings.http_user_agent},
            transport=self._transport,
        )

    def _orchestrator(self, http: httpx.AsyncClient) -> VariationOrchestrator:
        generator = VariationGenerator(
            self.provider, ImageMaterializer(self.storage, http), self.policy,  # type: ignore[arg-type]
        )
        return VariationOrchestrator(
            generator,
            self.storage,
            backfill_rounds=self.settings.backfill_rounds,
            launch_stagger=self.settings.launch_stagger,
            placeholder_on_failure=self.settings.placeholder_on_failure,
        )

    async def _load_image(self, http: httpx.AsyncClient, url: str) -> Tuple[bytes, str]:
        if url.startswith("data:") and ";base64," in url:
            header, encoded = url.split(";base64,", 1)
            return base64.b64decode(encoded), header[len("data:"):] or "image/jpeg"
        local = self.storage.resolve_local(url)
        if local is not None:
            return await asyncio.to_thread(local.read_bytes), mime_for(local)
        if not url.startswith("http"):
            raise InvalidInput(f"Image not found: {url}")
        resp = await http.get(url, follow_redirects=True)
        if not resp.is_success:
            raise DownloadError(url, resp.status_code)
        mime = resp.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        return resp.content, mime

    async def _degraded(self, http: httpx.AsyncClient) -> Optional[str]:
        """Reason to skip live generation, or None when the provider should be used."""
        if self.provider is None:
            return "image provider not configured"
        if self.settings.probe_provider and hasattr(self.provider, "probe"):
            probe = await self.provider.probe(http)
            if probe.blocked:
                log.warning("Provider probe reports blocking (%s); using placeholders", probe.detail)
                return f"provider blocked: {probe.detail}"
        return None

    # ------------------------------------------------------------------
    # LLM steps
    # ------------------------------------------------------------------

    async def analyze(
        self,
        image_base64: Optional[str] = None,
        mime_type: Optional[str] = None,
        image_urls: Any = None,
    ) -> str:
        urls = normalize_image_urls(image_urls)
        if urls:
            async with self._http() as http:
                loaded = [await self._load_image(http, u) for u in urls]
            if len(loaded) > 1:
                log.info("Stitching %d images for analysis", len(loaded))
                stitched = await asyncio.to_thread(stitch_side_by_side, [data for data, _ in loaded])
                image_base64, mime_type = base64.b64encode(stitched).decode("ascii"), "image/jpeg"
            else:
                data, mime_type = loaded[0]
                image_base64 = base64.b64encode(data).decode("ascii")
        elif not image_base64 or not mime_type:
            raise InvalidInput("Missing imageBase64 or mimeType for single image analysis")

        return await self.copywriter.analyze_product(image_base64, mime_type)

    async def brand_prompt(self, analysis: Any, brand_data: Any) -> Tuple[str, str]:
        if not analysis or not isinstance(brand_data, dict) or not brand_data:
            raise InvalidInput("Missing productAnalysis or brandData")
        # Catalog entries win over client-sent copies; unknown brands are used as sent.
        brand = get_brand(brand_data.get("id")) or brand_data
        name = brand.get("name") or brand_data.get("name") or "Brand"
        log.info("Generating brand prompt for %s", name)
        text = await self.copywriter.generate_brand_prompt(str(analysis), brand)
        return text, name

    # ------------------------------------------------------------------
    # Image steps
    # ------------------------------------------------------------------

    async def generate_brand_images(
        self,
        product_image_urls: Any,
        brand_prompt: Any,
        brand_id: Optional[str],
        count: Any = None,
    ) -> Tuple[Dict, JobOutcome]:
        if not normalize_image_urls(product_image_urls) or not brand_prompt or not brand_id:
            raise InvalidInput("Missing required parameters: productImageUrls, brandPrompt, brandId")
        brand = get_brand(brand_id)
        if brand is None:
            raise BrandNotFound(str(brand_id))

        job = GenerationJob.create(
            product_image_urls,
            brand_prompt,
            brand["id"],
            brand_name=brand["name"],
            palette=brand.get("colorPalette", ()),
            target_count=count,
        )
        async with self._http() as http:
            reason = await self._degraded(http)
            outcome = await self._orchestrator(http).run(job, degraded=reason is not None)
        if reason:
            outcome.notes.append(reason)
        return brand, outcome

    async def combine_images(
        self,
        product_image_urls: Any,
        combination_prompt: Any,
        brand_name: Optional[str] = None,
        brand_id: Optional[str] = None,
    ) -> Tuple[str, int, str]:
        """Generate one image combining every input; returns (url, input_count, method)."""
        urls = normalize_image_urls(product_image_urls)
        if not combination_prompt or not isinstance(combination_prompt, str):
            raise InvalidInput("Missing required parameters: productImageUrls, combinationPrompt")
        if len(urls) < MIN_COMBINE_IMAGES:
            raise InvalidInput(f"At least {MIN_COMBINE_IMAGES} product images are required to combine")
        brand = find_brand(brand_id) or find_brand(brand_name) or {}
        label = brand_name or brand.get("name") or "combined"
        log.info("Combining %d images for %s", len(urls), label)

        async with self._http() as http:
            reason = await self._degraded(http)
            if reason:
                png = await asyncio.to_thread(
                    render_placeholder, label, brand.get("colorPalette", []), 1, combination_prompt[:220],
                )
                url = await self.storage.save_async(self.storage.combined_filename(label), png)
                return url, len(urls), "placeholder"

            inputs = await asyncio.to_thread(self.storage.provider_inputs, urls)
            if len(inputs) < MIN_COMBINE_IMAGES:
                raise InvalidInput("Some product images could not be loaded")
            generator = self._orchestrator(http).generator
            url = await generator.generate(inputs, combination_prompt, label, 1, combined=True)
        return url, len(urls), self.provider.name  # type: ignore[union-attr]

    async def provider_status(self) -> ProbeResult:
        if self.provider is None:
            return ProbeResult("unconfigured", "REPLICATE_API_TOKEN not set")
        if not hasattr(self.provider, "probe"):
            return ProbeResult("ok", "probe not supported")
        async with self._http() as http:
            t0 = time.time()
            result = await self.provider.probe(http)
        log.info("Provider probe: %s %s (%.1fs)", result.status, result.detail, time.time() - t0)
        return result

    @staticmethod
    def summarize(outcome: JobOutcome) -> List[Dict]:
        return [
            {
                "index": r.index,
                "ok": r.ok,
                "placeholder": r.placeholder,
                "blocked": r.blocked,
                "reason": r.reason,
            }
            for r in outcome.results
        ]
