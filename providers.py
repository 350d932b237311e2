"""Replicate image-generation provider."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import httpx
import replicate

log = logging.getLogger(__name__)

REPLICATE_API = "https://api.replicate.com/v1"

TERMINAL_STATUSES = ("succeeded", "failed", "canceled")

# Curated models that accept product reference images
IMAGE_MODELS = [
    {"id": "google/nano-banana", "name": "Google Nano Banana", "inputs": "image_input[]"},
    {"id": "black-forest-labs/flux-kontext-pro", "name": "FLUX Kontext Pro", "inputs": "input_image"},
    {"id": "flux-kontext-apps/multi-image-list", "name": "FLUX Kontext Multi-Image", "inputs": "input_images[]"},
    {"id": "black-forest-labs/flux-schnell", "name": "FLUX Schnell (prompt only)", "inputs": "none"},
]

DEFAULT_IMAGE_MODEL = "google/nano-banana"


class PredictionFailed(RuntimeError):
    pass


def build_replicate_input(model: str, prompt: str, images: Sequence[str]) -> Dict[str, Any]:
    """Return the input payload for ``model``; each family names its image field differently."""
    images = list(images)

    # Google nano-banana family
    if "nano-banana" in model:
        payload: Dict[str, Any] = {"prompt": prompt, "output_format": "png"}
        if images:
            payload["image_input"] = images
            payload["aspect_ratio"] = "match_input_image"
        else:
            payload["aspect_ratio"] = "1:1"
        return payload

    # FLUX Kontext multi-image list
    if "multi-image-list" in model:
        return {
            "prompt": prompt,
            "input_images": images,
            "aspect_ratio": "1:1",
            "output_format": "png",
            "safety_tolerance": 2,
        }

    # FLUX Kontext two-image variant
    if "multi-image-kontext" in model:
        payload = {
            "prompt": prompt,
            "aspect_ratio": "1:1",
            "output_format": "png",
            "safety_tolerance": 2,
        }
        for i, image in enumerate(images[:2], start=1):
            payload[f"input_image_{i}"] = image
        return payload

    # FLUX Kontext (single reference image)
    if "kontext" in model and images:
        return {
            "prompt": prompt,
            "input_image": images[0],
            "aspect_ratio": "match_input_image",
            "output_format": "png",
            "safety_tolerance": 2,
        }

    # FLUX text-to-image (schnell, dev, pro): reference images are not supported
    return {
        "prompt": prompt,
        "aspect_ratio": "1:1",
        "num_outputs": 1,
        "output_format": "png",
        "output_quality": 90,
    }


@dataclass
class ProbeResult:
    status: str  # ok | blocked | unauthorized | unconfigured | error
    detail: str = ""

    @property
    def blocked(self) -> bool:
        return self.status == "blocked"


class ReplicateImageProvider:
    """Runs one prediction per call: create, poll until terminal, return raw output."""

    name = "replicate"

    def __init__(
        self,
        api_token: str,
        model: str = DEFAULT_IMAGE_MODEL,
        *,
        poll_interval: float = 1.0,
        max_polls: int = 90,
        user_agent: str = "cluely-brands/1.0",
        client: Optional[Any] = None,
    ) -> None:
        if not api_token and client is None:
            raise RuntimeError("REPLICATE_API_TOKEN not set")
        self.api_token = api_token
        self.model = model
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.user_agent = user_agent
        self.client = client or replicate.Client(api_token=api_token)

    async def generate(self, prompt: str, input_images: Sequence[str]) -> Any:
        payload = build_replicate_input(self.model, prompt, input_images)
        t0 = time.time()
        try:
            prediction = await asyncio.to_thread(
                self.client.predictions.create, model=self.model, input=payload,
            )
        except Exception as pred_err:
            # Community models have no /models/{owner}/{name}/predictions route;
            # run() resolves the latest version instead.
            err_s = str(pred_err)
            if "404" in err_s or "not found" in err_s.lower() or "version" in err_s.lower():
                log.debug("predictions.create failed for %s, falling back to run(): %s", self.model, err_s)
                return await asyncio.to_thread(self.client.run, self.model, input=payload)
            raise

        output = await self._wait(prediction)
        log.info("Replicate: model=%s  prediction=%s  %.1fs", self.model, prediction.id, time.time() - t0)
        return output

    async def _wait(self, prediction: Any) -> Any:
        polls = 0
        while prediction.status not in TERMINAL_STATUSES:
            if polls >= self.max_polls:
                raise PredictionFailed(
                    f"Prediction {prediction.id} still {prediction.status} after {polls} polls"
                )
            await asyncio.sleep(self.poll_interval)
            await asyncio.to_thread(prediction.reload)
            polls += 1

        if prediction.status == "failed":
            raise PredictionFailed(f"Replicate prediction failed: {prediction.error}")
        if prediction.status == "canceled":
            raise PredictionFailed(f"Replicate prediction {prediction.id} was canceled")
        if not prediction.output:
            raise PredictionFailed("No output received from Replicate")
        return prediction.output

    async def probe(self, http: httpx.AsyncClient) -> ProbeResult:
        """Cheap authenticated request used to detect blocking before a job."""
        try:
            resp = await http.get(
                f"{REPLICATE_API}/account",
                headers={"Authorization": f"Bearer {self.api_token}", "User-Agent": self.user_agent},
                timeout=10.0,
            )
        except httpx.HTTPError as exc:
            return ProbeResult("error", str(exc))
        body = resp.text[:300].lower()
        if resp.status_code == 403 or "cloudflare" in body or "captcha" in body:
            return ProbeResult("blocked", f"HTTP {resp.status_code}")
        if resp.status_code == 401:
            return ProbeResult("unauthorized", "token rejected")
        if not resp.is_success:
            return ProbeResult("error", f"HTTP {resp.status_code}")
        return ProbeResult("ok")
