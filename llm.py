"""Product analysis and brand prompt writing via OpenAI or Anthropic."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from errors import UpstreamError

log = logging.getLogger(__name__)

ANALYSIS_PROMPT = (
    "Analyze this product image and describe it in detail, covering:\n\n"
    "1. Product Type: what kind of product this is.\n"
    "2. Visual Style: current presentation, colours, materials, textures.\n"
    "3. Target Audience: who typically buys it.\n"
    "4. Current Brand Feeling: the brand vibe it conveys today.\n"
    "5. Key Features: the standout visual elements.\n\n"
    "The analysis will be used to restyle the product for different brand aesthetics."
)

CLOTHING_KEYWORDS = (
    "clothing", "shirt", "dress", "skirt", "pants", "pajama", "top",
    "bottom", "fashion", "wear", "garment",
)

MOCK_ANALYSIS = (
    "Product Analysis: A black clothing item, most likely a top, finished with contrasting "
    "white trim. The piece has a classic minimalist look with clean lines and a structured "
    "silhouette. The palette is predominantly black with white accents, which reads as timeless "
    "and versatile. It suits a fashion-conscious audience looking for refined basics, and the "
    "current brand feeling is understated elegance. Key visual elements are the contrast trim "
    "and the tailored shape."
)


def is_clothing(analysis: str) -> bool:
    text = (analysis or "").lower()
    return any(word in text for word in CLOTHING_KEYWORDS)


def style_keywords(brand: Dict) -> List[str]:
    return list(brand.get("styleKeywords") or ["modern", "stylish", "premium"])


def build_brand_prompt_request(analysis: str, brand: Dict) -> str:
    style = ", ".join(style_keywords(brand))
    brand_name = brand.get("name", "the brand")
    clothing = is_clothing(analysis)

    if clothing:
        focus = (
            "- Every prompt MUST show a professional human model wearing the product.\n"
            "- No flat lays and no product-only shots.\n"
            "- Keep the exact same outfit in every prompt and vary only the pose.\n"
        )
    else:
        focus = (
            "- Show the product in a premium marketing presentation.\n"
            "- Include a relevant lifestyle or usage context.\n"
        )

    return (
        "You are an expert marketing image prompt writer for product photoshoots.\n\n"
        f"Product analysis:\n{analysis}\n\n"
        f"Brand: {brand_name}\n"
        f"Style aesthetic: {style}\n"
        f"Brand description: {brand.get('baseDescription', '')}\n\n"
        "Requirements:\n"
        f"{focus}"
        f"- Setting, lighting and mood should embody the {style} aesthetic.\n"
        "- Keep the product's exact colours, materials and details from the input images; "
        "do not recolour it to match the brand palette.\n"
        "- Each prompt combines all input images into one unified photograph.\n"
        "- Vary the composition: (1) front, (2) profile or side, (3) dynamic or movement, "
        "(4) close-up detail.\n\n"
        "Output EXACTLY four prompts in this format and nothing else:\n\n"
        "**PROMPT 1:**\n"
        "Combine these product images into one cohesive scene: [front composition]\n\n"
        "**PROMPT 2:**\n"
        "Combine these product images into one cohesive scene: [profile or side composition]\n\n"
        "**PROMPT 3:**\n"
        "Combine these product images into one cohesive scene: [dynamic composition]\n\n"
        "**PROMPT 4:**\n"
        "Combine these product images into one cohesive scene: [close-up detail composition]\n"
    )


def mock_brand_prompt(brand: Dict) -> str:
    style = ", ".join(style_keywords(brand))
    name = brand.get("name", "Brand")
    shots = [
        f"front pose in a {style} studio setting, clean background, premium lighting, {name} "
        "aesthetic, high-fashion photography, model looking directly at camera",
        f"profile side pose in a {style} environment, elegant lighting, {name} brand styling, "
        "model in a three-quarter turn, premium fashion photography",
        f"model in motion, dynamic pose, {style} setting, {name} brand energy, lifestyle "
        "photography capturing natural movement",
        f"close-up detail shot of the product, {style} styling, {name} brand quality, visible "
        "material texture, artistic composition",
    ]
    return "\n\n".join(
        f"**PROMPT {i}:**\nCombine these product images into one cohesive scene: "
        f"Professional model wearing the product, {shot}."
        for i, shot in enumerate(shots, start=1)
    )


class BrandCopywriter:
    """Vision analysis and brand prompt generation.

    Without an API key every call returns canned text so the rest of the
    flow can run offline.
    """

    def __init__(self, provider: str, model: str, api_key: str, max_tokens: int = 1024) -> None:
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.max_tokens = max_tokens

    @property
    def mock(self) -> bool:
        return not self.api_key

    async def analyze_product(self, image_base64: str, mime_type: str = "image/jpeg") -> str:
        if not image_base64:
            raise UpstreamError("Image data is empty or invalid")
        if self.mock:
            log.warning("No %s API key configured; returning mock product analysis", self.provider)
            return MOCK_ANALYSIS
        text = await self._call_llm(ANALYSIS_PROMPT, image_base64=image_base64, mime_type=mime_type)
        log.info("Product analysis completed (%d chars)", len(text))
        return text

    async def generate_brand_prompt(self, analysis: str, brand: Dict) -> str:
        if self.mock:
            log.warning("No %s API key configured; returning mock brand prompt", self.provider)
            return mock_brand_prompt(brand)
        log.info(
            "Writing %s prompts (clothing=%s, style=%s)",
            brand.get("name"), is_clothing(analysis), ", ".join(style_keywords(brand)),
        )
        return await self._call_llm(build_brand_prompt_request(analysis, brand))

    async def _call_llm(
        self,
        prompt: str,
        image_base64: Optional[str] = None,
        mime_type: str = "image/jpeg",
    ) -> str:
        t0 = time.time()
        if self.provider == "anthropic":
            text = await self._call_anthropic(prompt, image_base64, mime_type)
        else:
            text = await self._call_openai(prompt, image_base64, mime_type)
        if not text or not text.strip():
            raise UpstreamError(f"{self.provider} returned an empty response")
        log.debug("%s call finished in %.1fs", self.provider, time.time() - t0)
        return text.strip()

    async def _call_anthropic(self, prompt: str, image_base64: Optional[str], mime_type: str) -> str:
        import anthropic

        content: List[Dict] = []
        if image_base64:
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": mime_type, "data": image_base64},
            })
        content.append({"type": "text", "text": prompt})

        client = anthropic.AsyncAnthropic(api_key=self.api_key)
        try:
            msg = await client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.AuthenticationError:
            raise UpstreamError("Anthropic API key is invalid or expired.")
        except anthropic.RateLimitError as exc:
            raise UpstreamError(f"Anthropic rate limit: {exc}")
        except anthropic.APIError as exc:
            raise UpstreamError(f"Anthropic request failed: {exc}")
        log.info(
            "Anthropic call: model=%s  %d in / %d out tokens",
            self.model, msg.usage.input_tokens, msg.usage.output_tokens,
        )
        return "".join(block.text for block in msg.content if getattr(block, "type", "") == "text")

    async def _call_openai(self, prompt: str, image_base64: Optional[str], mime_type: str) -> str:
        from openai import APIError, AsyncOpenAI, AuthenticationError, RateLimitError

        content: List[Dict] = [{"type": "text", "text": prompt}]
        if image_base64:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{mime_type};base64,{image_base64}"},
            })

        client = AsyncOpenAI(api_key=self.api_key)
        try:
            resp = await client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except AuthenticationError:
            raise UpstreamError("OpenAI API key is invalid or expired.")
        except RateLimitError as exc:
            msg = str(exc)
            if "insufficient_quota" in msg or "quota" in msg.lower():
                raise UpstreamError(
                    "OpenAI account is out of credits. "
                    "Please add billing at platform.openai.com."
                )
            raise UpstreamError(f"OpenAI rate limit: {exc}")
        except APIError as exc:
            raise UpstreamError(f"OpenAI request failed: {exc}")
        if resp.usage is not None:
            log.info(
                "OpenAI call: model=%s  %d in / %d out tokens",
                self.model, resp.usage.prompt_tokens, resp.usage.completion_tokens,
            )
        return resp.choices[0].message.content or ""
