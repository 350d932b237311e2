"""Produce one generated image for one prompt, with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Tuple

from config import Settings
from errors import GenerationFailed
from materializer import ImageMaterializer

log = logging.getLogger(__name__)

BLOCK_SIGNATURES: Tuple[str, ...] = (
    "forbidden",
    "access denied",
    "cloudflare",
    "captcha",
    "bot detected",
    "request blocked",
)

# "HTTP 403", "status: 403", "403 Forbidden"; not ids or hashes that contain the digits
_STATUS_403_RE = re.compile(r"\b(?:status|http|code)[ :=]*403\b|\b403 forbidden\b")


class ImageProvider(Protocol):
    """Anything that can turn (prompt, input images) into raw provider output."""

    name: str

    async def generate(self, prompt: str, input_images: Sequence[str]) -> Any: ...


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 2.0
    backoff: float = 1.5
    max_delay: float = 10.0
    attempt_timeout: Optional[float] = 120.0
    block_signatures: Tuple[str, ...] = BLOCK_SIGNATURES

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            attempts=settings.generation_attempts,
            base_delay=settings.retry_base_delay,
            backoff=settings.retry_backoff,
            max_delay=settings.retry_max_delay,
            attempt_timeout=settings.attempt_timeout,
        )

    def delay_after(self, attempt: int) -> float:
        """Wait before attempt ``attempt + 1``; never below base_delay, never decreasing."""
        delay = self.base_delay * (self.backoff ** (attempt - 1))
        return max(self.base_delay, min(delay, max(self.max_delay, self.base_delay)))

    def is_blocked(self, exc: BaseException) -> bool:
        status = getattr(exc, "status", None)
        if status is None:
            status = getattr(getattr(exc, "response", None), "status_code", None)
        if status == 403:
            return True
        message = str(exc).lower()
        if _STATUS_403_RE.search(message):
            return True
        return any(sig in message for sig in self.block_signatures)


class VariationGenerator:
    def __init__(
        self,
        provider: ImageProvider,
        materializer: ImageMaterializer,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.provider = provider
        self.materializer = materializer
        self.policy = policy or RetryPolicy()

    async def _attempt(
        self, input_images: Sequence[str], prompt: str, brand_name: str, index: int, combined: bool,
    ) -> str:
        output = await self.provider.generate(prompt, input_images)
        if combined:
            return await self.materializer.materialize_combined(output, brand_name)
        return await self.materializer.materialize(output, brand_name, index)

    async def generate(
        self,
        input_images: Sequence[str],
        prompt: str,
        brand_name: str,
        index: int,
        *,
        combined: bool = False,
    ) -> str:
        """Return the stored image URL or raise GenerationFailed.

        ``combined`` stores the result under the brand's combined-image name
        instead of a numbered variation.
        """
        if not input_images:
            raise GenerationFailed(f"{brand_name} variation {index}: no input images", attempts=0)

        policy = self.policy
        last_error: Optional[BaseException] = None
        for attempt in range(1, policy.attempts + 1):
            t0 = time.time()
            log.info(
                "Generating %s variation %d (attempt %d/%d) via %s",
                brand_name, index, attempt, policy.attempts, self.provider.name,
            )
            try:
                url = await asyncio.wait_for(
                    self._attempt(input_images, prompt, brand_name, index, combined),
                    timeout=policy.attempt_timeout,
                )
                log.info(
                    "%s variation %d ready on attempt %d (%.1fs)",
                    brand_name, index, attempt, time.time() - t0,
                )
                return url
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"attempt timed out after {policy.attempt_timeout:.0f}s")
                log.warning("%s variation %d attempt %d timed out", brand_name, index, attempt)
            except Exception as exc:
                last_error = exc
                if policy.is_blocked(exc):
                    log.warning(
                        "BLOCKED: provider denied %s variation %d on attempt %d, not retrying: %s",
                        brand_name, index, attempt, exc,
                    )
                    raise GenerationFailed(
                        f"Provider blocked the request: {exc}", attempts=attempt, blocked=True,
                    ) from exc
                log.warning("%s variation %d attempt %d failed: %s", brand_name, index, attempt, exc)

            if attempt < policy.attempts:
                delay = policy.delay_after(attempt)
                log.info("Waiting %.1fs before retrying %s variation %d", delay, brand_name, index)
                await asyncio.sleep(delay)

        raise GenerationFailed(
            f"Failed after {policy.attempts} attempts: {last_error}", attempts=policy.attempts,
        ) from last_error
