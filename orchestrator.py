"""Fan one "generate brand images" request out into per-slot generations.

Slots are 1-based.  Slot N always uses prompt N and, when it succeeds, its
stored filename carries N; results are reported in slot order no matter
which generation finishes first.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from errors import AllVariationsFailed, GenerationFailed, InvalidInput
from generator import VariationGenerator
from imaging import render_placeholder
from prompt_parser import canonical_text, parse_prompts
from storage import ImageStorage

log = logging.getLogger(__name__)

DEFAULT_TARGET_COUNT = 4
MAX_TARGET_COUNT = 8


def normalize_image_urls(value: Any) -> List[str]:
    """Accept a single URL or a list of URLs; drop blanks."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [u.strip() for u in value if isinstance(u, str) and u.strip()]


@dataclass(frozen=True)
class GenerationJob:
    product_image_urls: Tuple[str, ...]
    brand_prompt_text: Any
    brand_id: str
    brand_name: str
    palette: Tuple[str, ...] = ()
    target_count: int = DEFAULT_TARGET_COUNT

    @classmethod
    def create(
        cls,
        product_image_urls: Any,
        brand_prompt_text: Any,
        brand_id: Optional[str],
        brand_name: Optional[str] = None,
        palette: Sequence[str] = (),
        target_count: Any = DEFAULT_TARGET_COUNT,
    ) -> "GenerationJob":
        urls = normalize_image_urls(product_image_urls)
        if not urls or not brand_prompt_text or not brand_id:
            raise InvalidInput("Missing required parameters: productImageUrls, brandPrompt, brandId")
        try:
            count = int(target_count if target_count is not None else DEFAULT_TARGET_COUNT)
        except (TypeError, ValueError):
            raise InvalidInput("count must be an integer")
        if not 1 <= count <= MAX_TARGET_COUNT:
            raise InvalidInput(f"count must be between 1 and {MAX_TARGET_COUNT}")
        return cls(
            product_image_urls=tuple(urls),
            brand_prompt_text=brand_prompt_text,
            brand_id=brand_id,
            brand_name=brand_name or brand_id,
            palette=tuple(palette),
            target_count=count,
        )


@dataclass
class VariationResult:
    index: int
    prompt: str
    image_url: Optional[str] = None
    reason: Optional[str] = None
    blocked: bool = False
    placeholder: bool = False

    @property
    def ok(self) -> bool:
        return self.image_url is not None


@dataclass
class JobOutcome:
    results: List[VariationResult]
    method: str
    duration: float = 0.0
    backfill_rounds: int = 0
    notes: List[str] = field(default_factory=list)

    @property
    def images(self) -> List[str]:
        return [r.image_url for r in self.results if r.ok]  # type: ignore[misc]

    @property
    def failures(self) -> Dict[int, str]:
        return {r.index: r.reason or "unknown error" for r in self.results if not r.ok}


def plan_prompts(brand_prompt_text: Any, target_count: int) -> List[str]:
    """One prompt per slot: the parsed prompts, or the whole text in every slot."""
    parsed = parse_prompts(brand_prompt_text)
    if len(parsed) >= target_count:
        log.info("Using %d parsed prompts", target_count)
        return parsed[:target_count]
    log.info("Using the original prompt text for all %d variations", target_count)
    return [canonical_text(brand_prompt_text)] * target_count


class VariationOrchestrator:
    def __init__(
        self,
        generator: VariationGenerator,
        storage: ImageStorage,
        *,
        backfill_rounds: int = 1,
        launch_stagger: float = 0.0,
        placeholder_on_failure: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.generator = generator
        self.storage = storage
        self.backfill_rounds = backfill_rounds
        self.launch_stagger = launch_stagger
        self.placeholder_on_failure = placeholder_on_failure
        self.clock = clock

    # ------------------------------------------------------------------
    # Slot execution
    # ------------------------------------------------------------------

    async def _run_slot(
        self, job: GenerationJob, inputs: Sequence[str], result: VariationResult, delay: float,
    ) -> VariationResult:
        if delay > 0:
            await asyncio.sleep(delay)
        url = await self.generator.generate(inputs, result.prompt, job.brand_name, result.index)
        return VariationResult(index=result.index, prompt=result.prompt, image_url=url)

    async def _settle(
        self, job: GenerationJob, inputs: Sequence[str], pending: List[VariationResult],
    ) -> List[VariationResult]:
        """Run every pending slot; a failing slot never affects the others."""
        tasks = [
            self._run_slot(job, inputs, slot, pos * self.launch_stagger)
            for pos, slot in enumerate(pending)
        ]
        settled = await asyncio.gather(*tasks, return_exceptions=True)

        out: List[VariationResult] = []
        for slot, outcome in zip(pending, settled):
            if isinstance(outcome, VariationResult):
                log.info("%s variation %d succeeded", job.brand_name, slot.index)
                out.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome  # CancelledError and friends propagate
            blocked = isinstance(outcome, GenerationFailed) and outcome.blocked
            log.error(
                "%s variation %d failed%s: %s",
                job.brand_name, slot.index, " (blocked)" if blocked else "", outcome,
            )
            out.append(VariationResult(
                index=slot.index, prompt=slot.prompt, reason=str(outcome), blocked=blocked,
            ))
        return out

    # ------------------------------------------------------------------
    # Placeholders
    # ------------------------------------------------------------------

    async def _placeholder(self, job: GenerationJob, slot: VariationResult) -> VariationResult:
        png = await asyncio.to_thread(
            render_placeholder, job.brand_name, job.palette, slot.index, slot.prompt[:220],
        )
        url = await self.storage.save_async(
            self.storage.placeholder_filename(job.brand_name, slot.index), png,
        )
        return VariationResult(index=slot.index, prompt=slot.prompt, image_url=url, placeholder=True)

    async def placeholders(self, job: GenerationJob, prompts: Sequence[str]) -> List[VariationResult]:
        slots = [VariationResult(index=i, prompt=p) for i, p in enumerate(prompts, start=1)]
        return list(await asyncio.gather(*(self._placeholder(job, s) for s in slots)))

    # ------------------------------------------------------------------
    # Job
    # ------------------------------------------------------------------

    async def run(self, job: GenerationJob, *, degraded: bool = False) -> JobOutcome:
        """Produce up to ``job.target_count`` images.

        Raises InvalidInput or AllVariationsFailed; any partial success is
        returned as a shorter image list with per-slot reasons attached.
        """
        started = self.clock()
        prompts = plan_prompts(job.brand_prompt_text, job.target_count)
        log.info(
            "Job start: brand=%s slots=%d inputs=%d degraded=%s",
            job.brand_name, job.target_count, len(job.product_image_urls), degraded,
        )

        if degraded:
            log.warning("Provider unavailable; rendering %d placeholders for %s", len(prompts), job.brand_name)
            results = await self.placeholders(job, prompts)
            return JobOutcome(results, method="placeholder", duration=self.clock() - started,
                              notes=["provider unavailable"])

        inputs = await asyncio.to_thread(self.storage.provider_inputs, job.product_image_urls)
        if not inputs:
            raise InvalidInput("None of the product images could be loaded")

        slots = [VariationResult(index=i, prompt=p) for i, p in enumerate(prompts, start=1)]
        results = await self._settle(job, inputs, slots)

        rounds = 0
        while rounds < self.backfill_rounds and any(r.ok for r in results):
            failed = [r for r in results if not r.ok and not r.blocked]
            if not failed:
                break
            rounds += 1
            log.info(
                "Backfill round %d: retrying slots %s for %s",
                rounds, [r.index for r in failed], job.brand_name,
            )
            retried = {r.index: r for r in await self._settle(job, inputs, failed)}
            results = [retried.get(r.index, r) if not r.ok else r for r in results]

        outcome = JobOutcome(results, method=self.generator.provider.name, duration=self.clock() - started,
                             backfill_rounds=rounds)

        if not outcome.images:
            if self.placeholder_on_failure:
                log.warning("All %d variations failed; falling back to placeholders", len(results))
                fallback = await self.placeholders(job, prompts)
                return JobOutcome(fallback, method="placeholder", duration=self.clock() - started,
                                  backfill_rounds=rounds, notes=list(outcome.failures.values()))
            log.error("Job failed: all %d %s variations failed", len(results), job.brand_name)
            raise AllVariationsFailed(outcome.failures)

        log.info(
            "Job complete: %d/%d %s variations in %.1fs",
            len(outcome.images), job.target_count, job.brand_name, outcome.duration,
        )
        return outcome
