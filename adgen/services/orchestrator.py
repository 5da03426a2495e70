"""
End-to-end ad generation.

A run walks `IDLE → GENERATING_COPY → GENERATING_BACKGROUNDS → FANNING_OUT →
READY`, or ends in `FAILED` from any stage. Every failure is broadcast as an
error event before the exception propagates to the job runner. Nothing is
retried and nothing is rolled back: background variants or ads written before
a failure stay until a later run or an explicit delete replaces them.

At most one run (full generation or background regeneration) is in flight per
campaign. The broadcast protocol carries no run id, so two overlapping runs
would interleave their events on the same topic.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Sequence, Set
from uuid import uuid4

from adgen.models.campaigns import (
    AdStatus,
    BackgroundVariant,
    CampaignStatus,
    GeneratedAd,
    utcnow,
)
from adgen.services import progress
from adgen.services.broadcaster import (
    AdSummary,
    BackgroundCompleteEvent,
    BackgroundVariantSummary,
    CompletionEvent,
    ProgressBroadcaster,
    VariantUpdateEvent,
)
from adgen.services.errors import GenerationInProgress
from adgen.services.fetcher import BackgroundFetcher
from adgen.services.generation_client import (
    CopyVariant,
    ImageGenerator,
    TextGenerator,
    decode_copy_response,
)
from adgen.services.layouts import aspect_for_size, default_positions
from adgen.services.prompts import SYSTEM_PROMPT, AspectConfig, PromptBuilder
from adgen.services.repository import CampaignRepository, ImageStore


logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    GENERATING_COPY = "generating_copy"
    GENERATING_BACKGROUNDS = "generating_backgrounds"
    FANNING_OUT = "fanning_out"
    READY = "ready"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RunState.READY, RunState.FAILED})


class RunClaim:
    """Holds a campaign's single-flight slot until closed or exited."""

    def __init__(self, registry: "RunRegistry", campaign_id: str) -> None:
        self.campaign_id = campaign_id
        self._registry = registry
        self._released = False

    def release(self) -> None:
        if not self._released:
            self._registry._release(self.campaign_id)
            self._released = True

    def __enter__(self) -> "RunClaim":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class RunRegistry:
    """Tracks which campaigns have a run in flight."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    def acquire(self, campaign_id: str) -> RunClaim:
        with self._lock:
            if campaign_id in self._active:
                raise GenerationInProgress(campaign_id)
            self._active.add(campaign_id)
        return RunClaim(self, campaign_id)

    def _release(self, campaign_id: str) -> None:
        with self._lock:
            self._active.discard(campaign_id)

    def is_running(self, campaign_id: str) -> bool:
        with self._lock:
            return campaign_id in self._active


@dataclass(slots=True)
class GenerationRun:
    """State of one orchestrator run. Terminal states are final."""

    campaign_id: str
    state: RunState = RunState.IDLE
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    tracker: progress.ProgressTracker = field(default_factory=progress.ProgressTracker)

    def transition(self, state: RunState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Run for campaign {self.campaign_id} already ended in {self.state.value}")
        logger.info("Campaign %s: %s -> %s", self.campaign_id, self.state.value, state.value)
        self.state = state

    def fail(self, exc: BaseException) -> None:
        self.error = str(exc)
        if self.state not in TERMINAL_STATES:
            logger.error("Campaign %s failed during %s: %s", self.campaign_id, self.state.value, exc)
            self.state = RunState.FAILED


def summarize_ad(ad: GeneratedAd, images: ImageStore) -> AdSummary:
    return AdSummary(
        id=ad.id,
        variant_id=ad.variant_id,
        headline=ad.headline,
        subheadline=ad.subheadline,
        call_to_action=ad.call_to_action,
        ad_size=ad.ad_size,
        background_image_url=images.url_for(ad.background_image),
        image_url=images.url_for(ad.final_image),
        status=ad.status.value,
        is_locked=ad.is_locked,
    )


def summarize_variant(variant: BackgroundVariant, images: ImageStore) -> BackgroundVariantSummary:
    return BackgroundVariantSummary(
        aspect=variant.aspect,
        size=variant.size,
        image_url=images.url_for(variant.image),
    )


def choose_background(variants: Sequence[BackgroundVariant], ad_size: str) -> BackgroundVariant | None:
    """The variant matching the size's aspect, else the first one that exists."""
    preferred = aspect_for_size(ad_size).value
    for variant in variants:
        if variant.aspect == preferred and variant.image is not None:
            return variant
    for variant in variants:
        if variant.image is not None:
            return variant
    return None


class GenerationOrchestrator:
    """Drives generation runs for campaigns and reports progress as it goes."""

    def __init__(
        self,
        repository: CampaignRepository,
        fetcher: BackgroundFetcher,
        text_generator: TextGenerator,
        image_generator: ImageGenerator,
        broadcaster: ProgressBroadcaster,
        runs: RunRegistry | None = None,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._text = text_generator
        self._images = image_generator
        self._broadcaster = broadcaster
        self.runs = runs or RunRegistry()

    @property
    def _store(self) -> ImageStore:
        return self._repository.images

    def _progress(self, run: GenerationRun, message: str, stage: progress.Stage, done: int = 0, total: int = 1) -> None:
        self._broadcaster.progress(run.campaign_id, message, run.tracker.at(stage, done, total))

    def _fail(self, run: GenerationRun, exc: BaseException) -> None:
        run.fail(exc)
        self._broadcaster.error(run.campaign_id, str(exc))

    # Full generation

    def generate(self, campaign_id: str, claim: RunClaim | None = None) -> List[GeneratedAd]:
        """
        Run the whole pipeline for a campaign and return the ads it created.

        Pass a `claim` already taken from `self.runs` when the single-flight
        check has to happen before the run starts (e.g. at enqueue time).
        """
        claim = claim or self.runs.acquire(campaign_id)
        run = GenerationRun(campaign_id)
        with claim:
            try:
                return self._generate(run)
            except Exception as exc:
                self._fail(run, exc)
                raise

    def _generate(self, run: GenerationRun) -> List[GeneratedAd]:
        campaign = self._repository.get_campaign(run.campaign_id)
        business = self._repository.get_business(campaign.business_id)

        run.transition(RunState.GENERATING_COPY)
        self._progress(run, "Starting ad generation...", progress.COPY)
        builder = PromptBuilder(campaign, business)
        # Every prompt is validated before the first network call.
        copy_prompt = builder.copy_prompt()
        background_prompts = builder.background_prompts()

        variant = decode_copy_response(self._text.generate_text(SYSTEM_PROMPT, copy_prompt))[0]
        logger.info(
            "Campaign %s: using copy variant %s for sizes %s",
            campaign.id,
            variant.variant_id,
            ", ".join(campaign.ad_sizes),
        )

        run.transition(RunState.GENERATING_BACKGROUNDS)
        self._progress(run, "Generating background images...", progress.BACKGROUNDS)
        backgrounds = self._generate_backgrounds(run, background_prompts, progress.BACKGROUNDS)

        run.transition(RunState.FANNING_OUT)
        self._broadcaster.publish(
            campaign.id,
            BackgroundCompleteEvent(
                background_variants=[summarize_variant(v, self._store) for v in backgrounds]
            ),
        )
        ads = self._fan_out(run, variant, campaign.ad_sizes)

        if campaign.status == CampaignStatus.DRAFT:
            self._repository.set_campaign_status(campaign.id, CampaignStatus.READY)
        run.transition(RunState.READY)
        self._progress(run, "Ad generation completed!", progress.FINISH, 1, 1)
        summaries = [summarize_ad(ad, self._store) for ad in self._repository.list_generated_ads(campaign.id)]
        self._broadcaster.publish(campaign.id, CompletionEvent(variants=summaries))
        return ads

    def _generate_backgrounds(
        self,
        run: GenerationRun,
        prompts: Sequence[tuple[AspectConfig, str]],
        stage: progress.Stage,
    ) -> List[BackgroundVariant]:
        variants: List[BackgroundVariant] = []
        for index, (config, prompt) in enumerate(prompts):
            aspect = config.aspect.value
            logger.info("Campaign %s: generating %s background (%s)", run.campaign_id, aspect, config.size)
            url = self._images.generate_image(prompt, config.size)
            stamp = utcnow().strftime("%Y%m%d%H%M%S%f")
            fetched = self._fetcher.fetch(url, filename=f"{aspect}_background_{stamp}.png")
            stored = self._store.put(fetched.data, fetched.filename, fetched.content_type)
            variants.append(
                self._repository.upsert_background_variant(run.campaign_id, aspect, config.size, stored)
            )
            self._progress(run, f"Generated {aspect} background", stage, index + 1, len(prompts))
        return variants

    def _fan_out(self, run: GenerationRun, variant: CopyVariant, ad_sizes: Sequence[str]) -> List[GeneratedAd]:
        backgrounds = self._repository.list_background_variants(run.campaign_id)
        existing: Dict[str, GeneratedAd] = {
            ad.ad_size: ad for ad in self._repository.list_generated_ads(run.campaign_id)
        }
        ads: List[GeneratedAd] = []
        sizes = list(dict.fromkeys(ad_sizes))
        total = len(sizes)
        for index, ad_size in enumerate(sizes):
            background = choose_background(backgrounds, ad_size)
            ad = GeneratedAd(
                id=str(uuid4()),
                campaign_id=run.campaign_id,
                variant_id=variant.variant_id,
                ad_size=ad_size,
                headline=variant.headline,
                subheadline=variant.subheadline,
                call_to_action=variant.call_to_action,
                reasoning=variant.reasoning,
                element_positions=default_positions(ad_size),
                background_image=self._store.copy(background.image) if background else None,
                status=AdStatus.COMPLETED,
                is_locked=False,
            )
            self._replace_previous(existing.pop(ad_size, None))
            self._repository.add_generated_ad(ad)
            ads.append(ad)
            logger.info(
                "Campaign %s: created %s ad on %s background",
                run.campaign_id,
                ad_size,
                background.aspect if background else "no",
            )
            self._progress(run, f"Prepared {ad_size} ad", progress.FAN_OUT, index + 1, total)
            self._broadcaster.publish(run.campaign_id, VariantUpdateEvent(variant=summarize_ad(ad, self._store)))
        # Sizes dropped from the campaign since the last run.
        for stale in existing.values():
            self._replace_previous(stale)
        return ads

    def _replace_previous(self, ad: GeneratedAd | None) -> None:
        """Drop an ad left by an earlier run."""
        if ad is None:
            return
        logger.info("Replacing %s ad %s from a previous run", ad.ad_size, ad.id)
        self._repository.remove_generated_ad(ad.id)

    # Background-only regeneration

    def regenerate_background(self, campaign_id: str, claim: RunClaim | None = None) -> List[BackgroundVariant]:
        """Regenerate the three backgrounds and re-attach them to existing ads."""
        claim = claim or self.runs.acquire(campaign_id)
        run = GenerationRun(campaign_id)
        with claim:
            try:
                return self._regenerate_background(run)
            except Exception as exc:
                self._fail(run, exc)
                raise

    def _regenerate_background(self, run: GenerationRun) -> List[BackgroundVariant]:
        campaign = self._repository.get_campaign(run.campaign_id)
        business = self._repository.get_business(campaign.business_id)

        run.transition(RunState.GENERATING_BACKGROUNDS)
        self._progress(run, "Regenerating background image...", progress.REGENERATE)
        prompts = PromptBuilder(campaign, business).background_prompts()
        backgrounds = self._generate_backgrounds(run, prompts, progress.REGENERATE)

        ads = self._repository.list_generated_ads(campaign.id)
        for index, ad in enumerate(ads):
            background = choose_background(backgrounds, ad.ad_size)
            if background is not None:
                previous = ad.background_image
                ad.background_image = self._store.copy(background.image)
                self._repository.touch(ad)
                self._store.purge(previous)
                logger.info("Re-attached %s background to %s ad %s", background.aspect, ad.ad_size, ad.id)
            self._progress(run, f"Updated {ad.ad_size} ad background", progress.REATTACH, index + 1, len(ads))

        run.transition(RunState.READY)
        self._broadcaster.publish(
            campaign.id,
            BackgroundCompleteEvent(
                background_variants=[summarize_variant(v, self._store) for v in backgrounds]
            ),
        )
        return backgrounds
