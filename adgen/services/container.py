from __future__ import annotations

from dataclasses import dataclass

from adgen.config import Settings
from adgen.services.ads import AdEditor
from adgen.services.broadcaster import ProgressBroadcaster
from adgen.services.compositor import Compositor, FontCache
from adgen.services.fetcher import BackgroundFetcher
from adgen.services.generation_client import ImageGenerator, OpenAIGenerationClient, TextGenerator
from adgen.services.jobs import JobRunner
from adgen.services.orchestrator import GenerationOrchestrator
from adgen.services.repository import CampaignRepository, ImageStore


@dataclass(slots=True)
class Services:
    """Every long-lived collaborator the HTTP layer talks to."""

    settings: Settings
    repository: CampaignRepository
    broadcaster: ProgressBroadcaster
    orchestrator: GenerationOrchestrator
    editor: AdEditor
    jobs: JobRunner

    @property
    def images(self) -> ImageStore:
        return self.repository.images


def build_services(
    settings: Settings,
    text_generator: TextGenerator | None = None,
    image_generator: ImageGenerator | None = None,
    fetcher: BackgroundFetcher | None = None,
) -> Services:
    """
    Wire the pipeline for one process.

    Generators default to one shared OpenAI client; tests pass fakes.
    """
    repository = CampaignRepository(ImageStore(settings.image_dir, settings.media_url))
    broadcaster = ProgressBroadcaster()

    if text_generator is None or image_generator is None:
        client = OpenAIGenerationClient(
            api_key=settings.openai_api_key,
            text_model=settings.text_model,
            image_model=settings.image_model,
        )
        text_generator = text_generator or client
        image_generator = image_generator or client

    orchestrator = GenerationOrchestrator(
        repository=repository,
        fetcher=fetcher or BackgroundFetcher(timeout=settings.fetch_timeout),
        text_generator=text_generator,
        image_generator=image_generator,
        broadcaster=broadcaster,
    )
    compositor = Compositor(repository, FontCache(settings.font_path))
    return Services(
        settings=settings,
        repository=repository,
        broadcaster=broadcaster,
        orchestrator=orchestrator,
        editor=AdEditor(repository, compositor),
        jobs=JobRunner(orchestrator, max_workers=settings.job_workers),
    )
