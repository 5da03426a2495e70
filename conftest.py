"""Shared fixtures: an on-disk image store, a seeded campaign and fake generators."""

import io
import json
import logging
from pathlib import Path

import pytest
from PIL import Image

from adgen.config import Settings
from adgen.models.campaigns import Business, Campaign
from adgen.services.broadcaster import ProgressBroadcaster
from adgen.services.fetcher import FetchedImage
from adgen.services.orchestrator import GenerationOrchestrator
from adgen.services.repository import CampaignRepository, ImageStore

logging.basicConfig(level=logging.INFO)

COPY_RESPONSE = {
    "variants": [
        {
            "variant_id": "A",
            "headline": "Fresh Coffee Daily",
            "subheadline": "Roasted on site every morning",
            "call_to_action": "Visit Today",
            "image_prompt": "warm cafe tones",
            "reasoning": "Morning commuters respond to freshness.",
        }
    ]
}

# Ad sizes in the order the seeded campaign requests them.
CAMPAIGN_SIZES = ["300x250", "728x90", "160x600"]


def make_png(width: int = 64, height: int = 64, color=(30, 120, 200, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeTextGenerator:
    def __init__(self, response: str | None = None, error: Exception | None = None) -> None:
        self.response = json.dumps(COPY_RESPONSE) if response is None else response
        self.error = error
        self.calls = []

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.response


class FakeImageGenerator:
    def __init__(self, fail_on_call: int | None = None, error: Exception | None = None) -> None:
        self.fail_on_call = fail_on_call
        self.error = error
        self.calls = []

    def generate_image(self, prompt: str, size: str) -> str:
        self.calls.append((prompt, size))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise self.error
        return f"https://images.example.com/generated/{len(self.calls)}/{size}.png"


class FakeFetcher:
    """Returns a solid PNG per URL; the color changes on every fetch."""

    def __init__(self) -> None:
        self.calls = []

    def fetch(self, url: str, filename: str | None = None) -> FetchedImage:
        self.calls.append((url, filename))
        shade = (40 * len(self.calls)) % 255
        return FetchedImage(
            data=make_png(128, 96, (shade, 80, 160, 255)),
            filename=filename or "image.png",
        )


@pytest.fixture
def image_store(tmp_path: Path) -> ImageStore:
    return ImageStore(tmp_path / "images", media_url="/media")


@pytest.fixture
def repository(image_store: ImageStore) -> CampaignRepository:
    return CampaignRepository(image_store)


@pytest.fixture
def business(repository: CampaignRepository, image_store: ImageStore) -> Business:
    logo = image_store.put(make_png(32, 32, (255, 255, 255, 255)), "logo.png")
    return repository.add_business(
        Business(
            id="biz-1",
            name="Corner Coffee",
            type_of_business="Coffee shop",
            description="Neighbourhood espresso bar.",
            brand_colors=["#6f4e37", "#f5f5dc"],
            brand_fonts="Montserrat",
            tone_words=["warm", "friendly"],
            logo=logo,
        )
    )


@pytest.fixture
def campaign(repository: CampaignRepository, business: Business) -> Campaign:
    return repository.add_campaign(
        Campaign(
            id="camp-1",
            business_id=business.id,
            name="Spring launch",
            brief="Announce our new spring menu to nearby office workers.",
            goals="Drive weekday morning foot traffic",
            audience="Office workers within a mile",
            offer="Free pastry with any large coffee",
            cta="Visit Today",
            ad_sizes=list(CAMPAIGN_SIZES),
        )
    )


@pytest.fixture
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster()


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def orchestrator(repository, fetcher, text_generator, image_generator, broadcaster) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        repository=repository,
        fetcher=fetcher,
        text_generator=text_generator,
        image_generator=image_generator,
        broadcaster=broadcaster,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(openai_api_key=None, storage_dir=tmp_path / "storage", job_workers=1)
