"""Prompt construction and the 1000 character budget."""

import pytest

from adgen.services.errors import PromptTooLong
from adgen.services.layouts import Aspect
from adgen.services.prompts import BACKGROUND_ASPECTS, MAX_PROMPT_LENGTH, PromptBuilder


def test_copy_prompt_mentions_brief_business_and_sizes(campaign, business):
    prompt = PromptBuilder(campaign, business).copy_prompt()

    assert campaign.brief in prompt
    assert "Corner Coffee (Coffee shop)" in prompt
    assert "300x250, 728x90, 160x600" in prompt
    assert "No inspiration images provided" in prompt


def test_campaign_brand_values_override_business(campaign, business):
    campaign.brand_colors = ["#123456"]

    prompt = PromptBuilder(campaign, business).background_prompt(BACKGROUND_ASPECTS[0])

    assert "#123456" in prompt
    assert "#6f4e37" not in prompt


def test_brand_fallbacks_when_nothing_is_set(campaign, business):
    business.brand_colors = []
    business.tone_words = []
    builder = PromptBuilder(campaign, business)

    assert builder.brand_colors() == "professional colors"
    assert builder.brand_tone() == "professional, modern"


def test_three_background_prompts_with_provider_sizes(campaign, business):
    prompts = PromptBuilder(campaign, business).background_prompts()

    assert [(config.aspect, config.size) for config, _ in prompts] == [
        (Aspect.LEADERBOARD, "1792x1024"),
        (Aspect.SKYSCRAPER, "1024x1792"),
        (Aspect.SQUARE, "1024x1024"),
    ]
    for config, prompt in prompts:
        assert "ABSOLUTELY NO TEXT" in prompt
        assert config.composition in prompt
        assert len(prompt) <= MAX_PROMPT_LENGTH


def test_inspiration_images_are_listed(campaign, business):
    campaign.inspiration_image_count = 2

    context = PromptBuilder(campaign, business).inspiration_context()

    assert "Inspiration Image 1" in context
    assert "Inspiration Image 2" in context


def test_overlong_copy_prompt_names_fields_to_shorten(campaign, business):
    campaign.brief = "x" * 900

    with pytest.raises(PromptTooLong) as excinfo:
        PromptBuilder(campaign, business).copy_prompt()

    error = excinfo.value
    assert error.limit == MAX_PROMPT_LENGTH
    assert error.length > MAX_PROMPT_LENGTH
    assert error.suggestions == ["Consider shortening the campaign brief (currently 900 characters)"]
    assert "To fix this, please:" in str(error)


def test_overlong_prompt_without_obvious_culprit_gets_generic_advice(campaign, business):
    campaign.ad_sizes = ["300x250"] * 120

    with pytest.raises(PromptTooLong) as excinfo:
        PromptBuilder(campaign, business).copy_prompt()

    assert excinfo.value.suggestions == []
    assert "shorten the campaign content" in str(excinfo.value)
