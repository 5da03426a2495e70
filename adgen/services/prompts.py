"""
Prompt construction for the copy and background generation calls.

Every prompt is checked against the provider's 1000 character budget before
it leaves this module. When a prompt is too long the error names the inputs
that are worth shortening.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from adgen.models.campaigns import Business, Campaign
from adgen.services.errors import PromptTooLong
from adgen.services.layouts import Aspect


logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 1000


@dataclass(frozen=True, slots=True)
class AspectConfig:
    aspect: Aspect
    size: str
    composition: str


BACKGROUND_ASPECTS = (
    AspectConfig(
        Aspect.LEADERBOARD,
        "1792x1024",
        "wide flow left→right, calm negative space band for future headline",
    ),
    AspectConfig(
        Aspect.SKYSCRAPER,
        "1024x1792",
        "vertical flow top→bottom, calm negative space zones near top and bottom",
    ),
    AspectConfig(
        Aspect.SQUARE,
        "1024x1024",
        "centered composition with soft gradients and negative space in upper third",
    ),
)


SYSTEM_PROMPT = """You are an expert advertising copywriter and creative director specializing in local business marketing.

Your task is to create compelling, effective advertising content that drives local customer engagement and action.

CRITICAL REQUIREMENTS:
1. Use the provided call-to-action wording EXACTLY as specified
2. Incorporate the business logo prominently and appropriately
3. Reference inspiration images for visual style and mood
4. Match the brand's tone and personality
5. Create content that resonates with the target audience
6. Ensure compliance with advertising standards

OUTPUT FORMAT:
Provide exactly 1 ad variant in the following JSON format:

{
  "variants": [
    {
      "variant_id": "A",
      "headline": "Compelling headline (max 8 words)",
      "subheadline": "Supporting message (max 15 words)",
      "call_to_action": "EXACT CTA text provided",
      "image_prompt": "Detailed visual description for image generation",
      "reasoning": "Why this approach will work for the target audience"
    }
  ]
}

Remember: Focus on local relevance, urgency, and clear value propositions that drive immediate action.
"""

_BACKGROUND_TEMPLATE = (
    "Create a text-free abstract background.\n\n"
    "Aspect: {aspect} ({size}).\n"
    "Style: {tone}.\n"
    "Primary palette only: {colors}.\n"
    "Elements: organic gradients, soft textures, subtle patterns, gentle curves.\n\n"
    "Composition guidance: {composition}.\n\n"
    "ABSOLUTELY NO TEXT of any kind. NO letters, NO numerals, NO logos, NO icons, "
    "NO symbols, NO signage, NO labels, NO UI.\n"
    "No objects or packaging. If a typographic or glyph-like mark would appear, "
    "replace it with texture or pattern.\n"
    "Reserve calm negative space for later overlays."
)


class PromptBuilder:
    """Builds prompts for one campaign and its business."""

    def __init__(self, campaign: Campaign, business: Business) -> None:
        self.campaign = campaign
        self.business = business

    def brand_colors(self) -> str:
        colors = self.campaign.effective_brand_colors(self.business)
        return ", ".join(colors) if colors else "professional colors"

    def brand_tone(self) -> str:
        tone = self.campaign.effective_tone_words(self.business)
        return ", ".join(tone) if tone else "professional, modern"

    def inspiration_context(self) -> str:
        count = self.campaign.inspiration_image_count
        if count <= 0:
            return "No inspiration images provided"
        lines = ["The following inspiration images should guide the visual style and mood:"]
        for index in range(count):
            lines.append(
                f"- Inspiration Image {index + 1}: Use this as a reference for visual style, "
                "color palette, mood, and overall aesthetic"
            )
        return "\n".join(lines)

    def copy_prompt(self) -> str:
        campaign, business = self.campaign, self.business
        prompt = (
            f"BRIEF: {campaign.brief}\n"
            f"GOALS: {campaign.goals}\n"
            f"AUDIENCE: {campaign.audience}\n"
            f"OFFER: {campaign.offer}\n"
            f"CTA: {campaign.cta}\n\n"
            f"BUSINESS: {business.name} ({business.type_of_business})\n"
            f"DESCRIPTION: {business.description}\n\n"
            f"BRAND: Colors: {', '.join(campaign.effective_brand_colors(business))} | "
            f"Fonts: {campaign.effective_brand_fonts(business)} | "
            f"Tone: {', '.join(campaign.effective_tone_words(business))}\n\n"
            f"{self.inspiration_context()}\n\n"
            f"Create 1 compelling ad variant for sizes: {', '.join(campaign.ad_sizes)}. "
            "Include business logo prominently. Focus on single best creative approach."
        )
        return self.validate(prompt)

    def background_prompt(self, config: AspectConfig) -> str:
        prompt = _BACKGROUND_TEMPLATE.format(
            aspect=config.aspect.value,
            size=config.size,
            tone=self.brand_tone(),
            colors=self.brand_colors(),
            composition=config.composition,
        )
        return self.validate(prompt)

    def background_prompts(self) -> List[tuple[AspectConfig, str]]:
        return [(config, self.background_prompt(config)) for config in BACKGROUND_ASPECTS]

    def shortening_suggestions(self) -> List[str]:
        campaign, business = self.campaign, self.business
        suggestions: List[str] = []

        def check(value: str, limit: int, label: str) -> None:
            if value and len(value) > limit:
                suggestions.append(f"Consider shortening the {label} (currently {len(value)} characters)")

        check(campaign.brief, 200, "campaign brief")
        check(campaign.goals, 150, "campaign goals")
        check(campaign.audience, 150, "target audience description")
        check(campaign.offer, 150, "offer details")
        check(campaign.cta, 100, "call to action")
        check(business.description, 200, "business description")

        colors = ", ".join(campaign.brand_colors)
        if len(colors) > 100:
            suggestions.append(f"Consider reducing the number of brand colors (currently {len(colors)} characters)")
        tone = ", ".join(campaign.tone_words)
        if len(tone) > 100:
            suggestions.append(f"Consider reducing the number of tone words (currently {len(tone)} characters)")
        return suggestions

    def validate(self, prompt: str) -> str:
        if len(prompt) > MAX_PROMPT_LENGTH:
            logger.error(
                "Prompt exceeds %d character limit (%d characters) for campaign %s",
                MAX_PROMPT_LENGTH,
                len(prompt),
                self.campaign.id,
            )
            raise PromptTooLong(len(prompt), MAX_PROMPT_LENGTH, self.shortening_suggestions())
        logger.debug("Prompt length validation passed: %d characters", len(prompt))
        return prompt
