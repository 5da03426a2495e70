from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List

from adgen.models.positions import ElementPositions


def utcnow() -> datetime:
    """Return an explicit, timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    READY = "ready"
    ACTIVE = "active"
    COMPLETED = "completed"


class AdStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


MIN_BRIEF_LENGTH = 20


@dataclass(slots=True)
class StoredImage:
    """Reference to an image blob owned by exactly one record."""

    key: str
    filename: str
    content_type: str = "image/png"


@dataclass(slots=True)
class Business:
    """
    The advertiser. Brand values here are defaults that a campaign may
    override with its own non-empty values.
    """

    id: str
    name: str
    type_of_business: str = ""
    description: str = ""
    brand_colors: List[str] = field(default_factory=list)
    brand_fonts: str = ""
    tone_words: List[str] = field(default_factory=list)
    logo: StoredImage | None = None


@dataclass(slots=True)
class Campaign:
    """
    A creative brief plus the ad sizes it should be rendered in.

    The generation core only reads campaigns, apart from promoting the status
    from `draft` to `ready` when a run completes.
    """

    id: str
    business_id: str
    name: str
    brief: str = ""
    goals: str = ""
    audience: str = ""
    offer: str = ""
    cta: str = ""
    brand_colors: List[str] = field(default_factory=list)
    brand_fonts: str = ""
    tone_words: List[str] = field(default_factory=list)
    # Ordered; generated ads are created in this order.
    ad_sizes: List[str] = field(default_factory=list)
    inspiration_image_count: int = 0
    status: CampaignStatus = CampaignStatus.DRAFT
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def effective_brand_colors(self, business: Business) -> List[str]:
        return list(self.brand_colors or business.brand_colors)

    def effective_brand_fonts(self, business: Business) -> str:
        return self.brand_fonts or business.brand_fonts

    def effective_tone_words(self, business: Business) -> List[str]:
        return list(self.tone_words or business.tone_words)

    def missing_fields(self, business: Business) -> List[str]:
        """Human-readable list of what still blocks ad generation."""
        missing: List[str] = []
        if len(self.brief.strip()) < MIN_BRIEF_LENGTH:
            missing.append("Creative Brief")
        if not self.goals.strip():
            missing.append("Goals")
        if not self.audience.strip():
            missing.append("Target Audience")
        if not self.offer.strip():
            missing.append("Offer Details")
        if not self.cta.strip():
            missing.append("Call to Action")
        if not self.ad_sizes:
            missing.append("Ad Sizes")

        brand_missing: List[str] = []
        if not self.effective_brand_colors(business):
            brand_missing.append("Brand Colors")
        if not self.effective_brand_fonts(business):
            brand_missing.append("Brand Fonts")
        if not self.effective_tone_words(business):
            brand_missing.append("Tone Words")
        if brand_missing:
            missing.append(f"Brand Profile ({', '.join(brand_missing)})")
        return missing

    def can_generate_ads(self, business: Business) -> bool:
        return not self.missing_fields(business)


@dataclass(slots=True)
class BackgroundVariant:
    """Generated background art for one `(campaign, aspect)` pair."""

    id: str
    campaign_id: str
    aspect: str
    size: str
    image: StoredImage | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class GeneratedAd:
    """
    One sized ad for the campaign's current generation run.

    `is_locked` is true exactly when a final render has been produced and not
    since unlocked. Unlocking leaves `final_image` in place until the next
    composite replaces it.
    """

    id: str
    campaign_id: str
    variant_id: str
    ad_size: str
    headline: str
    subheadline: str
    call_to_action: str
    element_positions: ElementPositions
    reasoning: str = ""
    background_image: StoredImage | None = None
    final_image: StoredImage | None = None
    is_locked: bool = False
    status: AdStatus = AdStatus.COMPLETED
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
