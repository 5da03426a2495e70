from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator

from adgen.models.campaigns import AdStatus, CampaignStatus
from adgen.models.jobs import JobKind, JobStatus


class BusinessCreate(BaseModel):
    """Advertiser profile. Brand values act as defaults for its campaigns."""

    name: str = Field(..., min_length=1, description="Business display name.")
    type_of_business: str = Field(default="", description="e.g. 'Coffee shop', 'Dental clinic'.")
    description: str = ""
    brand_colors: List[str] = Field(default_factory=list, description="Hex colors, most important first.")
    brand_fonts: str = ""
    tone_words: List[str] = Field(default_factory=list)


class BusinessResponse(BaseModel):
    id: str
    name: str
    type_of_business: str
    description: str
    brand_colors: List[str]
    brand_fonts: str
    tone_words: List[str]
    logo_url: str | None = Field(default=None, description="Public URL of the uploaded logo.")


class CampaignCreate(BaseModel):
    """Creative brief for one campaign."""

    business_id: str
    name: str = Field(..., min_length=1)
    brief: str = ""
    goals: str = ""
    audience: str = ""
    offer: str = ""
    cta: str = ""
    brand_colors: List[str] = Field(
        default_factory=list,
        description="Overrides the business colors when non-empty.",
    )
    brand_fonts: str = ""
    tone_words: List[str] = Field(default_factory=list)
    ad_sizes: List[str] = Field(
        default_factory=list,
        description="Ordered list of '<width>x<height>' sizes, e.g. ['300x250', '728x90'].",
    )
    inspiration_image_count: NonNegativeInt = 0

    @field_validator("ad_sizes")
    @classmethod
    def drop_repeated_sizes(cls, value: List[str]) -> List[str]:
        # One ad per size; the first occurrence keeps its place.
        return list(dict.fromkeys(value))


class CampaignResponse(BaseModel):
    id: str
    business_id: str
    name: str
    status: CampaignStatus
    ad_sizes: List[str]
    missing_fields: List[str] = Field(
        default_factory=list,
        description="What still blocks ad generation; empty when the campaign is ready.",
    )
    can_generate_ads: bool
    created_at: datetime
    updated_at: datetime


class JobResponse(BaseModel):
    """Status of a queued generation or background regeneration run."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique job identifier.")
    kind: JobKind
    campaign_id: str
    status: JobStatus = Field(..., description="Current lifecycle status for the job.")
    error: str | None = Field(default=None, description="Failure message for failed jobs.")
    created_at: datetime
    updated_at: datetime


class BackgroundVariantResponse(BaseModel):
    id: str
    aspect: str = Field(..., description="leaderboard, skyscraper or square.")
    size: str = Field(..., description="Generated image size, e.g. '1792x1024'.")
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime


class GeneratedAdResponse(BaseModel):
    """One sized ad with its copy, layout and image URLs."""

    id: str
    campaign_id: str
    variant_id: str
    ad_size: str
    headline: str
    subheadline: str
    call_to_action: str
    reasoning: str
    element_positions: Dict[str, Dict[str, Any]] = Field(
        ...,
        description="Position document keyed by element (logo, headline, subheadline, cta).",
    )
    background_image_url: str | None = None
    image_url: str | None = Field(default=None, description="Final render; present after compositing.")
    is_locked: bool
    status: AdStatus
    created_at: datetime
    updated_at: datetime


class PositionsUpdate(BaseModel):
    element_positions: Dict[str, Any] = Field(
        ...,
        description="Full position document, e.g. {'headline': {'x': 10, 'y': 20, 'fontSize': 20, 'color': '#000000'}}.",
    )


class AdPositionsUpdate(PositionsUpdate):
    ad_id: str


class BulkPositionsUpdate(BaseModel):
    updates: List[AdPositionsUpdate] = Field(default_factory=list)


class RenderAllResponse(BaseModel):
    rendered: List[GeneratedAdResponse] = Field(default_factory=list)
    failures: Dict[str, str] = Field(
        default_factory=dict,
        description="Failure reason keyed by ad id for ads that could not be composited.",
    )


class DeleteAdsResponse(BaseModel):
    deleted: int = Field(..., description="Number of generated ads removed.")
