from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List
from uuid import uuid4

from adgen.models.campaigns import (
    BackgroundVariant,
    Business,
    Campaign,
    CampaignStatus,
    GeneratedAd,
    StoredImage,
    utcnow,
)
from adgen.services.errors import NotFound


logger = logging.getLogger(__name__)


class ImageStorageError(RuntimeError):
    """Raised when an image blob cannot be written or read."""


class ImageStore:
    """
    Filesystem-backed blob store for background, logo and final images.

    Blobs live under `<base_dir>/<key>` and are addressed by an opaque key.
    Every record owns its blob exclusively, so callers `copy()` rather than
    share a key between records.
    """

    def __init__(self, base_dir: Path, media_url: str = "/media") -> None:
        self._base_dir = base_dir
        self._media_url = media_url.rstrip("/")
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, key: str) -> Path:
        return self._base_dir / key

    def put(self, data: bytes, filename: str, content_type: str = "image/png") -> StoredImage:
        suffix = Path(filename).suffix or ".png"
        key = f"{uuid4().hex}{suffix}"
        try:
            self._path(key).write_bytes(data)
        except OSError as exc:
            raise ImageStorageError(f"Failed to persist image {filename}.") from exc
        logger.debug("Stored image %s as %s (%d bytes)", filename, key, len(data))
        return StoredImage(key=key, filename=filename, content_type=content_type)

    def read(self, image: StoredImage) -> bytes:
        try:
            return self._path(image.key).read_bytes()
        except OSError as exc:
            raise ImageStorageError(f"Image {image.key} is not readable.") from exc

    def copy(self, image: StoredImage) -> StoredImage:
        return self.put(self.read(image), image.filename, image.content_type)

    def purge(self, image: StoredImage | None) -> None:
        if image is None:
            return
        self._path(image.key).unlink(missing_ok=True)
        logger.debug("Purged image %s", image.key)

    def exists(self, image: StoredImage) -> bool:
        return self._path(image.key).exists()

    def url_for(self, image: StoredImage | None) -> str | None:
        if image is None:
            return None
        return f"{self._media_url}/{image.key}"


class CampaignRepository:
    """
    In-memory store for businesses, campaigns and their generated records.

    All access goes through one re-entrant lock. Background variants are keyed
    by `(campaign, aspect)`: writing an existing aspect replaces the row in
    place and purges the superseded image.
    """

    def __init__(self, images: ImageStore) -> None:
        self._images = images
        self._lock = threading.RLock()
        self._businesses: Dict[str, Business] = {}
        self._campaigns: Dict[str, Campaign] = {}
        self._variants: Dict[tuple[str, str], BackgroundVariant] = {}
        self._ads: Dict[str, GeneratedAd] = {}

    @property
    def images(self) -> ImageStore:
        return self._images

    # Businesses and campaigns are owned by the CRUD side of the product.

    def add_business(self, business: Business) -> Business:
        with self._lock:
            self._businesses[business.id] = business
            return business

    def get_business(self, business_id: str) -> Business:
        with self._lock:
            business = self._businesses.get(business_id)
        if business is None:
            raise NotFound("Business", business_id)
        return business

    def add_campaign(self, campaign: Campaign) -> Campaign:
        with self._lock:
            self._campaigns[campaign.id] = campaign
            return campaign

    def get_campaign(self, campaign_id: str) -> Campaign:
        with self._lock:
            campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise NotFound("Campaign", campaign_id)
        return campaign

    def set_campaign_status(self, campaign_id: str, status: CampaignStatus) -> Campaign:
        with self._lock:
            campaign = self.get_campaign(campaign_id)
            campaign.status = status
            campaign.updated_at = utcnow()
            logger.info("Campaign %s status -> %s", campaign_id, status.value)
            return campaign

    # Background variants

    def upsert_background_variant(
        self,
        campaign_id: str,
        aspect: str,
        size: str,
        image: StoredImage,
    ) -> BackgroundVariant:
        with self._lock:
            key = (campaign_id, aspect)
            variant = self._variants.get(key)
            if variant is None:
                variant = BackgroundVariant(
                    id=str(uuid4()),
                    campaign_id=campaign_id,
                    aspect=aspect,
                    size=size,
                    image=image,
                )
                self._variants[key] = variant
                logger.info("Created %s background variant for campaign %s", aspect, campaign_id)
            else:
                previous = variant.image
                variant.size = size
                variant.image = image
                variant.updated_at = utcnow()
                self._images.purge(previous)
                logger.info("Replaced %s background variant for campaign %s", aspect, campaign_id)
            return variant

    def list_background_variants(self, campaign_id: str) -> List[BackgroundVariant]:
        with self._lock:
            variants = [v for (cid, _), v in self._variants.items() if cid == campaign_id]
        return sorted(variants, key=lambda v: v.created_at)

    # Generated ads

    def add_generated_ad(self, ad: GeneratedAd) -> GeneratedAd:
        with self._lock:
            self._ads[ad.id] = ad
            return ad

    def get_generated_ad(self, ad_id: str) -> GeneratedAd:
        with self._lock:
            ad = self._ads.get(ad_id)
        if ad is None:
            raise NotFound("GeneratedAd", ad_id)
        return ad

    def list_generated_ads(self, campaign_id: str) -> List[GeneratedAd]:
        with self._lock:
            ads = [ad for ad in self._ads.values() if ad.campaign_id == campaign_id]
        return sorted(ads, key=lambda ad: ad.created_at)

    def touch(self, ad: GeneratedAd) -> GeneratedAd:
        with self._lock:
            ad.updated_at = utcnow()
            self._ads[ad.id] = ad
            return ad

    def remove_generated_ad(self, ad_id: str) -> None:
        with self._lock:
            ad = self._ads.pop(ad_id, None)
        if ad is None:
            raise NotFound("GeneratedAd", ad_id)
        self._images.purge(ad.background_image)
        self._images.purge(ad.final_image)

    def delete_generated_ads(self, campaign_id: str) -> int:
        """Delete every ad of the campaign, purge their images, reset it to draft."""
        with self._lock:
            doomed = [ad for ad in self._ads.values() if ad.campaign_id == campaign_id]
            for ad in doomed:
                self._images.purge(ad.background_image)
                self._images.purge(ad.final_image)
                del self._ads[ad.id]
            self.set_campaign_status(campaign_id, CampaignStatus.DRAFT)
        logger.info("Deleted %d generated ads for campaign %s", len(doomed), campaign_id)
        return len(doomed)
