from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from adgen.models.campaigns import GeneratedAd
from adgen.models.positions import ElementPositions
from adgen.services.compositor import Compositor
from adgen.services.errors import AdLocked, CompositeFailed, NotFound
from adgen.services.repository import CampaignRepository


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RenderReport:
    """Outcome of compositing every unlocked ad of a campaign."""

    rendered: List[GeneratedAd] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class AdEditor:
    """
    Editing operations on generated ads: positions, render and unlock.

    Positions are frozen while an ad is locked. Unlocking keeps the final
    image until the next composite replaces it.
    """

    def __init__(self, repository: CampaignRepository, compositor: Compositor) -> None:
        self._repository = repository
        self._compositor = compositor

    def update_positions(self, ad_id: str, document: Mapping[str, Any]) -> GeneratedAd:
        positions = ElementPositions.from_document(document)
        with self._compositor.editing([ad_id]):
            ad = self._repository.get_generated_ad(ad_id)
            if ad.is_locked:
                raise AdLocked(ad.id)
            ad.element_positions = positions
            self._repository.touch(ad)
        logger.info("Updated element positions for ad %s", ad.id)
        return ad

    def update_campaign_positions(
        self,
        campaign_id: str,
        updates: Sequence[Tuple[str, Mapping[str, Any]]],
    ) -> List[GeneratedAd]:
        """
        Apply `(ad_id, positions)` pairs to ads of one campaign.

        Every pair is validated before any ad is touched, so a bad document, a
        locked ad or one being composited leaves the whole batch unapplied.
        """
        self._repository.get_campaign(campaign_id)
        with self._compositor.editing(ad_id for ad_id, _ in updates):
            staged: List[Tuple[GeneratedAd, ElementPositions]] = []
            for ad_id, document in updates:
                ad = self._repository.get_generated_ad(ad_id)
                if ad.campaign_id != campaign_id:
                    raise NotFound("GeneratedAd", ad_id)
                if ad.is_locked:
                    raise AdLocked(ad.id)
                staged.append((ad, ElementPositions.from_document(document)))

            for ad, positions in staged:
                ad.element_positions = positions
                self._repository.touch(ad)
        logger.info("Updated element positions for %d ads of campaign %s", len(staged), campaign_id)
        return [ad for ad, _ in staged]

    def render(self, ad_id: str) -> GeneratedAd:
        return self._compositor.composite(ad_id)

    def render_campaign(self, campaign_id: str) -> RenderReport:
        """Composite each unlocked ad; one ad failing does not stop the rest."""
        self._repository.get_campaign(campaign_id)
        report = RenderReport()
        for ad in self._repository.list_generated_ads(campaign_id):
            if ad.is_locked:
                continue
            try:
                report.rendered.append(self._compositor.composite(ad.id))
            except CompositeFailed as exc:
                report.failures[ad.id] = exc.reason
        logger.info(
            "Rendered %d ads for campaign %s (%d failed)",
            len(report.rendered),
            campaign_id,
            len(report.failures),
        )
        return report

    def unlock(self, ad_id: str) -> GeneratedAd:
        ad = self._repository.get_generated_ad(ad_id)
        if ad.is_locked:
            ad.is_locked = False
            self._repository.touch(ad)
            logger.info("Unlocked ad %s for editing", ad.id)
        return ad

    def unlock_campaign(self, campaign_id: str) -> List[GeneratedAd]:
        self._repository.get_campaign(campaign_id)
        unlocked = [self.unlock(ad.id) for ad in self._repository.list_generated_ads(campaign_id) if ad.is_locked]
        logger.info("Unlocked %d ads for campaign %s", len(unlocked), campaign_id)
        return unlocked
