"""Image store and in-memory campaign repository."""

import pytest

from adgen.models.campaigns import CampaignStatus, GeneratedAd
from adgen.services.errors import NotFound
from adgen.services.layouts import default_positions
from conftest import make_png


def _ad(campaign_id, ad_size, background=None, ad_id=None):
    return GeneratedAd(
        id=ad_id or f"ad-{ad_size}",
        campaign_id=campaign_id,
        variant_id="A",
        ad_size=ad_size,
        headline="h",
        subheadline="s",
        call_to_action="c",
        element_positions=default_positions(ad_size),
        background_image=background,
    )


def test_put_read_and_url(image_store):
    image = image_store.put(b"bytes", "square_background_1.png")

    assert image.key.endswith(".png")
    assert image_store.read(image) == b"bytes"
    assert image_store.url_for(image) == f"/media/{image.key}"
    assert image_store.url_for(None) is None


def test_copy_is_an_independent_blob(image_store):
    original = image_store.put(b"bytes", "bg.png")

    duplicate = image_store.copy(original)
    image_store.purge(original)

    assert duplicate.key != original.key
    assert image_store.read(duplicate) == b"bytes"


def test_purge_missing_image_is_harmless(image_store):
    image = image_store.put(b"bytes", "bg.png")

    image_store.purge(image)
    image_store.purge(image)
    image_store.purge(None)

    assert not image_store.exists(image)


def test_lookups_raise_not_found(repository):
    with pytest.raises(NotFound):
        repository.get_campaign("missing")
    with pytest.raises(NotFound):
        repository.get_business("missing")
    with pytest.raises(NotFound):
        repository.get_generated_ad("missing")


def test_background_variant_upsert_replaces_in_place(repository, image_store, campaign):
    first_image = image_store.put(make_png(), "a.png")
    first = repository.upsert_background_variant(campaign.id, "square", "1024x1024", first_image)

    second_image = image_store.put(make_png(), "b.png")
    second = repository.upsert_background_variant(campaign.id, "square", "1024x1024", second_image)

    assert second.id == first.id
    assert second.image == second_image
    assert not image_store.exists(first_image)
    assert len(repository.list_background_variants(campaign.id)) == 1


def test_variants_are_unique_per_aspect(repository, image_store, campaign):
    for aspect in ("leaderboard", "skyscraper", "square", "square"):
        repository.upsert_background_variant(campaign.id, aspect, "1024x1024", image_store.put(b"x", "x.png"))

    aspects = [variant.aspect for variant in repository.list_background_variants(campaign.id)]
    assert aspects == ["leaderboard", "skyscraper", "square"]


def test_delete_generated_ads_purges_images_and_resets_status(repository, image_store, campaign):
    background = image_store.put(b"bg", "bg.png")
    repository.add_generated_ad(_ad(campaign.id, "300x250", background))
    repository.add_generated_ad(_ad(campaign.id, "728x90"))
    repository.set_campaign_status(campaign.id, CampaignStatus.READY)

    assert repository.delete_generated_ads(campaign.id) == 2

    assert repository.list_generated_ads(campaign.id) == []
    assert not image_store.exists(background)
    assert repository.get_campaign(campaign.id).status is CampaignStatus.DRAFT


def test_remove_generated_ad(repository, image_store, campaign):
    background = image_store.put(b"bg", "bg.png")
    ad = repository.add_generated_ad(_ad(campaign.id, "300x250", background))

    repository.remove_generated_ad(ad.id)

    assert not image_store.exists(background)
    with pytest.raises(NotFound):
        repository.remove_generated_ad(ad.id)
