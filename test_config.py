"""Environment-driven settings and campaign readiness rules."""

from pathlib import Path

from adgen.config import load_settings
from adgen.models.campaigns import Business, Campaign


def test_defaults(monkeypatch, tmp_path):
    for name in (
        "OPENAI_API_KEY",
        "OPENAI_TEXT_MODEL",
        "OPENAI_IMAGE_MODEL",
        "ADGEN_STORAGE_DIR",
        "ADGEN_MEDIA_URL",
        "ADGEN_FETCH_TIMEOUT",
        "ADGEN_FONT_PATH",
        "ADGEN_JOB_WORKERS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings(env_path=tmp_path / "missing.env")

    assert settings.openai_api_key is None
    assert settings.text_model == "gpt-4o"
    assert settings.image_model == "dall-e-3"
    assert settings.image_dir == Path("storage") / "images"
    assert settings.media_url == "/media"
    assert settings.fetch_timeout == 30.0
    assert settings.job_workers == 2
    assert settings.log_level == "INFO"


def test_env_file_is_loaded(monkeypatch, tmp_path):
    # setenv first so the values load_dotenv writes are undone after the test.
    for name in ("OPENAI_API_KEY", "ADGEN_MEDIA_URL"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_API_KEY=sk-from-file\nADGEN_MEDIA_URL=/assets/\n")

    settings = load_settings(env_path=env_file)

    assert settings.openai_api_key == "sk-from-file"
    assert settings.media_url == "/assets"


def test_process_environment_wins_over_env_file(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    env_file = tmp_path / ".env"
    env_file.write_text("LOG_LEVEL=WARNING\n")

    assert load_settings(env_path=env_file).log_level == "DEBUG"


def _business(**overrides):
    values = dict(id="b", name="Biz", brand_colors=["#000000"], brand_fonts="Inter", tone_words=["bold"])
    values.update(overrides)
    return Business(**values)


def _campaign(**overrides):
    values = dict(
        id="c",
        business_id="b",
        name="Campaign",
        brief="A brief that is comfortably long enough.",
        goals="Goals",
        audience="Audience",
        offer="Offer",
        cta="Buy now",
        ad_sizes=["300x250"],
    )
    values.update(overrides)
    return Campaign(**values)


def test_complete_campaign_can_generate():
    assert _campaign().can_generate_ads(_business())


def test_short_brief_and_missing_fields_are_listed():
    missing = _campaign(brief="too short", offer="", ad_sizes=[]).missing_fields(_business())

    assert missing == ["Creative Brief", "Offer Details", "Ad Sizes"]


def test_brand_profile_comes_from_campaign_or_business():
    business = _business(brand_colors=[], tone_words=[])

    assert _campaign().missing_fields(business) == ["Brand Profile (Brand Colors, Tone Words)"]
    assert _campaign(brand_colors=["#fff"], tone_words=["calm"]).can_generate_ads(business)
