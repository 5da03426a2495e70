import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from adgen.api.v1.routes import router as api_v1_router
from adgen.config import Settings, get_settings
from adgen.services.container import Services, build_services


def _print_banner(settings: Settings) -> None:
    print("\n" + "=" * 60)
    print("AD GENERATION SERVICE CONFIGURATION")
    print("=" * 60)
    if settings.openai_api_key:
        print(f"✓ OPENAI_API_KEY loaded: {settings.openai_api_key[:7]}...")
    else:
        print("⚠ OPENAI_API_KEY not set; generation runs will fail")
        print("  Add OPENAI_API_KEY=your_key_here to .env")
    print(f"  Models: text={settings.text_model} image={settings.image_model}")
    print(f"  Images stored under: {settings.image_dir} (served at {settings.media_url})")
    print("=" * 60 + "\n")


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """
    Application factory for the Ad Generation API.

    Tests pass prebuilt `services` wired with fake generators.
    """
    settings = services.settings if services is not None else (settings or get_settings())
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _print_banner(settings)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.jobs.shutdown(wait=False)

    app = FastAPI(
        title="Ad Generation API",
        version="0.1.0",
        description="Generates, lays out and composites sized ads from a campaign brief.",
        lifespan=lifespan,
    )
    app.state.services = services

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    # Public, versioned API routes.
    app.include_router(api_v1_router)

    # Background, logo and final images by the URLs the API hands out.
    app.mount(settings.media_url, StaticFiles(directory=services.images.base_dir), name="media")

    return app


app = create_app()
