import asyncio
import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from adgen.api.v1.schemas import (
    BackgroundVariantResponse,
    BulkPositionsUpdate,
    BusinessCreate,
    BusinessResponse,
    CampaignCreate,
    CampaignResponse,
    DeleteAdsResponse,
    GeneratedAdResponse,
    JobResponse,
    PositionsUpdate,
    RenderAllResponse,
)
from adgen.models.campaigns import BackgroundVariant, Business, Campaign, CampaignStatus, GeneratedAd
from adgen.services.container import Services
from adgen.services.errors import (
    AdGenerationError,
    AdLocked,
    AdValidationError,
    CompositeFailed,
    GenerationInProgress,
    NotFound,
)
from adgen.services.repository import ImageStorageError, ImageStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

# How long the progress socket waits on its queue before checking for a disconnect.
PROGRESS_POLL_SECONDS = 0.5


def get_services(request: Request) -> Services:
    """The process-wide collaborators attached by `create_app()`."""
    return request.app.state.services


def http_error(exc: AdGenerationError) -> HTTPException:
    """Translate a core failure into the matching HTTP status."""
    if isinstance(exc, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (GenerationInProgress, AdLocked)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, AdValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, CompositeFailed):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


def business_response(business: Business, images: ImageStore) -> BusinessResponse:
    return BusinessResponse(
        id=business.id,
        name=business.name,
        type_of_business=business.type_of_business,
        description=business.description,
        brand_colors=business.brand_colors,
        brand_fonts=business.brand_fonts,
        tone_words=business.tone_words,
        logo_url=images.url_for(business.logo),
    )


def campaign_response(campaign: Campaign, business: Business) -> CampaignResponse:
    missing = campaign.missing_fields(business)
    return CampaignResponse(
        id=campaign.id,
        business_id=campaign.business_id,
        name=campaign.name,
        status=campaign.status,
        ad_sizes=campaign.ad_sizes,
        missing_fields=missing,
        can_generate_ads=not missing,
        created_at=campaign.created_at,
        updated_at=campaign.updated_at,
    )


def variant_response(variant: BackgroundVariant, images: ImageStore) -> BackgroundVariantResponse:
    return BackgroundVariantResponse(
        id=variant.id,
        aspect=variant.aspect,
        size=variant.size,
        image_url=images.url_for(variant.image),
        created_at=variant.created_at,
        updated_at=variant.updated_at,
    )


def ad_response(ad: GeneratedAd, images: ImageStore) -> GeneratedAdResponse:
    return GeneratedAdResponse(
        id=ad.id,
        campaign_id=ad.campaign_id,
        variant_id=ad.variant_id,
        ad_size=ad.ad_size,
        headline=ad.headline,
        subheadline=ad.subheadline,
        call_to_action=ad.call_to_action,
        reasoning=ad.reasoning,
        element_positions=ad.element_positions.to_document(),
        background_image_url=images.url_for(ad.background_image),
        image_url=images.url_for(ad.final_image),
        is_locked=ad.is_locked,
        status=ad.status,
        created_at=ad.created_at,
        updated_at=ad.updated_at,
    )


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


# Businesses and campaigns


@router.post(
    "/businesses",
    response_model=BusinessResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["campaigns"],
)
def create_business(payload: BusinessCreate, services: Services = Depends(get_services)) -> BusinessResponse:
    business = services.repository.add_business(Business(id=str(uuid4()), **payload.model_dump()))
    return business_response(business, services.images)


@router.put("/businesses/{business_id}/logo", response_model=BusinessResponse, tags=["campaigns"])
def upload_logo(
    business_id: str,
    logo: UploadFile = File(..., description="Logo image (PNG with transparency works best)."),
    services: Services = Depends(get_services),
) -> BusinessResponse:
    try:
        business = services.repository.get_business(business_id)
        contents = logo.file.read()
        if not contents:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Logo file is empty.")
        stored = services.images.put(contents, logo.filename or "logo.png", logo.content_type or "image/png")
    except NotFound as exc:
        raise http_error(exc) from exc
    except ImageStorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to persist logo.",
        ) from exc

    previous = business.logo
    business.logo = stored
    services.images.purge(previous)
    return business_response(business, services.images)


@router.post(
    "/campaigns",
    response_model=CampaignResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["campaigns"],
)
def create_campaign(payload: CampaignCreate, services: Services = Depends(get_services)) -> CampaignResponse:
    try:
        business = services.repository.get_business(payload.business_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    campaign = services.repository.add_campaign(Campaign(id=str(uuid4()), **payload.model_dump()))
    return campaign_response(campaign, business)


@router.get("/campaigns/{campaign_id}", response_model=CampaignResponse, tags=["campaigns"])
def get_campaign(campaign_id: str, services: Services = Depends(get_services)) -> CampaignResponse:
    try:
        campaign = services.repository.get_campaign(campaign_id)
        business = services.repository.get_business(campaign.business_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return campaign_response(campaign, business)


# Generation


@router.post(
    "/campaigns/{campaign_id}/generate",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["generation"],
    summary="Start ad generation for a campaign",
)
def generate_ads(campaign_id: str, services: Services = Depends(get_services)) -> JobResponse:
    """
    Queue a full generation run: copy, three backgrounds, then one ad per
    configured size. Progress is streamed on the campaign's progress socket.
    """
    try:
        campaign = services.repository.get_campaign(campaign_id)
        business = services.repository.get_business(campaign.business_id)
    except NotFound as exc:
        raise http_error(exc) from exc

    missing = campaign.missing_fields(business)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "Campaign is not ready for ad generation.",
                "missing_fields": missing,
            },
        )

    try:
        job = services.jobs.submit_generation(campaign_id)
    except GenerationInProgress as exc:
        raise http_error(exc) from exc
    return JobResponse.model_validate(job)


@router.post(
    "/campaigns/{campaign_id}/regenerate-background",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["generation"],
    summary="Regenerate only the background images",
)
def regenerate_background(campaign_id: str, services: Services = Depends(get_services)) -> JobResponse:
    try:
        campaign = services.repository.get_campaign(campaign_id)
        business = services.repository.get_business(campaign.business_id)
    except NotFound as exc:
        raise http_error(exc) from exc

    if not (campaign.can_generate_ads(business) or campaign.status == CampaignStatus.READY):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Campaign is not ready for background regeneration.",
        )

    try:
        job = services.jobs.submit_background_regeneration(campaign_id)
    except GenerationInProgress as exc:
        raise http_error(exc) from exc
    return JobResponse.model_validate(job)


@router.get("/jobs/{job_id}", response_model=JobResponse, tags=["generation"])
def get_job(job_id: str, services: Services = Depends(get_services)) -> JobResponse:
    try:
        job = services.jobs.get_job(job_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return JobResponse.model_validate(job)


@router.get(
    "/campaigns/{campaign_id}/background-variants",
    response_model=list[BackgroundVariantResponse],
    tags=["generation"],
)
def list_background_variants(
    campaign_id: str, services: Services = Depends(get_services)
) -> list[BackgroundVariantResponse]:
    try:
        services.repository.get_campaign(campaign_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    variants = services.repository.list_background_variants(campaign_id)
    return [variant_response(variant, services.images) for variant in variants]


@router.websocket("/campaigns/{campaign_id}/progress")
async def campaign_progress(websocket: WebSocket, campaign_id: str) -> None:
    """
    Stream generation events for one campaign.

    Only events published while the socket is connected are delivered.
    """
    services: Services = websocket.app.state.services
    # Subscribed before the handshake completes, so no event published after
    # accept is missed.
    subscription = services.broadcaster.subscribe(campaign_id)
    try:
        await websocket.accept()
    except Exception:
        subscription.close()
        raise
    logger.info(
        "Progress socket opened for campaign %s (%d listeners)",
        campaign_id,
        services.broadcaster.subscriber_count(campaign_id),
    )
    disconnected = asyncio.Event()

    async def watch_disconnect() -> None:
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return
        finally:
            disconnected.set()

    watcher = asyncio.create_task(watch_disconnect())
    try:
        while not disconnected.is_set():
            payload = await run_in_threadpool(subscription.get, PROGRESS_POLL_SECONDS)
            if payload is not None and not disconnected.is_set():
                await websocket.send_json(payload)
    except WebSocketDisconnect:
        logger.info("Progress socket for campaign %s closed by client", campaign_id)
    finally:
        watcher.cancel()
        subscription.close()


# Generated ads


@router.get("/campaigns/{campaign_id}/ads", response_model=list[GeneratedAdResponse], tags=["ads"])
def list_ads(campaign_id: str, services: Services = Depends(get_services)) -> list[GeneratedAdResponse]:
    try:
        services.repository.get_campaign(campaign_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return [ad_response(ad, services.images) for ad in services.repository.list_generated_ads(campaign_id)]


@router.delete("/campaigns/{campaign_id}/ads", response_model=DeleteAdsResponse, tags=["ads"])
def delete_ads(campaign_id: str, services: Services = Depends(get_services)) -> DeleteAdsResponse:
    """Remove every generated ad and put the campaign back into draft."""
    if services.orchestrator.runs.is_running(campaign_id):
        raise http_error(GenerationInProgress(campaign_id))
    try:
        deleted = services.repository.delete_generated_ads(campaign_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return DeleteAdsResponse(deleted=deleted)


@router.patch(
    "/campaigns/{campaign_id}/ads/positions",
    response_model=list[GeneratedAdResponse],
    tags=["ads"],
)
def update_all_positions(
    campaign_id: str,
    payload: BulkPositionsUpdate,
    services: Services = Depends(get_services),
) -> list[GeneratedAdResponse]:
    try:
        ads = services.editor.update_campaign_positions(
            campaign_id,
            [(update.ad_id, update.element_positions) for update in payload.updates],
        )
    except AdGenerationError as exc:
        raise http_error(exc) from exc
    return [ad_response(ad, services.images) for ad in ads]


@router.post("/campaigns/{campaign_id}/ads/render", response_model=RenderAllResponse, tags=["ads"])
def render_all_ads(campaign_id: str, services: Services = Depends(get_services)) -> RenderAllResponse:
    """Composite every unlocked ad. Per-ad failures are reported, not raised."""
    try:
        report = services.editor.render_campaign(campaign_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return RenderAllResponse(
        rendered=[ad_response(ad, services.images) for ad in report.rendered],
        failures=report.failures,
    )


@router.post("/campaigns/{campaign_id}/ads/unlock", response_model=list[GeneratedAdResponse], tags=["ads"])
def unlock_all_ads(campaign_id: str, services: Services = Depends(get_services)) -> list[GeneratedAdResponse]:
    try:
        ads = services.editor.unlock_campaign(campaign_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return [ad_response(ad, services.images) for ad in ads]


@router.get("/ads/{ad_id}", response_model=GeneratedAdResponse, tags=["ads"])
def get_ad(ad_id: str, services: Services = Depends(get_services)) -> GeneratedAdResponse:
    try:
        ad = services.repository.get_generated_ad(ad_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return ad_response(ad, services.images)


@router.patch("/ads/{ad_id}/positions", response_model=GeneratedAdResponse, tags=["ads"])
def update_positions(
    ad_id: str,
    payload: PositionsUpdate,
    services: Services = Depends(get_services),
) -> GeneratedAdResponse:
    try:
        ad = services.editor.update_positions(ad_id, payload.element_positions)
    except AdGenerationError as exc:
        raise http_error(exc) from exc
    return ad_response(ad, services.images)


@router.post("/ads/{ad_id}/render", response_model=GeneratedAdResponse, tags=["ads"])
def render_ad(ad_id: str, services: Services = Depends(get_services)) -> GeneratedAdResponse:
    """Composite the final image and lock the ad."""
    try:
        ad = services.editor.render(ad_id)
    except AdGenerationError as exc:
        raise http_error(exc) from exc
    return ad_response(ad, services.images)


@router.post("/ads/{ad_id}/unlock", response_model=GeneratedAdResponse, tags=["ads"])
def unlock_ad(ad_id: str, services: Services = Depends(get_services)) -> GeneratedAdResponse:
    try:
        ad = services.editor.unlock(ad_id)
    except NotFound as exc:
        raise http_error(exc) from exc
    return ad_response(ad, services.images)
