import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from chatdesk.api.deps import get_webhook_service
from chatdesk.domain.enums import Platform
from chatdesk.services.errors import MissingSignatureError, WebhookVerificationError
from chatdesk.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter()

ACK = {"success": True}


async def _verify_subscription(
    platform: Platform,
    service: WebhookService,
    mode: str | None,
    verify_token: str | None,
    challenge: str | None,
) -> PlainTextResponse:
    try:
        echoed = await service.verify_subscription(platform, mode, verify_token, challenge)
    except WebhookVerificationError as exc:
        logger.warning("%s webhook verification failed: %s", platform.value, exc)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden") from exc
    return PlainTextResponse(echoed)


async def _receive(platform: Platform, request: Request, service: WebhookService) -> dict:
    body = await request.body()
    try:
        outcome = await service.handle(platform, body, request.headers)
    except MissingSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except WebhookVerificationError as exc:
        logger.warning("Rejected %s webhook: %s", platform.value, exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except Exception:
        logger.exception("Unexpected error while handling %s webhook", platform.value)
        return ACK

    if outcome.failed:
        logger.warning(
            "%s webhook: %d of %d message(s) failed",
            platform.value,
            outcome.failed,
            outcome.received,
        )
    return ACK


@router.get("/facebook", response_class=PlainTextResponse)
async def verify_facebook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
    service: WebhookService = Depends(get_webhook_service),
) -> PlainTextResponse:
    return await _verify_subscription(Platform.FACEBOOK, service, mode, verify_token, challenge)


@router.get("/instagram", response_class=PlainTextResponse)
async def verify_instagram(
    mode: str | None = Query(default=None, alias="hub.mode"),
    verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
    service: WebhookService = Depends(get_webhook_service),
) -> PlainTextResponse:
    return await _verify_subscription(Platform.INSTAGRAM, service, mode, verify_token, challenge)


@router.post("/line")
async def line_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> dict:
    return await _receive(Platform.LINE, request, service)


@router.post("/facebook")
async def facebook_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> dict:
    return await _receive(Platform.FACEBOOK, request, service)


@router.post("/instagram")
async def instagram_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> dict:
    return await _receive(Platform.INSTAGRAM, request, service)


@router.post("/telegram")
async def telegram_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> dict:
    return await _receive(Platform.TELEGRAM, request, service)


@router.post("/web")
async def web_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> dict:
    return await _receive(Platform.WEB, request, service)
