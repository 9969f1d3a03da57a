from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from zaprelay.logging_config import get_logger
from zaprelay.services.errors import DeliveryError, MalformedPayloadError, UpstreamCapabilityError
from zaprelay.services.reply_service import ReplyOrchestrator, ReplyStatus

logger = get_logger("webhook")

router = APIRouter()


def get_orchestrator(request: Request) -> ReplyOrchestrator:
    return request.app.state.orchestrator


def _text(body: str, status_code: int = status.HTTP_200_OK) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code)


async def _handle_webhook(request: Request, orchestrator: ReplyOrchestrator) -> PlainTextResponse:
    raw = await request.body()

    try:
        outcomes = await run_in_threadpool(orchestrator.process_event, raw)
    except MalformedPayloadError as exc:
        logger.warning(
            "Webhook payload rejected",
            extra={"context": {"error": str(exc), "body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return _text("invalid payload", status.HTTP_400_BAD_REQUEST)
    except (UpstreamCapabilityError, DeliveryError) as exc:
        logger.error("Webhook handling failed", extra={"context": {"error_code": exc.code, "error": str(exc)}})
        return _text("failed to process message", status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception as exc:
        logger.exception("Unexpected webhook failure", extra={"context": {"error": str(exc)}})
        return _text("failed to process message", status.HTTP_500_INTERNAL_SERVER_ERROR)

    if outcomes and all(outcome.status == ReplyStatus.REJECTED for outcome in outcomes):
        return _text("unusable message", status.HTTP_400_BAD_REQUEST)

    logger.info(
        "Webhook handled",
        extra={"context": {"outcomes": [outcome.status.value for outcome in outcomes]}},
    )
    return _text("ok")


@router.post("/webhook", response_class=PlainTextResponse)
async def webhook(request: Request, orchestrator: ReplyOrchestrator = Depends(get_orchestrator)):
    """Evolution webhook, single URL mode."""
    return await _handle_webhook(request, orchestrator)


@router.post("/webhook/{event_path}", response_class=PlainTextResponse)
async def webhook_by_event(
    event_path: str,
    request: Request,
    orchestrator: ReplyOrchestrator = Depends(get_orchestrator),
):
    """Evolution "webhook by events" mode posts to /webhook/<event-name>."""
    return await _handle_webhook(request, orchestrator)
