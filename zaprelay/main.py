from typing import Optional

import redis
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from zaprelay import __version__
from zaprelay.config import Settings, settings
from zaprelay.logging_config import get_logger, setup_logging
from zaprelay.routers import webhook
from zaprelay.services.errors import GatewaySendError
from zaprelay.services.evolution_service import EvolutionClient
from zaprelay.services.llm import OpenAIProvider
from zaprelay.services.reply_service import ReplyOrchestrator
from zaprelay.services.session_store import SessionStore

logger = get_logger("main")


def build_orchestrator(config: Settings) -> ReplyOrchestrator:
    """Wire the runtime dependencies once at process start."""
    missing = config.missing_required()
    if missing:
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")

    redis_client = redis.Redis.from_url(
        config.resolved_redis_url(),
        decode_responses=True,
        socket_connect_timeout=config.redis_socket_timeout_seconds,
        socket_timeout=config.redis_socket_timeout_seconds,
    )
    store = SessionStore(
        redis_client,
        max_turns=config.history_max_turns,
        ttl_seconds=config.history_ttl_seconds,
    )
    provider = OpenAIProvider(
        api_key=config.openai_api_key,
        default_model=config.openai_model,
        base_url=config.openai_base_url,
        default_voice=config.openai_voice,
    )
    gateway = EvolutionClient(
        config.evolution_api_url,
        config.evolution_api_key,
        config.evolution_instance,
        timeout=config.gateway_timeout_seconds,
    )
    return ReplyOrchestrator(
        provider,
        gateway,
        store,
        system_prompt=config.system_prompt,
        model=config.openai_model,
        voice=config.openai_voice,
        reply_with_audio=config.reply_with_audio,
    )


def create_app(orchestrator: Optional[ReplyOrchestrator] = None, config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    setup_logging(config.log_level)

    app = FastAPI(
        title="zaprelay",
        description="WhatsApp to LLM reply relay",
        version=__version__,
    )
    app.state.orchestrator = orchestrator
    app.include_router(webhook.router)

    @app.on_event("startup")
    async def start_orchestrator() -> None:
        if app.state.orchestrator is None:
            app.state.orchestrator = build_orchestrator(config)
            logger.info("Relay started", extra={"context": {"instance": config.evolution_instance}})

    @app.on_event("shutdown")
    async def stop_orchestrator() -> None:
        if app.state.orchestrator is not None:
            app.state.orchestrator.close()
            logger.info("Relay stopped")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/health/ready")
    async def ready(request: Request):
        orchestrator = request.app.state.orchestrator
        if orchestrator is None:
            return JSONResponse({"status": "starting"}, status_code=503)

        redis_ok = await run_in_threadpool(orchestrator.store.ping)
        try:
            gateway_state = await run_in_threadpool(orchestrator.gateway.get_connection_state)
        except GatewaySendError as exc:
            logger.warning("Gateway state unavailable", extra={"context": {"error": str(exc)}})
            gateway_state = "unreachable"

        body = {"status": "ok" if redis_ok else "degraded", "redis": redis_ok, "gateway": gateway_state}
        return JSONResponse(body, status_code=200 if redis_ok else 503)

    return app


app = create_app()
