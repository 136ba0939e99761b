"""
WhatsApp Cloud API webhook.

GET answers Meta's verification handshake. POST parses text and location
messages, runs each through the engine in a background task and sends the
reply. The transport is always acknowledged with 200 so it never retries a
delivery because of our own failures.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from recruit_engine.config import AppConfig, settings
from recruit_engine.conversation import ConversationEngine, ConversationStore
from recruit_engine.errors import MessagingError, UnknownOriginError
from recruit_engine.logging_context import get_trace_logger
from recruit_engine.persistence import DocumentStore, build_document_store
from recruit_engine.schemas.conversation_schema import InboundMessage
from recruit_engine.tools.calendar import CalendarProvider, build_calendar_provider
from recruit_engine.tools.candidates import CandidateRepository
from recruit_engine.tools.catalog import Catalog
from recruit_engine.tools.llm import LanguageModel, OpenAILanguageModel
from recruit_engine.tools.messaging import WhatsAppSender
from recruit_engine.tools.scheduler import Scheduler
from recruit_engine.tools.store_matcher import StoreMatcher
from recruit_engine.tools.tenants import TenantCache, TenantResolver
from recruit_engine.utils import mask_identity

logger = get_trace_logger(__name__)

router = APIRouter(tags=["Webhooks"])


def parse_inbound(payload: dict[str, Any], default_origin: str) -> list[InboundMessage]:
    """
    Extract text and location messages from a Cloud API notification.

    The receiving phone number id is the origin; status callbacks and
    unsupported message types are skipped.
    """
    inbound = []
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            origin_id = value.get("metadata", {}).get("phone_number_id") or default_origin
            for message in value.get("messages", []):
                kind = message.get("type")
                sender = message.get("from")
                if not sender:
                    continue
                if kind == "text":
                    inbound.append(
                        InboundMessage(
                            sender=sender,
                            text=message.get("text", {}).get("body", ""),
                            origin_id=origin_id,
                            message_id=message.get("id"),
                        )
                    )
                elif kind == "location":
                    location = message.get("location", {})
                    inbound.append(
                        InboundMessage(
                            sender=sender,
                            text=location.get("address") or location.get("name") or "",
                            origin_id=origin_id,
                            latitude=location.get("latitude"),
                            longitude=location.get("longitude"),
                            message_id=message.get("id"),
                        )
                    )
                else:
                    logger.info("Skipping unsupported message type %r", kind)
    return inbound


async def process_inbound(
    engine: ConversationEngine, sender: WhatsAppSender, message: InboundMessage
) -> None:
    """Run one message through the engine and send the reply; never raises."""
    try:
        reply = await engine.handle(message)
    except UnknownOriginError as exc:
        logger.error("Dropping message from unknown origin: %s", exc)
        return
    except Exception:
        logger.exception("Unhandled error processing message from %s", mask_identity(message.sender))
        return

    try:
        await sender.send(reply)
    except MessagingError as exc:
        logger.error("Reply to %s not delivered: %s", mask_identity(reply.to), exc)


@router.get("/webhook/whatsapp")
async def verify_webhook(request: Request):
    params = request.query_params
    config: AppConfig = request.app.state.config
    if (
        params.get("hub.mode") == "subscribe"
        and params.get("hub.verify_token") == config.messaging.verify_token
        and config.messaging.verify_token
    ):
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(params.get("hub.challenge", ""))
    logger.warning("WhatsApp webhook verification failed")
    return PlainTextResponse("Verification failed", status_code=403)


@router.post("/webhook/whatsapp")
async def whatsapp_webhook(request: Request, background_tasks: BackgroundTasks):
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not JSON")
        return JSONResponse({"status": "ignored"})

    config: AppConfig = request.app.state.config
    messages = parse_inbound(payload, config.messaging.origin_id)
    for message in messages:
        background_tasks.add_task(
            process_inbound, request.app.state.engine, request.app.state.sender, message
        )
    return JSONResponse({"status": "ok", "received": len(messages)})


@router.get("/health")
async def health():
    return {"status": "ok"}


def build_engine(
    documents: DocumentStore,
    calendar: CalendarProvider,
    llm: LanguageModel,
    config: AppConfig = settings,
) -> ConversationEngine:
    """Wire the engine and its collaborators around one document store."""
    candidates = CandidateRepository(documents, config.screening.save_retries)
    return ConversationEngine(
        store=ConversationStore(documents),
        tenants=TenantResolver(
            documents,
            cache=TenantCache(config.tenants.cache_ttl_sec),
            fallbacks=config.tenants.fallbacks,
            default_tenant_id=config.tenants.default_tenant_id,
            allow_default=config.tenants.allow_default,
        ),
        matcher=StoreMatcher(
            Catalog(documents), config.matching.distance_tie_km, config.matching.max_results
        ),
        scheduler=Scheduler(documents, calendar, config.scheduling, config.screening.save_retries),
        candidates=candidates,
        llm=llm,
        config=config,
    )


def create_app(
    engine: Optional[ConversationEngine] = None,
    sender: Optional[WhatsAppSender] = None,
    config: AppConfig = settings,
) -> FastAPI:
    """Build the FastAPI app. Collaborators default to the configured backends."""
    if engine is None:
        engine = build_engine(
            build_document_store(config.storage_backend),
            build_calendar_provider(config.scheduling.calendar_backend),
            OpenAILanguageModel(config.model),
            config,
        )
    app = FastAPI(title="recruit-engine")
    app.state.engine = engine
    app.state.sender = sender or WhatsAppSender(config.messaging)
    app.state.config = config
    app.include_router(router)
    return app
