"""
Service Wizard Bot - FastAPI Application

Hosts the Telegram bot and exposes health, metrics and direct-send
endpoints over HTTP.
"""

import os
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException

from service_wizard.config import WizardBotConfig
from service_wizard.models import (
    SendTextRequest, SendTextResponse,
    HealthResponse, MetricsResponse, AdminClearSessionsResponse,
)
from service_wizard.registry import build_default_registry
from service_wizard.session_store import SessionStore
from service_wizard.telegram_bot import TelegramBot
from service_wizard.webhook_client import WebhookDispatcher
from service_wizard.wizard_engine import WizardEngine

# Configure logging
logging.basicConfig(
    level=os.getenv("SERVICE_WIZARD_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global state
config: Optional[WizardBotConfig] = None
session_store: Optional[SessionStore] = None
dispatcher: Optional[WebhookDispatcher] = None
wizard_engine: Optional[WizardEngine] = None
telegram_bot: Optional[TelegramBot] = None
app_start_time: float = 0.0


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage service lifecycle (startup/shutdown)
    """
    global config, session_store, dispatcher, wizard_engine, telegram_bot, app_start_time

    logger.info("Starting Service Wizard Bot...")
    app_start_time = time.time()

    # Missing token or a duplicate wizard aborts startup
    try:
        config = WizardBotConfig.from_env()
        logging.getLogger().setLevel(config.log_level)
        registry = build_default_registry(config)
        logger.info(f"Configuration loaded, wizards: {', '.join(w.service_type for w in registry.list_all())}")
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

    session_store = SessionStore(ttl=config.session_ttl, sweep_interval=config.sweep_interval)
    await session_store.start()

    dispatcher = WebhookDispatcher(
        config.webhook_base_url,
        max_attempts=config.webhook_max_attempts,
        retry_delay=config.webhook_retry_delay,
        timeout_seconds=config.webhook_timeout,
    )
    wizard_engine = WizardEngine(
        registry,
        session_store,
        dispatcher,
        log_state_transitions=config.log_state_transitions,
    )

    telegram_bot = TelegramBot(config.bot_token, wizard_engine)
    await telegram_bot.start()

    logger.info(f"Service Wizard Bot ready, HTTP API listening on :{config.port}")

    yield

    # Shutdown
    logger.info("Shutting down Service Wizard Bot...")

    await telegram_bot.stop()
    await session_store.stop()
    await dispatcher.aclose()

    logger.info("Service stopped")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Service Wizard Bot",
    description="Guided service registration over Telegram with webhook hand-off",
    version="1.0.0",
    lifespan=lifespan
)


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Reports whether the chat transport is running and how many sessions
    are held.
    """
    transport_connected = telegram_bot is not None and telegram_bot.is_ready

    return HealthResponse(
        ok=True,
        transport_connected=transport_connected,
        active_sessions=len(session_store) if session_store else 0,
        uptime_seconds=time.time() - app_start_time if app_start_time else 0.0,
    )


@app.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """
    Get session metrics.

    Counters are process-local and reset on restart.
    """
    stats = wizard_engine.stats() if wizard_engine else {}

    return MetricsResponse(
        total_sessions_created=stats.get("total_sessions_created", 0),
        active_sessions_count=len(session_store) if session_store else 0,
        completed_sessions_count=stats.get("completed_sessions_count", 0),
        cancelled_sessions_count=stats.get("cancelled_sessions_count", 0),
        delivery_failures_count=stats.get("delivery_failures_count", 0),
    )


@app.post("/send-text", response_model=SendTextResponse)
async def send_text(request: SendTextRequest):
    """
    Send a text message through the bot.

    chat_id is optional when DEFAULT_CHAT_ID is configured.
    """
    if not config:
        raise HTTPException(status_code=503, detail="Service not configured")

    target_chat_id = request.chat_id if request.chat_id is not None else config.default_chat_id
    if target_chat_id is None or not request.text.strip():
        raise HTTPException(
            status_code=400,
            detail={
                "ok": False,
                "error": "text is required. chat_id is optional if DEFAULT_CHAT_ID is set",
            },
        )

    if not telegram_bot or not telegram_bot.is_ready:
        raise HTTPException(status_code=503, detail="Telegram bot is not running")

    try:
        message_id = await telegram_bot.send_text(target_chat_id, request.text)
    except Exception as e:
        logger.error(f"Failed to send text to chat {target_chat_id}: {e}")
        raise HTTPException(status_code=500, detail={"ok": False, "error": str(e)})

    return SendTextResponse(ok=True, message_id=message_id, chat_id=target_chat_id)


@app.post("/admin/clear_sessions", response_model=AdminClearSessionsResponse)
async def clear_sessions():
    """
    Clear all wizard sessions (admin endpoint).
    """
    if not session_store:
        return AdminClearSessionsResponse(sessions_deleted=0, message="Session store not running")

    deleted = session_store.clear()
    logger.info(f"Sessions cleared: {deleted} sessions deleted")
    return AdminClearSessionsResponse(
        sessions_deleted=deleted,
        message=f"Successfully deleted {deleted} sessions"
    )


# ============================================================================
# Root Endpoint
# ============================================================================

@app.get("/")
async def root():
    """
    Service information endpoint
    """
    return {
        "service": "Service Wizard Bot",
        "version": "1.0.0",
        "status": "operational",
        "endpoints": {
            "health": "GET /health",
            "metrics": "GET /metrics",
            "send_text": "POST /send-text",
            "clear_sessions": "POST /admin/clear_sessions"
        }
    }


if __name__ == "__main__":
    # NOTE: This block is for local development only.
    import uvicorn
    port = int(os.getenv("PORT", "4000"))

    uvicorn.run(
        "service_wizard.app:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
