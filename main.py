# main.py
import os
from dotenv import load_dotenv
load_dotenv(override=True)

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from counter_store import InMemoryCounterStore, RedisCounterStore
from dispatcher import Dispatcher
from errors import ChatbotError, RateLimitDenied
from logging_config import configure_logging
from messages import get_message, normalize_language
from models import ChatResponse
from prompts import build_prompt, load_knowledge_base
from rate_limiter import NoopRateLimiter, RateLimiter
from router import caller_from_payload, parse_chat_request, read_payload
from settings import Settings

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

router = APIRouter()


def build_rate_limiter(settings: Settings):
    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting disabled")
        return NoopRateLimiter()
    if settings.REDIS_URL:
        store = RedisCounterStore.from_url(settings.REDIS_URL)
    else:
        store = InMemoryCounterStore()
    return RateLimiter(settings.rate_limit_config(), store)


async def _read_form(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(FORM_CONTENT_TYPES):
        return {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/", response_model=ChatResponse, response_model_exclude_none=True)
def liveness():
    return ChatResponse(success=False, error=get_message("use_post"))


@router.post("/", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(request: Request):
    state = request.app.state
    language = "en"
    # body first: starlette replays the cached body when the form is parsed
    body = await request.body()

    try:
        payload = read_payload(await _read_form(request), body)
        language = normalize_language(payload.get("language"))

        caller = caller_from_payload(payload, request.headers.get("user-agent", ""))
        decision = await asyncio.to_thread(
            state.rate_limiter.check_and_consume,
            caller.caller_id,
            caller.user_agent,
            caller.ip_address,
            caller.referrer,
            language,
        )
        if not decision.allowed:
            raise RateLimitDenied(decision.reason)

        chat_request = parse_chat_request(payload, state.settings.HISTORY_LIMIT)
        prompt = build_prompt(chat_request, state.knowledge_base)

        started = time.monotonic()
        answer = await asyncio.to_thread(state.dispatcher.dispatch, prompt)
    except RateLimitDenied as e:
        return ChatResponse(success=False, error=e.reason)
    except ChatbotError as e:
        logger.warning("Chat request failed with %s: %s", type(e).__name__, e)
        return ChatResponse(success=False, error=get_message(e.message_key, language))
    except Exception:
        logger.exception("Unexpected error while answering a chat request")
        return ChatResponse(success=False, error=get_message("generic_error", language))

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info("Answered %r in %dms (%d chars)", chat_request.question[:50], elapsed_ms, len(answer))
    return ChatResponse(success=True, answer=answer)


def create_app(
    settings: Optional[Settings] = None,
    dispatcher: Optional[Dispatcher] = None,
    rate_limiter=None,
    knowledge_base: Optional[str] = None,
) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Portfolio Chat API", version="1.0.0")

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.dispatcher = dispatcher or Dispatcher(settings.dispatcher_config())
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)
    if knowledge_base is None:
        knowledge_base = load_knowledge_base(settings.KNOWLEDGE_BASE_PATH)
    app.state.knowledge_base = knowledge_base

    if not app.state.dispatcher.config.credentials:
        logger.warning("No Gemini API keys configured; every question will fail")

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
