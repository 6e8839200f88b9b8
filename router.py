# router.py
"""Turns a raw webhook request into a validated ChatRequest.

The widget posts form-encoded fields; other clients may post a JSON object
with the same field names. Both end up as a plain dict ("payload") before
any validation happens, so the rate limiter can read caller metadata from
the same place.
"""
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from errors import EmptyQuestionError, InvalidJsonError, NoDataError
from messages import normalize_language
from models import CallerInfo, ChatMessage, ChatRequest

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


def read_payload(
    form: Optional[Mapping[str, Any]],
    body: Optional[Union[bytes, str]],
) -> Dict[str, Any]:
    """Form fields first, then a JSON body. Raises NoDataError if neither is there."""
    if form:
        return {key: form[key] for key in form}

    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not body or not body.strip():
        raise NoDataError("request has neither form fields nor a body")

    try:
        data = json.loads(body)
    except ValueError as e:
        raise InvalidJsonError(f"body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidJsonError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_history(raw: Any, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ChatMessage]:
    # history is an enrichment: anything unreadable is dropped, never fatal
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else []
        except ValueError:
            logger.warning("Dropping malformed history field (%d chars)", len(raw))
            return []
    if not isinstance(raw, list):
        return []

    history: List[ChatMessage] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        role, content = item.get("role"), item.get("content")
        if role in ("user", "assistant") and isinstance(content, str):
            history.append(ChatMessage(role=role, content=content))

    if limit > 0:
        history = history[-limit:]
    return history


def parse_chat_request(payload: Mapping[str, Any], history_limit: int = DEFAULT_HISTORY_LIMIT) -> ChatRequest:
    question = payload.get("question")
    question = question.strip() if isinstance(question, str) else ""
    if not question:
        raise EmptyQuestionError("question is empty")

    return ChatRequest(
        question=question,
        language=normalize_language(payload.get("language")),
        history=parse_history(payload.get("history"), history_limit),
    )


def parse(
    form: Optional[Mapping[str, Any]],
    body: Optional[Union[bytes, str]],
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> ChatRequest:
    return parse_chat_request(read_payload(form, body), history_limit)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def caller_from_payload(payload: Mapping[str, Any], user_agent_header: str = "") -> CallerInfo:
    return CallerInfo(
        caller_id=_text(payload.get("userId")) or _text(payload.get("deviceId")),
        user_agent=_text(payload.get("userAgent")) or user_agent_header,
        ip_address=_text(payload.get("userIP")),
        referrer=_text(payload.get("referrer")),
    )
