# dispatcher.py
"""Gemini calls with model/credential fallback and bounded retry.

Models are tried in order (primary first); inside each model every
credential is tried in order. The first successful call wins. A 429 on one
credential moves straight on to the next one; any other failure pauses for
``fallback_delay`` before the next combination.
"""
import logging
import re
import threading
import time
from typing import Callable, Dict, List, Optional

import httpx
from google import genai
from google.genai import errors, types

from errors import (
    AllAttemptsFailed,
    ApiError,
    CallError,
    MissingCredentialsError,
    NoCandidateError,
    QuotaExceeded,
    RateLimitExceeded,
    ServiceUnavailable,
    Timeout,
)
from settings import DispatcherConfig

logger = logging.getLogger(__name__)

BODY_PREVIEW_CHARS = 200

SAFETY_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)

_MODEL_VERSION = re.compile(r"gemini-(\d+(?:\.\d+)?)")


def supports_thinking(model: str) -> bool:
    match = _MODEL_VERSION.search(model)
    return bool(match) and float(match.group(1)) >= 2


def mask(credential: str) -> str:
    return f"...{credential[-4:]}" if len(credential) > 4 else "***"


def build_generation_config(config: DispatcherConfig, model: str,
                            max_output_tokens: int) -> types.GenerateContentConfig:
    thinking = types.ThinkingConfig(thinking_budget=0) if supports_thinking(model) else None
    return types.GenerateContentConfig(
        temperature=config.temperature,
        top_p=config.top_p,
        top_k=config.top_k,
        max_output_tokens=max_output_tokens,
        safety_settings=[
            types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_NONE)
            for category in SAFETY_CATEGORIES
        ],
        thinking_config=thinking,
    )


def make_client(credential: str, config: DispatcherConfig) -> genai.Client:
    http_options = types.HttpOptions(
        base_url=config.base_url,
        timeout=int(config.request_timeout * 1000),
    )
    return genai.Client(api_key=credential, http_options=http_options)


def call_with_retry(
    client: genai.Client,
    model: str,
    contents: List[dict],
    generation_config: types.GenerateContentConfig,
    max_retries: int = 2,
    backoff_base: float = 1.0,
    backoff_cap: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
) -> types.GenerateContentResponse:
    """One (model, credential) combination, at most ``max_retries`` calls.

    Only 503 and transport timeouts are retried. A 429 is raised at once so
    the caller can switch credentials.
    """
    attempts = max(1, max_retries)
    failure: CallError = ServiceUnavailable(model)
    for attempt in range(attempts):
        try:
            return client.models.generate_content(model=model, contents=contents, config=generation_config)
        except errors.APIError as e:
            if e.code == 429:
                raise QuotaExceeded(f"{model} quota exceeded: {e.message}") from e
            if e.code != 503:
                body = str(e.message or e.details or "")[:BODY_PREVIEW_CHARS]
                raise ApiError(e.code, body) from e
            failure = ServiceUnavailable(f"{model} unavailable after {attempt + 1} attempt(s)")
        except httpx.TimeoutException as e:
            failure = Timeout(f"{model} timed out after {attempt + 1} attempt(s): {e}")
        except Exception as e:
            raise CallError(f"{type(e).__name__}: {e}") from e

        if attempt < attempts - 1:
            delay = min(backoff_base * 2 ** attempt, backoff_cap)
            logger.warning("%s on %s, retrying in %.1fs", type(failure).__name__, model, delay)
            sleep(delay)
    raise failure


def extract_answer(response: types.GenerateContentResponse) -> str:
    candidates = response.candidates or []
    if not candidates:
        raise NoCandidateError("response has no candidates")
    content = candidates[0].content
    parts = content.parts if content else None
    if not parts or not parts[0].text:
        reason = candidates[0].finish_reason
        raise NoCandidateError(f"first candidate has no text (finish_reason={reason})")
    return parts[0].text


class Dispatcher:
    def __init__(
        self,
        config: DispatcherConfig,
        client_factory: Optional[Callable[[str], genai.Client]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._client_factory = client_factory or (lambda credential: make_client(credential, config))
        self._sleep = sleep
        self._clients: Dict[str, genai.Client] = {}
        self._clients_lock = threading.Lock()

    def _client(self, credential: str) -> genai.Client:
        with self._clients_lock:
            if credential not in self._clients:
                self._clients[credential] = self._client_factory(credential)
            return self._clients[credential]

    def dispatch(
        self,
        prompt: str,
        max_output_tokens: Optional[int] = None,
        models: Optional[List[str]] = None,
        credentials: Optional[List[str]] = None,
    ) -> str:
        if models is None:
            models = self.config.models
        if credentials is None:
            credentials = self.config.credentials
        if not credentials:
            raise MissingCredentialsError("no API keys configured")
        max_output_tokens = max_output_tokens or self.config.max_output_tokens

        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        combinations = [(model, credential) for model in models for credential in credentials]
        quota_hit = False
        last_error: Optional[CallError] = None

        for index, (model, credential) in enumerate(combinations):
            logger.info("Attempt %d/%d: model=%s key=%s", index + 1, len(combinations), model, mask(credential))
            try:
                response = call_with_retry(
                    self._client(credential),
                    model,
                    contents,
                    build_generation_config(self.config, model, max_output_tokens),
                    max_retries=self.config.max_retries,
                    backoff_base=self.config.backoff_base,
                    backoff_cap=self.config.backoff_cap,
                    sleep=self._sleep,
                )
            except QuotaExceeded as e:
                quota_hit = True
                last_error = e
                logger.warning("Quota exceeded for model=%s key=%s", model, mask(credential))
                continue
            except CallError as e:
                last_error = e
                logger.warning("Attempt failed for model=%s key=%s: %s", model, mask(credential), e)
                if index < len(combinations) - 1:
                    self._sleep(self.config.fallback_delay)
                continue

            logger.info("Answered by model=%s key=%s", model, mask(credential))
            return extract_answer(response)

        if quota_hit:
            raise RateLimitExceeded(f"quota exceeded on every key; last error: {last_error}")
        raise AllAttemptsFailed(last_error)
